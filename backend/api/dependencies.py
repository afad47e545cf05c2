# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
FastAPI dependencies for the service objects built in the app lifespan.

The queue, indexer context and schedule are stored on ``app.state``; routes
receive them through these providers so tests can swap them with
``app.dependency_overrides``.
"""

from fastapi import Request

from core.exceptions import ServiceUnavailableError


def get_queue(request: Request):
    queue = getattr(request.app.state, "queue", None)
    if queue is None:
        raise ServiceUnavailableError("Job queue is not initialized")
    return queue


def get_context(request: Request):
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise ServiceUnavailableError("Indexer context is not initialized (missing GitHub credentials?)")
    return context


def get_schedule(request: Request):
    return getattr(request.app.state, "schedule", None)
