# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Indexer exceptions.

Everything raised on purpose derives from IndexerException, which carries an
HTTP status and a JSON-safe ``detail`` dict so the operator API can render it
without special cases (see core.error_handlers).

Upstream errors are classified from the hosting API response:

    try:
        text = await pool.get_file_text(owner, repo, path)
    except NotFoundError:
        text = None

Anything that is not NotFoundError usually propagates to the job queue, which
retries the job with backoff.
"""

from typing import Any, Dict, Optional


class IndexerException(Exception):
    """Base class; ``status_code`` is what the operator API answers with."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = dict(detail or {})


# =============================================================================
# Operator API
# =============================================================================

class BadRequestError(IndexerException):
    """Submitted job or curation request is malformed."""

    status_code = 400


class ResourceNotFoundError(IndexerException):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            detail={"resource_type": resource_type, "resource_id": resource_id}
        )


class ServiceUnavailableError(IndexerException):
    """A component the route needs (queue, context) is not running."""

    status_code = 503


class ConfigurationError(IndexerException):
    """Fatal misconfiguration found at startup (no tokens, bad cron entry)."""


# =============================================================================
# Repository hosting API
# =============================================================================

class UpstreamError(IndexerException):
    """
    Non-success response from the repository hosting API.

    ``status`` is the upstream HTTP status; the operator API reports every
    upstream failure as 502.
    """

    status_code = 502

    def __init__(
        self,
        status: int,
        message: str,
        headers: Optional[Dict[str, str]] = None,
        detail: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, detail={**(detail or {}), "upstream_status": status})
        self.status = status
        self.headers = headers or {}


class NotFoundError(UpstreamError):
    """Missing repo, file or branch."""

    def __init__(self, message: str = "Not Found", headers: Optional[Dict[str, str]] = None):
        super().__init__(404, message, headers)


class RateLimitError(UpstreamError):
    """Primary quota exhausted for the credential that made the call."""


class SecondaryRateLimitError(UpstreamError):
    """Abuse-detection limit; back off for ``retry_after`` seconds."""

    def __init__(self, status: int, message: str, retry_after: int = 60, headers: Optional[Dict[str, str]] = None):
        super().__init__(status, message, headers, detail={"retry_after": retry_after})
        self.retry_after = retry_after


class SearchResultsLimitError(UpstreamError):
    """Code search will not page past its first 1000 results."""


# =============================================================================
# Jobs
# =============================================================================

class QuotaExhaustedError(IndexerException):
    """Remaining API quota is under the configured reserve."""

    status_code = 503

    def __init__(self, remaining: int, reserve: int, reset_at: Optional[float] = None):
        super().__init__(
            f"API quota below reserve ({remaining} remaining, reserve {reserve})",
            detail={"remaining": remaining, "reserve": reserve, "reset_at": reset_at}
        )
        self.remaining = remaining
        self.reserve = reserve
        self.reset_at = reset_at


class JobError(IndexerException):
    """A job payload cannot be executed (missing source, unknown skill)."""

    status_code = 400

    def __init__(self, job_type: str, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(f"Job '{job_type}' failed: {message}", detail={**(detail or {}), "job_type": job_type})


__all__ = [
    "IndexerException",
    "BadRequestError",
    "ResourceNotFoundError",
    "ServiceUnavailableError",
    "ConfigurationError",
    "UpstreamError",
    "NotFoundError",
    "RateLimitError",
    "SecondaryRateLimitError",
    "SearchResultsLimitError",
    "QuotaExhaustedError",
    "JobError",
]
