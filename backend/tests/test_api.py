# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Tests for the operator API routes.

The routers are mounted on a bare FastAPI app (no lifespan) whose
``app.state`` holds a mocked queue and an IndexerContext over the fakes.
"""
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.curation import routes as curation
from api.jobs import routes as jobs
from core.error_handlers import register_error_handlers
from core.exceptions import SecondaryRateLimitError


@pytest.fixture
def queue():
    queue = MagicMock()
    queue.enqueue.return_value = 11
    return queue


@pytest.fixture
def app(queue, ctx):
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(jobs.router)
    app.include_router(curation.router)
    app.state.queue = queue
    app.state.context = ctx
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestJobRoutes:
    def test_submit_uses_default_priority(self, client, queue):
        response = client.post("/api/jobs", json={"job_type": "deep-scan", "payload": {"scanLimit": 10}})

        assert response.status_code == 202
        assert response.json() == {"job_id": 11, "job_type": "deep-scan", "priority": 25}
        queue.enqueue.assert_called_once_with("deep-scan", {"scanLimit": 10}, priority=25)

    def test_submit_with_explicit_priority(self, client, queue):
        response = client.post("/api/jobs", json={"job_type": "full-crawl", "priority": 100})

        assert response.json()["priority"] == 100

    def test_unknown_job_type_is_rejected(self, client, queue):
        response = client.post("/api/jobs", json={"job_type": "make-coffee"})

        assert response.status_code == 422
        queue.enqueue.assert_not_called()

    def test_index_skill_requires_source(self, client):
        response = client.post("/api/jobs", json={"job_type": "index-skill"})

        assert response.status_code == 400
        assert response.json()["error"] == "BadRequestError"

    def test_queue_rejection_is_a_bad_request(self, client, queue):
        queue.enqueue.side_effect = ValueError("No handler registered for job type 'curate'")

        response = client.post("/api/jobs", json={"job_type": "curate"})

        assert response.status_code == 400

    def test_get_job(self, client, queue):
        queue.get_status.return_value = {"id": 3, "state": "active", "progress": 40}

        response = client.get("/api/jobs/3")

        assert response.status_code == 200
        assert response.json()["progress"] == 40

    def test_missing_job(self, client, queue):
        queue.get_status.return_value = None

        response = client.get("/api/jobs/3")

        assert response.status_code == 404
        assert response.json()["detail"]["resource_id"] == 3

    def test_list_jobs_filters_by_state(self, client, queue):
        queue.list_jobs.return_value = [{"id": 1}]

        response = client.get("/api/jobs", params={"state": "failed", "limit": 5})

        assert response.json() == {"total": 1, "jobs": [{"id": 1}]}
        queue.list_jobs.assert_called_once_with("failed", 5)

    def test_queue_not_initialized(self, app, client):
        app.state.queue = None

        response = client.get("/api/jobs/stats")

        assert response.status_code == 503

    def test_upstream_error_is_bad_gateway(self, client, queue):
        queue.stats.side_effect = SecondaryRateLimitError(403, "secondary rate limit", retry_after=30)

        response = client.get("/api/jobs/stats")

        assert response.status_code == 502
        assert response.headers["retry-after"] == "30"
        assert response.json()["detail"]["upstream_status"] == 403


class TestCurationRoutes:
    def test_background_run_is_queued(self, client, queue):
        response = client.post("/api/curation/run", json={"dry_run": True, "step": 5})

        assert response.json() == {"queued": True, "job_id": 11}
        queue.enqueue.assert_called_once_with("curate", {"dryRun": True, "step": 5})

    def test_inline_run_returns_report(self, client, repository):
        repository.add_skill("acme/tools/pdf")

        response = client.post("/api/curation/run", json={"background": False, "dry_run": True})

        body = response.json()
        assert body["queued"] is False
        assert body["report"]["dry_run"] is True
        assert repository.skills["acme/tools/pdf"]["skill_type"] is None

    def test_step_out_of_range(self, client):
        response = client.post("/api/curation/run", json={"step": 9})

        assert response.status_code == 422
