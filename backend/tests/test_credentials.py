# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Tests for the credential pool and the GitHub client pool.

HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""
import base64
import time

import httpx
import pytest

from core.exceptions import ConfigurationError, NotFoundError, SecondaryRateLimitError
from services.credentials import CredentialManager
from services.github_client import GitHubClientPool, classify_error


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def quota_headers(remaining, limit=5000, reset=2_000_000):
    return {
        "x-ratelimit-remaining": str(remaining),
        "x-ratelimit-limit": str(limit),
        "x-ratelimit-reset": str(reset),
    }


# =============================================================================
# CredentialManager
# =============================================================================

class TestCredentialManager:
    def test_requires_a_token(self):
        with pytest.raises(ConfigurationError):
            CredentialManager([])

    def test_names_must_match_token_count(self):
        manager = CredentialManager(["a", "b"], names=["only-one"])
        assert [c.id for c in manager.credentials] == ["token-1", "token-2"]

        named = CredentialManager(["a", "b"], names=["primary", "backup"])
        assert [c.id for c in named.credentials] == ["primary", "backup"]

    @pytest.mark.asyncio
    async def test_picks_highest_remaining(self):
        manager = CredentialManager(["a", "b", "c"], clock=Clock())
        manager.credentials[0].remaining = 100
        manager.credentials[1].remaining = 4000
        manager.credentials[2].remaining = 50

        best = await manager.get_best_credential()

        assert best.token == "b"
        assert best.last_used_at == 1_000_000.0

    @pytest.mark.asyncio
    async def test_promotes_credential_whose_reset_passed(self):
        clock = Clock()
        manager = CredentialManager(["a", "b"], clock=clock)
        for credential in manager.credentials:
            manager.mark_exhausted(credential)
        manager.credentials[0].reset_at = clock.now + 600
        manager.credentials[1].reset_at = clock.now - 1

        best = await manager.get_best_credential()

        assert best.token == "b"
        assert not best.exhausted
        assert best.remaining == best.limit

    @pytest.mark.asyncio
    async def test_all_exhausted_returns_nearest_reset(self):
        clock = Clock()
        manager = CredentialManager(["a", "b"], clock=clock)
        for credential in manager.credentials:
            manager.mark_exhausted(credential)
        manager.credentials[0].reset_at = clock.now + 600
        manager.credentials[1].reset_at = clock.now + 60

        best = await manager.get_best_credential()

        assert best.token == "b"
        assert best.exhausted
        assert manager.seconds_until_reset(best) == 60

    @pytest.mark.asyncio
    async def test_single_token_is_passthrough(self):
        clock = Clock()
        manager = CredentialManager(["only"], clock=clock)
        manager.mark_exhausted(manager.credentials[0], reset_at=clock.now - 5)

        best = await manager.get_best_credential()

        assert manager.is_single
        assert best.token == "only"
        assert not best.exhausted

    @pytest.mark.asyncio
    async def test_record_usage_updates_quota(self):
        manager = CredentialManager(["a"])
        credential = manager.credentials[0]

        await manager.record_usage(credential, quota_headers(1234, reset=1_700_000_000))

        assert credential.remaining == 1234
        assert credential.reset_at == 1_700_000_000.0
        assert not credential.exhausted

        await manager.record_usage(credential, quota_headers(1))
        assert credential.exhausted

    @pytest.mark.asyncio
    async def test_search_limit_headers_are_ignored(self):
        manager = CredentialManager(["a"])
        credential = manager.credentials[0]

        await manager.record_usage(credential, quota_headers(3, limit=30))

        assert credential.remaining == 5000
        assert credential.limit == 5000

    def test_budget(self):
        manager = CredentialManager(["a", "b"])

        assert manager.budget_floor(0.33) == 3300
        assert manager.has_budget(0.33)

        for credential in manager.credentials:
            credential.remaining = 1000
        assert not manager.has_budget(0.33)
        assert manager.has_budget(0.1)

    def test_status_never_contains_tokens(self):
        manager = CredentialManager(["secret-a", "secret-b"])
        status = manager.status().to_dict()

        assert status["total_tokens"] == 2
        assert status["global_limit"] == 10000
        assert all("token" not in row for row in status["tokens"])
        assert "secret-a" not in str(status)


# =============================================================================
# GitHubClientPool
# =============================================================================

def build_pool(handler, tokens=("tok-a",), sleep=None):
    credentials = CredentialManager(list(tokens))
    kwargs = {"transport": httpx.MockTransport(handler)}
    if sleep:
        kwargs["sleep"] = sleep
    return credentials, GitHubClientPool(credentials, **kwargs)


class TestClassifyError:
    def test_status_mapping(self):
        request = httpx.Request("GET", "https://api.github.com/x")

        def response(status, message, headers=None):
            return httpx.Response(status, json={"message": message}, headers=headers, request=request)

        assert isinstance(classify_error(response(404, "Not Found")), NotFoundError)
        secondary = classify_error(response(403, "You have exceeded a secondary rate limit", {"retry-after": "30"}))
        assert isinstance(secondary, SecondaryRateLimitError)
        assert secondary.retry_after == 30
        assert type(classify_error(response(403, "API rate limit exceeded"))).__name__ == "RateLimitError"
        limit = classify_error(response(422, "Cannot access beyond the first 1000 results"))
        assert type(limit).__name__ == "SearchResultsLimitError"
        assert classify_error(response(500, "boom")).status == 500


class TestGitHubClientPool:
    @pytest.mark.asyncio
    async def test_get_file_text_decodes_content(self):
        def handler(request):
            assert request.url.path == "/repos/acme/tools/contents/skills/pdf/SKILL.md"
            assert request.url.params["ref"] == "main"
            assert request.headers["authorization"] == "Bearer tok-a"
            encoded = base64.b64encode("hello skill".encode()).decode()
            return httpx.Response(200, json={"content": encoded}, headers=quota_headers(4999))

        credentials, pool = build_pool(handler)
        try:
            text = await pool.get_file_text("acme", "tools", "skills/pdf/SKILL.md", ref="main")
        finally:
            await pool.aclose()

        assert text == "hello skill"
        assert credentials.credentials[0].remaining == 4999

    @pytest.mark.asyncio
    async def test_directory_listing_is_not_a_file(self):
        def handler(request):
            return httpx.Response(200, json=[{"name": "SKILL.md"}])

        _, pool = build_pool(handler)
        try:
            with pytest.raises(NotFoundError):
                await pool.get_file_text("acme", "tools", "skills")
        finally:
            await pool.aclose()

    @pytest.mark.asyncio
    async def test_rate_limited_token_rotates_to_the_next(self):
        seen = []

        def handler(request):
            token = request.headers["authorization"].split()[-1]
            seen.append(token)
            if token == "tok-a":
                return httpx.Response(403, json={"message": "API rate limit exceeded"}, headers=quota_headers(0))
            return httpx.Response(200, json={"name": "tools"}, headers=quota_headers(4000))

        credentials, pool = build_pool(handler, tokens=("tok-a", "tok-b"))
        try:
            data = await pool.get_repo("acme", "tools")
        finally:
            await pool.aclose()

        assert data == {"name": "tools"}
        assert seen == ["tok-a", "tok-b"]
        assert credentials.credentials[0].exhausted

    @pytest.mark.asyncio
    async def test_secondary_limit_is_raised(self):
        def handler(request):
            return httpx.Response(403, json={"message": "secondary rate limit"}, headers={"retry-after": "45"})

        _, pool = build_pool(handler)
        try:
            with pytest.raises(SecondaryRateLimitError) as excinfo:
                await pool.search_code("filename:SKILL.md")
        finally:
            await pool.aclose()

        assert excinfo.value.retry_after == 45

    @pytest.mark.asyncio
    async def test_check_budget_refreshes_quota(self):
        def handler(request):
            assert request.url.path == "/rate_limit"
            return httpx.Response(200, json={"resources": {"core": {"remaining": 100, "limit": 5000, "reset": 2_000_000}}})

        credentials, pool = build_pool(handler, tokens=("tok-a", "tok-b"))
        try:
            ok = await pool.check_budget(0.33)
        finally:
            await pool.aclose()

        assert not ok
        assert credentials.status().global_remaining == 200

    @pytest.mark.asyncio
    async def test_wait_for_budget_sleeps_until_reset(self):
        calls = {"count": 0}
        sleeps = []

        def handler(request):
            calls["count"] += 1
            remaining = 10 if calls["count"] == 1 else 4000
            core = {"remaining": remaining, "limit": 5000, "reset": int(time.time()) + 100}
            return httpx.Response(200, json={"resources": {"core": core}})

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        _, pool = build_pool(handler, sleep=fake_sleep)
        try:
            await pool.wait_for_budget(0.33)
        finally:
            await pool.aclose()

        assert len(sleeps) == 1
        assert sleeps[0] > 90
