# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
GitHub API Client Pool

Binds one httpx.AsyncClient to each credential and routes every call through
the credential manager: pick the best token, make the call, record the quota
headers, classify errors.

Usage:
    pool = GitHubClientPool(credentials)
    repo = await pool.get_repo("anthropics", "skills")
    text = await pool.get_file_text("anthropics", "skills", "skills/pdf/SKILL.md")
    await pool.aclose()
"""

import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from core.exceptions import (
    NotFoundError,
    RateLimitError,
    SearchResultsLimitError,
    SecondaryRateLimitError,
    UpstreamError,
)
from services.credentials import Credential, CredentialManager

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "SkillHub-Indexer/1.0"
ROTATION_GRACE_SECONDS = 1.0
BUDGET_GRACE_SECONDS = 2.0
MAX_RATE_LIMIT_RETRIES = 2


def classify_error(response: httpx.Response) -> UpstreamError:
    """Map a non-success response onto the upstream exception family."""
    status = response.status_code
    headers = dict(response.headers)
    try:
        body = response.json()
        message = body.get("message", "") if isinstance(body, dict) else ""
    except ValueError:
        message = response.text[:200]
    lowered = message.lower()

    if status == 404:
        return NotFoundError(message or "Not Found", headers)
    if status in (403, 429):
        if "secondary rate limit" in lowered or "abuse detection" in lowered:
            retry_after = _retry_after(response.headers.get("retry-after"))
            return SecondaryRateLimitError(status, message, retry_after, headers)
        if "rate limit" in lowered or status == 429 or response.headers.get("x-ratelimit-remaining") == "0":
            return RateLimitError(status, message or "API rate limit exceeded", headers)
    if status == 422 and "cannot access beyond the first 1000 results" in lowered:
        return SearchResultsLimitError(status, message, headers)
    return UpstreamError(status, message or f"HTTP {status}", headers)


def _retry_after(value: Optional[str]) -> int:
    try:
        return max(10, int(value)) if value else 60
    except ValueError:
        return 60


class GitHubClientPool:
    """
    One HTTP client per credential, shared by every discovery strategy.

    Primary quota errors wait for the nearest reset and retry; everything
    else is raised to the caller.
    """

    def __init__(
        self,
        credentials: CredentialManager,
        api_url: str = DEFAULT_API_URL,
        user_agent: str = USER_AGENT,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.credentials = credentials
        self.api_url = api_url.rstrip("/")
        self._sleep = sleep
        self._clients: Dict[str, httpx.AsyncClient] = {}
        for credential in credentials.credentials:
            self._clients[credential.id] = httpx.AsyncClient(
                base_url=self.api_url,
                headers={
                    "Authorization": f"Bearer {credential.token}",
                    "Accept": "application/vnd.github+json",
                    "User-Agent": user_agent,
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=httpx.Timeout(timeout, connect=10.0),
                transport=transport,
                follow_redirects=True,
            )

    @classmethod
    def from_settings(cls, settings, credentials: CredentialManager) -> "GitHubClientPool":
        return cls(
            credentials,
            api_url=settings.github_api_url,
            user_agent=settings.github_user_agent,
            timeout=settings.github_timeout_seconds,
        )

    async def aclose(self):
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()

    # =========================================================================
    # Core request path
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        credential: Optional[Credential] = None
    ) -> httpx.Response:
        """
        Send one API call with quota bookkeeping.

        Raises:
            NotFoundError, SecondaryRateLimitError, SearchResultsLimitError,
            UpstreamError: Classified non-success responses
            RateLimitError: Quota still exhausted after waiting for rotation
            httpx.RequestError: Network failure
        """
        attempt = 0
        while True:
            chosen = credential or await self.credentials.get_best_credential()
            client = self._clients[chosen.id]
            response = await client.request(method, path, params=params)
            await self.credentials.record_usage(chosen, response.headers)

            if response.is_success:
                return response

            error = classify_error(response)
            if isinstance(error, RateLimitError) and credential is None and attempt < MAX_RATE_LIMIT_RETRIES:
                attempt += 1
                reset = response.headers.get("x-ratelimit-reset")
                self.credentials.mark_exhausted(chosen, float(reset) if reset and reset.isdigit() else None)
                logger.warning(f"[{chosen.id}] Rate limited on {path}, rotating")
                await self.wait_for_rotation()
                continue
            raise error

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.request("GET", path, params=params)
        return response.json()

    # =========================================================================
    # Repository endpoints
    # =========================================================================

    async def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self.get_json(f"/repos/{owner}/{repo}")

    async def get_content(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> Any:
        """Contents API: a file object or a directory listing."""
        params = {"ref": ref} if ref else None
        return await self.get_json(f"/repos/{owner}/{repo}/contents/{path.strip('/')}", params)

    async def get_file_text(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> str:
        """Fetch and base64-decode one file."""
        data = await self.get_content(owner, repo, path, ref)
        if not isinstance(data, dict) or "content" not in data:
            raise NotFoundError(f"File not found: {owner}/{repo}/{path}")
        return base64.b64decode(data["content"]).decode("utf-8", errors="replace")

    async def list_branches(self, owner: str, repo: str, page: int = 1, per_page: int = 100) -> List[Dict[str, Any]]:
        return await self.get_json(
            f"/repos/{owner}/{repo}/branches",
            {"per_page": per_page, "page": page}
        )

    async def get_tree(self, owner: str, repo: str, ref: str, recursive: bool = True) -> Dict[str, Any]:
        params = {"recursive": "1"} if recursive else None
        return await self.get_json(f"/repos/{owner}/{repo}/git/trees/{ref}", params)

    async def list_forks(self, owner: str, repo: str, page: int = 1, per_page: int = 100) -> List[Dict[str, Any]]:
        return await self.get_json(
            f"/repos/{owner}/{repo}/forks",
            {"sort": "stargazers", "per_page": per_page, "page": page}
        )

    # =========================================================================
    # Search endpoints
    # =========================================================================

    async def search_code(self, query: str, page: int = 1, per_page: int = 100) -> Dict[str, Any]:
        return await self.get_json("/search/code", {"q": query, "per_page": per_page, "page": page})

    async def search_repos(
        self,
        query: str,
        page: int = 1,
        per_page: int = 100,
        sort: str = "stars",
        order: str = "desc"
    ) -> Dict[str, Any]:
        return await self.get_json(
            "/search/repositories",
            {"q": query, "sort": sort, "order": order, "per_page": per_page, "page": page}
        )

    # =========================================================================
    # Quota management
    # =========================================================================

    async def refresh_rate_limit(self, credential: Credential) -> None:
        """Re-read one credential's quota from /rate_limit."""
        try:
            response = await self.request("GET", "/rate_limit", credential=credential)
            core = response.json().get("resources", {}).get("core", {})
            await self.credentials.apply_rate_limit(credential, core)
        except (UpstreamError, httpx.HTTPError) as e:
            logger.error(f"Failed to refresh rate limit for [{credential.id}]: {e}")

    async def refresh_all(self) -> None:
        for credential in self.credentials.credentials:
            await self.refresh_rate_limit(credential)

    async def wait_for_rotation(self) -> None:
        """
        Block until a credential is usable.

        Returns immediately when any credential has quota; otherwise sleeps
        until the nearest reset plus a grace second and refreshes every token.
        """
        best = await self.credentials.get_best_credential()
        if not best.exhausted:
            return
        wait = self.credentials.seconds_until_reset(best) + ROTATION_GRACE_SECONDS
        logger.warning(f"All tokens exhausted. Waiting {wait:.0f}s until [{best.id}] resets...")
        await self._sleep(wait)
        await self.refresh_all()

    async def check_budget(self, reserve_fraction: float) -> bool:
        """Refresh quota and report whether pooled remaining is above the reserve."""
        await self.refresh_all()
        status = self.credentials.status()
        floor = self.credentials.budget_floor(reserve_fraction)
        ok = status.global_remaining > floor
        if not ok:
            logger.warning(f"Quota budget low: {status.global_remaining} remaining, reserve {floor}")
        return ok

    async def wait_for_budget(self, reserve_fraction: float) -> None:
        """Block until the next reset whenever pooled quota is under the reserve."""
        while not await self.check_budget(reserve_fraction):
            wait = self.credentials.seconds_until_reset() + BUDGET_GRACE_SECONDS
            logger.warning(f"Waiting {wait:.0f}s for quota reset before continuing")
            await self._sleep(wait)


__all__ = ["GitHubClientPool", "classify_error"]
