# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
GitHub Credential Manager

Tracks quota for a pool of API tokens and picks the least-exhausted one per call.

Features:
- Best-credential selection (highest remaining quota, reset promotion, nearest reset)
- Post-call bookkeeping from x-ratelimit-* response headers
- Search-specific limits (limit < 100) never overwrite primary quota
- Budget snapshot used for backpressure before multi-page operations

State is guarded by one asyncio.Lock. A stale read costs at most one extra
failed call; it cannot corrupt the bookkeeping.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field, asdict
from typing import Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_LIMIT = 5000
EXHAUSTED_BELOW = 2
SEARCH_LIMIT_CEILING = 100


@dataclass
class Credential:
    """One API token and its last observed quota."""
    id: str
    token: str
    remaining: int = DEFAULT_QUOTA_LIMIT
    limit: int = DEFAULT_QUOTA_LIMIT
    reset_at: float = 0.0  # Unix timestamp, seconds
    last_used_at: Optional[float] = None
    exhausted: bool = False

    def to_status(self) -> Dict[str, object]:
        """Status row without the secret."""
        data = asdict(self)
        data.pop("token")
        return data


@dataclass
class QuotaStatus:
    """Snapshot of the whole pool."""
    total_tokens: int
    available_tokens: int
    global_remaining: int
    global_limit: int
    next_reset: float
    tokens: List[Dict[str, object]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class CredentialManager:
    """
    Pool of GitHub credentials with quota-aware selection.

    With a single credential selection is a passthrough; usage is still
    recorded so budget checks stay accurate.
    """

    def __init__(
        self,
        tokens: List[str],
        names: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time
    ):
        if not tokens:
            from core.exceptions import ConfigurationError
            raise ConfigurationError("At least one GitHub token is required")

        if not names or len(names) != len(tokens):
            names = [f"token-{i + 1}" for i in range(len(tokens))]

        self._clock = clock
        self._lock = asyncio.Lock()
        now = clock()
        self.credentials: List[Credential] = [
            Credential(id=name, token=token, reset_at=now + 3600)
            for name, token in zip(names, tokens)
        ]
        logger.info(f"CredentialManager initialized with {len(self.credentials)} token(s)")

    @classmethod
    def from_settings(cls, settings) -> "CredentialManager":
        """Build the pool from GITHUB_TOKENS / GITHUB_TOKEN / GITHUB_TOKEN_NAMES."""
        tokens = settings.token_list()
        return cls(tokens, settings.token_names(len(tokens)))

    @property
    def is_single(self) -> bool:
        return len(self.credentials) == 1

    # =========================================================================
    # Selection
    # =========================================================================

    async def get_best_credential(self) -> Credential:
        """
        Pick the credential to use for the next call.

        Order: highest remaining among non-exhausted; else any whose reset has
        passed (promoted back to full quota); else the one with the nearest
        reset, which the caller must wait for.
        """
        async with self._lock:
            now = self._clock()

            if self.is_single:
                credential = self.credentials[0]
                if credential.exhausted and credential.reset_at <= now:
                    self._promote(credential)
                credential.last_used_at = now
                return credential

            available = [c for c in self.credentials if not c.exhausted]
            if available:
                best = max(available, key=lambda c: c.remaining)
                best.last_used_at = now
                return best

            recovered = [c for c in self.credentials if c.reset_at <= now]
            if recovered:
                for credential in recovered:
                    self._promote(credential)
                best = recovered[0]
                best.last_used_at = now
                logger.info(f"[{best.id}] Quota window reset, back in rotation")
                return best

            return min(self.credentials, key=lambda c: c.reset_at)

    def _promote(self, credential: Credential) -> None:
        credential.remaining = credential.limit
        credential.exhausted = False

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    async def record_usage(self, credential: Credential, headers: Mapping[str, str]) -> None:
        """
        Update a credential from response quota headers.

        Responses carrying a search-specific limit (between 1 and 99) are
        ignored so they do not clobber the primary quota.
        """
        limit = _parse_int(headers.get("x-ratelimit-limit"))
        if limit is not None and 0 < limit < SEARCH_LIMIT_CEILING:
            return

        remaining = _parse_int(headers.get("x-ratelimit-remaining"))
        reset = _parse_int(headers.get("x-ratelimit-reset"))

        async with self._lock:
            if remaining is not None:
                credential.remaining = remaining
                credential.exhausted = remaining < EXHAUSTED_BELOW
            if reset is not None:
                credential.reset_at = float(reset)
            if limit:
                credential.limit = limit

        if credential.exhausted:
            logger.warning(f"[{credential.id}] Exhausted, resets at {credential.reset_at:.0f}")
        elif credential.remaining % 100 == 0:
            logger.info(f"[{credential.id}] {credential.remaining}/{credential.limit} requests remaining")

    async def apply_rate_limit(self, credential: Credential, core: Mapping[str, int]) -> None:
        """Apply the ``resources.core`` block of a /rate_limit response."""
        async with self._lock:
            credential.remaining = int(core.get("remaining", credential.remaining))
            credential.limit = int(core.get("limit", credential.limit))
            credential.reset_at = float(core.get("reset", credential.reset_at))
            credential.exhausted = credential.remaining < EXHAUSTED_BELOW
        logger.info(f"[{credential.id}] Refreshed: {credential.remaining}/{credential.limit}")

    def mark_exhausted(self, credential: Credential, reset_at: Optional[float] = None) -> None:
        """Flag a credential after a quota error response."""
        credential.remaining = 0
        credential.exhausted = True
        if reset_at:
            credential.reset_at = reset_at

    # =========================================================================
    # Status and budget
    # =========================================================================

    def status(self) -> QuotaStatus:
        """Pool-wide quota snapshot."""
        return QuotaStatus(
            total_tokens=len(self.credentials),
            available_tokens=len([c for c in self.credentials if not c.exhausted]),
            global_remaining=sum(c.remaining for c in self.credentials),
            global_limit=sum(c.limit for c in self.credentials),
            next_reset=min(c.reset_at for c in self.credentials),
            tokens=[c.to_status() for c in self.credentials]
        )

    def budget_floor(self, reserve_fraction: float) -> int:
        """Quota that must stay untouched for the given reserve fraction."""
        return math.floor(sum(c.limit for c in self.credentials) * reserve_fraction)

    def has_budget(self, reserve_fraction: float) -> bool:
        """True when pooled remaining quota is above the reserve floor."""
        return self.status().global_remaining > self.budget_floor(reserve_fraction)

    def seconds_until_reset(self, credential: Optional[Credential] = None) -> float:
        """Seconds until the given credential (or the earliest in the pool) resets."""
        reset_at = credential.reset_at if credential else self.status().next_reset
        return max(0.0, reset_at - self._clock())


def _parse_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


__all__ = ["Credential", "CredentialManager", "QuotaStatus"]
