# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Search Mirror Sync

Best-effort mirror of catalog records into a Meilisearch index over its REST
API. Every method is a no-op when MEILI_URL is unset, and failures are
logged rather than raised: the catalog never depends on the mirror.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000


def sanitize_document_id(skill_id: str) -> str:
    """Meilisearch ids allow only [a-zA-Z0-9_-]."""
    doc_id = skill_id.replace("/", "__").replace(".", "_dot_")
    return re.sub(r"[^a-zA-Z0-9_-]", "_", doc_id)


class SearchMirror:
    """Push skill documents to Meilisearch."""

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str] = None,
        index: str = "skills",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url.rstrip("/") if url else None
        self.index = index
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=self.url or "http://localhost",
            headers=headers,
            timeout=10.0,
            transport=transport,
        ) if self.url else None

    @classmethod
    def from_settings(cls, settings) -> "SearchMirror":
        return cls(settings.meili_url, settings.meili_master_key, settings.meili_index)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()

    @staticmethod
    def to_document(record: Dict[str, Any]) -> Dict[str, Any]:
        compatibility = record.get("compatibility") or {}
        return {
            "id": sanitize_document_id(record["id"]),
            "skillId": record["id"],
            "name": record.get("name"),
            "description": record.get("description"),
            "githubOwner": record.get("githubOwner"),
            "githubRepo": record.get("githubRepo"),
            "platforms": compatibility.get("platforms", []),
            "githubStars": record.get("githubStars") or 0,
            "securityScore": record.get("securityScore"),
            "sourceFormat": record.get("sourceFormat"),
            "indexedAt": record.get("indexedAt"),
        }

    async def _add_documents(self, documents: List[Dict[str, Any]]) -> bool:
        try:
            response = await self._client.post(f"/indexes/{self.index}/documents", json=documents)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Search mirror update failed: {e}")
            return False

    async def sync_skill(self, record: Dict[str, Any]) -> bool:
        """Upsert one document; False when disabled or failed."""
        if not self.enabled:
            return False
        return await self._add_documents([self.to_document(record)])

    async def sync_all(self, records: List[Dict[str, Any]]) -> int:
        """Full resync in batches; returns the number of documents accepted."""
        if not self.enabled:
            logger.info("Search mirror disabled (MEILI_URL not set), skipping sync")
            return 0
        synced = 0
        for start in range(0, len(records), BATCH_SIZE):
            batch = [self.to_document(r) for r in records[start:start + BATCH_SIZE]]
            if await self._add_documents(batch):
                synced += len(batch)
        logger.info(f"Synced {synced}/{len(records)} documents to search index '{self.index}'")
        return synced


__all__ = ["SearchMirror", "sanitize_document_id"]
