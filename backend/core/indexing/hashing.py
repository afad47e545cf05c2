# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Catalog-wide content hash.

Duplicate detection is an equality test on ``content_hash``, so every hash
in the catalog must come from this one function. Hashes carry a version
prefix; bumping HASH_VERSION makes curation rehash the whole catalog.
"""

import hashlib
from typing import Optional

HASH_VERSION = "sha256v1"
HASH_PREFIX = f"{HASH_VERSION}:"


def normalize_content(content: str) -> str:
    """Normalize line endings and surrounding whitespace before hashing."""
    return content.replace("\r\n", "\n").replace("\r", "\n").strip()


def content_hash(content: str) -> str:
    """Versioned SHA-256 of normalized content."""
    digest = hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()
    return HASH_PREFIX + digest


def is_current_hash(value: Optional[str]) -> bool:
    """Whether a stored hash was produced by the current algorithm."""
    return bool(value) and value.startswith(HASH_PREFIX)
