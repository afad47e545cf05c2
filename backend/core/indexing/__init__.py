# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Instruction-file indexing: formats, parsing, hashing, security scan,
categorization and the skill indexer itself (``core.indexing.indexer``).
"""

from core.indexing.formats import FORMATS, PRIMARY_FORMAT, InstructionFormat, get_format
from core.indexing.hashing import content_hash, is_current_hash

__all__ = [
    "FORMATS",
    "PRIMARY_FORMAT",
    "InstructionFormat",
    "get_format",
    "content_hash",
    "is_current_hash",
]
