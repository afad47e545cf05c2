# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Batch classification and duplicate resolution over the skill catalog."""

from core.curation.rules import CatalogEntry, is_canonical, select_canonical
from core.curation.engine import CurationEngine, CurationReport, STEP_NAMES

__all__ = [
    "CatalogEntry",
    "is_canonical",
    "select_canonical",
    "CurationEngine",
    "CurationReport",
    "STEP_NAMES",
]
