# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Instruction file formats recognized by the crawler.

SKILL.md is the primary, frontmatter-bearing format. The other four are
plain-text instruction files for other agent platforms; copilot instructions
are only valid under .github/, and the dotfile formats only at the repo root.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

PRIMARY_FORMAT = "skill.md"


@dataclass(frozen=True)
class InstructionFormat:
    """One instruction-file pattern and the platform it implies."""
    key: str
    filename: str
    platform: str
    min_length: int
    label: str
    has_frontmatter: bool = False
    path_filter: Optional[str] = None
    root_only: bool = False

    @property
    def id_suffix(self) -> str:
        """Suffix appended to skill ids for non-primary formats."""
        if self.key == PRIMARY_FORMAT:
            return ""
        return "~" + self.key.replace(".", "")

    def matches(self, path: str) -> bool:
        """Whether a repository-relative file path is an instance of this format."""
        if self.root_only:
            return path == self.filename
        at_name = path == self.filename or path.endswith("/" + self.filename)
        if self.path_filter:
            return self.path_filter in path and at_name
        return at_name

    def file_path(self, skill_path: str) -> str:
        """Repository-relative path of the file for a given skill directory."""
        if self.path_filter:
            return f"{self.path_filter.rstrip('/')}/{self.filename}"
        if self.root_only or skill_path in ("", "."):
            return self.filename
        return f"{skill_path.strip('/')}/{self.filename}"


FORMATS: Dict[str, InstructionFormat] = {
    "skill.md": InstructionFormat(
        key="skill.md",
        filename="SKILL.md",
        platform="claude",
        min_length=50,
        label="SKILL.md",
        has_frontmatter=True,
    ),
    "agents.md": InstructionFormat(
        key="agents.md",
        filename="AGENTS.md",
        platform="codex",
        min_length=100,
        label="AGENTS.md",
    ),
    "copilot-instructions": InstructionFormat(
        key="copilot-instructions",
        filename="copilot-instructions.md",
        platform="copilot",
        min_length=100,
        label="Copilot Instructions",
        path_filter=".github/",
    ),
    "cursorrules": InstructionFormat(
        key="cursorrules",
        filename=".cursorrules",
        platform="cursor",
        min_length=100,
        label=".cursorrules",
        root_only=True,
    ),
    "windsurfrules": InstructionFormat(
        key="windsurfrules",
        filename=".windsurfrules",
        platform="windsurf",
        min_length=100,
        label=".windsurfrules",
        root_only=True,
    ),
}

KNOWN_PLATFORMS = ("claude", "codex", "copilot", "cursor", "windsurf")


def get_format(key: Optional[str]) -> InstructionFormat:
    """Look up a format, defaulting to SKILL.md."""
    if not key:
        return FORMATS[PRIMARY_FORMAT]
    try:
        return FORMATS[key]
    except KeyError:
        raise ValueError(f"Unknown source format '{key}'. Known: {list(FORMATS)}")


def match_formats(path: str) -> List[InstructionFormat]:
    """All formats a tree path matches."""
    return [fmt for fmt in FORMATS.values() if fmt.matches(path)]


def skill_dir_for(path: str, fmt: InstructionFormat) -> str:
    """Directory of a matched file, '.' for the repository root."""
    if path == fmt.filename:
        return "."
    return path[: -len(fmt.filename)].rstrip("/") or "."
