# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Instruction File Parser - turns raw file text into structured skill metadata.

SKILL.md Format:
```markdown
---
name: pdf-tools
description: "Extract text and tables from PDF files"
version: 1.0.0
license: MIT
compatibility:
  platforms: [claude, codex]
triggers:
  filePatterns: ["*.pdf"]
  keywords: [pdf, extract]
---

## Instructions
...
```

The other formats (AGENTS.md, copilot-instructions.md, .cursorrules,
.windsurfrules) are plain text. Their name and description are synthesized
from optional frontmatter, then repository metadata, then the first
paragraph of the body.
"""

import datetime
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

import yaml

from core.indexing.formats import InstructionFormat, KNOWN_PLATFORMS, get_format

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$")
MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024
MIN_PARAGRAPH_LENGTH = 20
RESERVED_NAMES = ("test", "example", "demo", "skill", "template")


def _as_list(value: Any) -> List[str]:
    """Frontmatter list field as strings; a lone scalar becomes a one-item list."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]


# =============================================================================
# Structured metadata
# =============================================================================

@dataclass
class Compatibility:
    """Platform compatibility declared by a skill."""
    platforms: List[str] = field(default_factory=list)
    requires: List[str] = field(default_factory=list)
    min_version: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "Compatibility":
        known = {"platforms", "requires", "minVersion", "min_version"}
        return cls(
            platforms=_as_list(raw.get("platforms")),
            requires=_as_list(raw.get("requires")),
            min_version=str(raw.get("minVersion") or raw.get("min_version") or "") or None,
            extra={k: v for k, v in raw.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"platforms": self.platforms}
        if self.requires:
            data["requires"] = self.requires
        if self.min_version:
            data["minVersion"] = self.min_version
        data.update(self.extra)
        return data


@dataclass
class Triggers:
    """When an agent should activate a skill."""
    file_patterns: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> "Triggers":
        # A bare list of phrases is treated as keywords
        if isinstance(raw, list):
            return cls(keywords=[str(k) for k in raw])
        known = {"filePatterns", "file_patterns", "keywords", "languages"}
        return cls(
            file_patterns=_as_list(raw.get("filePatterns") or raw.get("file_patterns")),
            keywords=_as_list(raw.get("keywords")),
            languages=_as_list(raw.get("languages")),
            extra={k: v for k, v in raw.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filePatterns": self.file_patterns,
            "keywords": self.keywords,
            "languages": self.languages,
        }
        data.update(self.extra)
        return data


@dataclass
class SkillMetadata:
    name: str
    description: str
    version: Optional[str] = None
    license: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None
    compatibility: Optional[Compatibility] = None
    triggers: Optional[Triggers] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationIssue:
    code: str
    message: str
    field: Optional[str] = None


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, field_name: Optional[str] = None):
        self.errors.append(ValidationIssue(code, message, field_name))

    def warn(self, code: str, message: str, field_name: Optional[str] = None):
        self.warnings.append(ValidationIssue(code, message, field_name))

    def summary(self) -> str:
        return ", ".join(e.message for e in self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [asdict(e) for e in self.errors],
            "warnings": [asdict(w) for w in self.warnings],
        }


@dataclass
class ParsedSkill:
    """Parsed instruction file."""
    metadata: SkillMetadata
    content: str
    source_format: str
    validation: ValidationResult
    raw_frontmatter: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RepoMetadata:
    """Repository fields the parser and indexer need."""
    owner: str
    name: str
    description: Optional[str] = None
    stars: int = 0
    forks: int = 0
    default_branch: str = "main"
    license: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    archived: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RepoMetadata":
        license_info = data.get("license") or {}
        return cls(
            owner=data["owner"]["login"],
            name=data["name"],
            description=data.get("description"),
            stars=data.get("stargazers_count", 0) or 0,
            forks=data.get("forks_count", 0) or 0,
            default_branch=data.get("default_branch") or "main",
            license=license_info.get("spdx_id") if isinstance(license_info, dict) else None,
            created_at=data.get("created_at"),
            updated_at=data.get("pushed_at") or data.get("updated_at"),
            archived=bool(data.get("archived", False)),
        )


# =============================================================================
# Parsing
# =============================================================================

def _json_safe(value: Any) -> Any:
    """YAML scalars the JSON columns cannot store (dates, binary, sets) become strings or lists."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def parse_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """
    Split YAML frontmatter from markdown content.

    Frontmatter is delimited by --- at start and end. Invalid YAML is
    logged and treated as no frontmatter. Values are made JSON-safe
    (dates as ISO strings).

    Returns:
        Tuple of (frontmatter dict, remaining body content)
    """
    text = content.lstrip("\ufeff")
    if not text.startswith("---"):
        return {}, content

    end_idx = text.find("\n---", 3)
    if end_idx == -1:
        return {}, content

    frontmatter_str = text[3:end_idx].strip()
    body = text[end_idx + 4:].strip("\n")

    try:
        frontmatter = yaml.safe_load(frontmatter_str) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Invalid YAML in frontmatter: {e}")
        return {}, content

    if not isinstance(frontmatter, dict):
        return {}, content
    return _json_safe(frontmatter), body


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _validate_name(name: Any, result: ValidationResult):
    if not isinstance(name, str):
        result.error("INVALID_NAME_TYPE", "Name must be a string", "name")
        return
    if len(name) > MAX_NAME_LENGTH:
        result.error("NAME_TOO_LONG", f"Name exceeds {MAX_NAME_LENGTH} characters", "name")
    if not NAME_PATTERN.match(name):
        result.error(
            "INVALID_NAME_FORMAT",
            'Name must be lowercase alphanumeric with hyphens (e.g., "my-skill")',
            "name"
        )
    if name in RESERVED_NAMES:
        result.warn("RESERVED_NAME", f'"{name}" is a reserved name and may cause conflicts', "name")


def _validate_compatibility(raw: Any, result: ValidationResult) -> Optional[Compatibility]:
    if not isinstance(raw, dict):
        result.error("INVALID_COMPATIBILITY", "Compatibility must be an object", "compatibility")
        return None
    platforms = raw.get("platforms")
    if platforms is not None and not isinstance(platforms, list):
        result.error("INVALID_PLATFORMS", "Platforms must be an array", "compatibility.platforms")
        return None
    for platform in platforms or []:
        if platform not in KNOWN_PLATFORMS:
            result.warn("UNKNOWN_PLATFORM", f"Unknown platform: {platform}", "compatibility.platforms")
    return Compatibility.from_raw(raw)


def parse_skill_md(content: str) -> ParsedSkill:
    """Parse a SKILL.md file; name and description are required."""
    frontmatter, body = parse_frontmatter(content)
    result = ValidationResult()

    name = frontmatter.get("name")
    if not name:
        result.error("MISSING_NAME", "Missing required field: name", "name")
    else:
        _validate_name(name, result)

    description = frontmatter.get("description")
    if not description:
        result.error("MISSING_DESCRIPTION", "Missing required field: description", "description")
    elif isinstance(description, str) and len(description) > MAX_DESCRIPTION_LENGTH:
        result.warn("DESCRIPTION_TOO_LONG", f"Description exceeds {MAX_DESCRIPTION_LENGTH} characters", "description")

    compatibility = None
    if frontmatter.get("compatibility"):
        compatibility = _validate_compatibility(frontmatter["compatibility"], result)

    triggers = None
    raw_triggers = frontmatter.get("triggers")
    if isinstance(raw_triggers, (dict, list)):
        triggers = Triggers.from_raw(raw_triggers)
    elif raw_triggers:
        result.warn("INVALID_TRIGGERS", "Triggers must be an object or a list", "triggers")

    known = {"name", "description", "version", "license", "author", "homepage", "compatibility", "triggers"}
    metadata = SkillMetadata(
        name=str(name or ""),
        description=str(description or ""),
        version=_optional_str(frontmatter.get("version")),
        license=_optional_str(frontmatter.get("license")),
        author=_optional_str(frontmatter.get("author")),
        homepage=_optional_str(frontmatter.get("homepage")),
        compatibility=compatibility,
        triggers=triggers,
        extra={k: v for k, v in frontmatter.items() if k not in known},
    )
    return ParsedSkill(metadata, body.strip(), get_format(None).key, result, frontmatter)


def sanitize_skill_name(value: str) -> str:
    """Lowercase kebab-case, at most 64 characters; 'skill' when nothing survives."""
    name = re.sub(r"[^a-z0-9-]", "-", (value or "").lower())
    name = re.sub(r"-+", "-", name).strip("-")
    return name[:MAX_NAME_LENGTH] or "skill"


def extract_first_paragraph(content: str) -> Optional[str]:
    """First run of non-heading lines at least 20 characters long."""
    current = ""
    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            if len(current) >= MIN_PARAGRAPH_LENGTH:
                return current.strip()
            current = ""
            continue
        current += " " + stripped
    if len(current) >= MIN_PARAGRAPH_LENGTH:
        return current.strip()
    return None


def parse_generic(content: str, fmt: InstructionFormat, repo: RepoMetadata) -> ParsedSkill:
    """Parse a plain-text instruction file, synthesizing name and description."""
    frontmatter, body = parse_frontmatter(content)
    result = ValidationResult()

    name = sanitize_skill_name(str(frontmatter.get("name") or repo.name))
    description = (
        _optional_str(frontmatter.get("description"))
        or repo.description
        or extract_first_paragraph(body)
        or f"{fmt.label} from {repo.owner}/{repo.name}"
    )

    metadata = SkillMetadata(
        name=name,
        description=description[:MAX_DESCRIPTION_LENGTH],
        version=_optional_str(frontmatter.get("version")),
        license=_optional_str(frontmatter.get("license")),
        author=_optional_str(frontmatter.get("author")) or repo.owner,
        compatibility=Compatibility(platforms=[fmt.platform]),
    )
    return ParsedSkill(metadata, body.strip(), fmt.key, result, frontmatter)


def parse_instruction_file(content: str, fmt: InstructionFormat, repo: RepoMetadata) -> ParsedSkill:
    """
    Parse and validate any supported format.

    Content shorter than the format's minimum length is an error for every
    format, as is an empty body.
    """
    if fmt.has_frontmatter:
        parsed = parse_skill_md(content)
    else:
        parsed = parse_generic(content, fmt, repo)

    if not parsed.content:
        parsed.validation.error("EMPTY_CONTENT", "Instruction file content is empty")
    elif len(parsed.content) < fmt.min_length:
        parsed.validation.error(
            "CONTENT_TOO_SHORT",
            f"Content is too short for {fmt.label} (minimum {fmt.min_length} chars)"
        )
    return parsed


__all__ = [
    "Compatibility",
    "Triggers",
    "SkillMetadata",
    "ValidationResult",
    "ParsedSkill",
    "RepoMetadata",
    "parse_frontmatter",
    "parse_skill_md",
    "parse_generic",
    "parse_instruction_file",
    "sanitize_skill_name",
    "extract_first_paragraph",
]
