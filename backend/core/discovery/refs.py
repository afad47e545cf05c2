# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Value types passed between discovery strategies, the indexer and the job handlers."""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional

from core.indexing.formats import PRIMARY_FORMAT


@dataclass
class RepoRef:
    """
    A repository reference produced by a discovery strategy.

    Fields a strategy cannot see (curated lists carry no star counts) stay
    None and never overwrite what another strategy stored.
    """
    owner: str
    repo: str
    discovered_via: str = ""
    source_url: Optional[str] = None
    stars: Optional[int] = None
    forks: Optional[int] = None
    default_branch: Optional[str] = None
    archived: Optional[bool] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def key(self) -> str:
        """Case-insensitive merge key."""
        return self.full_name.lower()

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"

    @classmethod
    def from_api(cls, data: Dict[str, Any], discovered_via: str) -> "RepoRef":
        """Build from a repository object returned by the search or forks APIs."""
        return cls(
            owner=data["owner"]["login"],
            repo=data["name"],
            discovered_via=discovered_via,
            stars=data.get("stargazers_count", 0) or 0,
            forks=data.get("forks_count", 0) or 0,
            default_branch=data.get("default_branch"),
            archived=bool(data.get("archived", False)),
        )


@dataclass
class SkillSource:
    """
    Location of one candidate instruction file.

    ``branch`` may be empty, meaning the repository's default branch.
    """
    owner: str
    repo: str
    path: str = "."
    branch: str = ""
    source_format: str = PRIMARY_FORMAT
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Dedup key: owner/repo/path, plus ::format for non-primary formats."""
        base = f"{self.owner}/{self.repo}/{self.path}"
        if self.source_format != PRIMARY_FORMAT:
            base += f"::{self.source_format}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("extra")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkillSource":
        return cls(
            owner=data["owner"],
            repo=data["repo"],
            path=data.get("path") or ".",
            branch=data.get("branch") or "",
            source_format=data.get("source_format") or data.get("sourceFormat") or PRIMARY_FORMAT,
        )
