# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Tests for instruction-file formats and the SKILL.md / generic parsers."""
import json

import pytest

from core.indexing.formats import FORMATS, get_format, match_formats, skill_dir_for
from core.indexing.parser import (
    RepoMetadata,
    extract_first_paragraph,
    parse_frontmatter,
    parse_instruction_file,
    sanitize_skill_name,
)


SKILL_MD = """---
name: pdf-tools
description: Extract text and tables from PDF files
version: 1.2.0
compatibility:
  platforms: [claude, codex]
triggers: [pdf, extract tables]
category: documents
---
# PDF tools

Use this skill whenever the user asks to read, split or merge PDF documents.
"""

LONG_BODY = (
    "Always run the linter before committing and keep functions short. "
    "Prefer composition over inheritance and write tests for every bug fix."
)


def repo(**values):
    data = dict(owner="acme", name="tools", description=None)
    data.update(values)
    return RepoMetadata(**data)


class TestFormats:
    def test_skill_md_matches_anywhere(self):
        assert [f.key for f in match_formats("skills/pdf/SKILL.md")] == ["skill.md"]
        assert [f.key for f in match_formats("SKILL.md")] == ["skill.md"]

    def test_copilot_instructions_require_github_dir(self):
        assert [f.key for f in match_formats(".github/copilot-instructions.md")] == ["copilot-instructions"]
        assert match_formats("docs/copilot-instructions.md") == []

    def test_root_only_formats(self):
        assert [f.key for f in match_formats(".cursorrules")] == ["cursorrules"]
        assert match_formats("nested/.cursorrules") == []
        assert match_formats("nested/.windsurfrules") == []

    def test_skill_dir_for(self):
        fmt = FORMATS["skill.md"]
        assert skill_dir_for("skills/pdf/SKILL.md", fmt) == "skills/pdf"
        assert skill_dir_for("SKILL.md", fmt) == "."

    def test_file_path(self):
        assert FORMATS["skill.md"].file_path("skills/pdf") == "skills/pdf/SKILL.md"
        assert FORMATS["skill.md"].file_path(".") == "SKILL.md"
        assert FORMATS["agents.md"].file_path("packages/api") == "packages/api/AGENTS.md"
        assert FORMATS["cursorrules"].file_path("anything") == ".cursorrules"
        assert FORMATS["copilot-instructions"].file_path(".github") == ".github/copilot-instructions.md"

    def test_id_suffix(self):
        assert FORMATS["skill.md"].id_suffix == ""
        assert FORMATS["agents.md"].id_suffix == "~agentsmd"
        assert FORMATS["cursorrules"].id_suffix == "~cursorrules"

    def test_get_format_defaults_and_rejects_unknown(self):
        assert get_format(None).key == "skill.md"
        with pytest.raises(ValueError):
            get_format("readme")


class TestFrontmatter:
    def test_splits_yaml_and_body(self):
        frontmatter, body = parse_frontmatter(SKILL_MD)
        assert frontmatter["name"] == "pdf-tools"
        assert body.startswith("# PDF tools")

    def test_no_frontmatter(self):
        frontmatter, body = parse_frontmatter("# Title\n\nText")
        assert frontmatter == {}
        assert body == "# Title\n\nText"

    def test_byte_order_mark_is_ignored(self):
        frontmatter, _ = parse_frontmatter("\ufeff" + SKILL_MD)
        assert frontmatter["name"] == "pdf-tools"

    def test_invalid_yaml_is_treated_as_missing(self):
        frontmatter, _ = parse_frontmatter("---\nname: [unclosed\n---\nbody")
        assert frontmatter == {}

    def test_dates_become_iso_strings(self):
        frontmatter, _ = parse_frontmatter(
            "---\nname: dated\ncreated: 2024-05-01\nhistory:\n  - at: 2024-05-02 10:30:00\n---\nbody"
        )

        assert frontmatter["created"] == "2024-05-01"
        assert frontmatter["history"] == [{"at": "2024-05-02T10:30:00"}]
        json.dumps(frontmatter)


class TestSkillMdParser:
    def test_valid_skill(self):
        parsed = parse_instruction_file(SKILL_MD, get_format("skill.md"), repo())

        assert parsed.validation.is_valid
        assert parsed.metadata.name == "pdf-tools"
        assert parsed.metadata.version == "1.2.0"
        assert parsed.metadata.compatibility.platforms == ["claude", "codex"]
        assert parsed.metadata.triggers.keywords == ["pdf", "extract tables"]
        assert parsed.metadata.extra == {"category": "documents"}
        assert parsed.source_format == "skill.md"

    def test_missing_name_and_description(self):
        content = "---\nversion: 1\n---\n" + LONG_BODY
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        codes = {e.code for e in parsed.validation.errors}
        assert not parsed.validation.is_valid
        assert {"MISSING_NAME", "MISSING_DESCRIPTION"} <= codes

    def test_invalid_name_format(self):
        content = "---\nname: My Skill\ndescription: Something useful\n---\n" + LONG_BODY
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        assert "INVALID_NAME_FORMAT" in {e.code for e in parsed.validation.errors}

    def test_reserved_name_is_only_a_warning(self):
        content = "---\nname: template\ndescription: Starter skill\n---\n" + LONG_BODY
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        assert parsed.validation.is_valid
        assert "RESERVED_NAME" in {w.code for w in parsed.validation.warnings}

    def test_unknown_platform_is_a_warning(self):
        content = (
            "---\nname: lint\ndescription: Lint code\ncompatibility:\n  platforms: [emacs]\n---\n"
            + LONG_BODY
        )
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        assert parsed.validation.is_valid
        assert "UNKNOWN_PLATFORM" in {w.code for w in parsed.validation.warnings}

    def test_short_content_is_rejected(self):
        content = "---\nname: tiny\ndescription: Too small\n---\nShort body."
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        assert "CONTENT_TOO_SHORT" in {e.code for e in parsed.validation.errors}

    def test_empty_body_is_rejected(self):
        content = "---\nname: empty\ndescription: Nothing here\n---\n"
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        assert "EMPTY_CONTENT" in {e.code for e in parsed.validation.errors}

    def test_scalar_trigger_and_requirement_values_become_lists(self):
        content = (
            "---\nname: lint\ndescription: Lint code\n"
            "triggers:\n  keywords: 5\n  languages: python\n"
            "compatibility:\n  platforms: [claude]\n  requires: 5\n---\n"
            + LONG_BODY
        )
        parsed = parse_instruction_file(content, get_format("skill.md"), repo())

        assert parsed.validation.is_valid
        assert parsed.metadata.triggers.keywords == ["5"]
        assert parsed.metadata.triggers.languages == ["python"]
        assert parsed.metadata.compatibility.requires == ["5"]


class TestGenericParser:
    def test_name_from_repo_and_description_from_first_paragraph(self):
        content = "# Rules\n\n" + LONG_BODY
        parsed = parse_instruction_file(content, get_format("cursorrules"), repo(name="My_Repo"))

        assert parsed.validation.is_valid
        assert parsed.metadata.name == "my-repo"
        assert parsed.metadata.description == LONG_BODY
        assert parsed.metadata.author == "acme"
        assert parsed.metadata.compatibility.platforms == ["cursor"]
        assert parsed.source_format == "cursorrules"

    def test_repo_description_wins_over_paragraph(self):
        parsed = parse_instruction_file(
            LONG_BODY, get_format("agents.md"), repo(description="Agent guide for tools")
        )
        assert parsed.metadata.description == "Agent guide for tools"

    def test_fallback_description(self):
        content = "# A\n\nshort\n\n" + "# B\n" * 40
        parsed = parse_instruction_file(content, get_format("windsurfrules"), repo())
        assert parsed.metadata.description == ".windsurfrules from acme/tools"

    def test_too_short_for_generic_format(self):
        parsed = parse_instruction_file("Use tabs.", get_format("agents.md"), repo())
        assert "CONTENT_TOO_SHORT" in {e.code for e in parsed.validation.errors}


class TestHelpers:
    def test_sanitize_skill_name(self):
        assert sanitize_skill_name("Hello World!!") == "hello-world"
        assert sanitize_skill_name("---") == "skill"
        assert len(sanitize_skill_name("a" * 100)) == 64

    def test_extract_first_paragraph_skips_headings_and_short_runs(self):
        text = "# Title\n\nHi\n\nThis paragraph is long enough to count.\nSecond line."
        assert extract_first_paragraph(text) == "This paragraph is long enough to count. Second line."
        assert extract_first_paragraph("# Only\n\nshort") is None
