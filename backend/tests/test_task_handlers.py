# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Tests for the job handlers.

Handlers run against the IndexerContext fixture, so every GitHub call is
served by FakePool and every write lands in InMemoryCatalogRepository.
"""
import pytest

from core.discovery.curated_lists import KNOWN_CURATED_LISTS
from core.discovery.refs import RepoRef, SkillSource
from core.exceptions import JobError, RateLimitError
from core.indexing.formats import FORMATS, PRIMARY_FORMAT
from core.task_handlers import (
    NO_SKILL_FILE_MESSAGE,
    NOTHING_INDEXED_MESSAGE,
    PhaseReporter,
    handle_awesome_lists,
    handle_curate,
    handle_deep_scan,
    handle_discover_repos,
    handle_full_crawl,
    handle_index_skill,
    handle_multi_platform,
    handle_process_add_requests,
    index_sources,
    parse_repository_url,
)
from tests.fakes import RecordingReporter


SKILL_MD = """---
name: pdf-tools
description: Extract text and tables from PDF files
---
Use this skill whenever the user asks to read, split or merge PDF documents.
"""


SCALAR_TRIGGERS_SKILL_MD = """---
name: odd-triggers
description: Skill whose trigger keywords are a bare number
triggers:
  keywords: 5
---
Use this skill whenever the user asks to read, split or merge PDF documents.
"""


@pytest.fixture
def seeded(pool):
    pool.add_repo("acme", "tools")
    pool.add_file("acme", "tools", "skills/pdf/SKILL.md", SKILL_MD)
    return pool


class TestParseRepositoryUrl:
    def test_plain_url(self):
        assert parse_repository_url("https://github.com/acme/tools") == ("acme", "tools")

    def test_git_suffix_and_extra_path(self):
        assert parse_repository_url("https://github.com/acme/tools.git") == ("acme", "tools")
        assert parse_repository_url("https://github.com/acme/tools/tree/main/skills ") == ("acme", "tools")

    def test_invalid_url(self):
        with pytest.raises(ValueError):
            parse_repository_url("https://github.com/acme")
        with pytest.raises(ValueError):
            parse_repository_url("")


class TestPhaseReporter:
    @pytest.mark.asyncio
    async def test_maps_progress_into_slice(self):
        parent = RecordingReporter()
        phase = PhaseReporter(parent, 35, 65)

        await phase.update(0)
        await phase.update(50)
        await phase.update(100)

        assert parent.values == [35, 50, 65]
        assert phase.job_id == "test"


class TestIndexSources:
    @pytest.mark.asyncio
    async def test_counts_each_outcome(self, ctx, seeded, reporter):
        seeded.add_file("acme", "tools", "skills/bad/SKILL.md", "no frontmatter at all in this file")
        sources = [
            SkillSource("acme", "tools", "skills/pdf"),
            SkillSource("acme", "tools", "skills/bad"),
            SkillSource("acme", "tools", "skills/missing"),
        ]

        counts = await index_sources(ctx, sources, reporter, max_concurrent=2)

        assert counts == {"indexed": 1, "unchanged": 0, "skipped": 1, "failed": 1}
        assert reporter.values


class TestIndexSkill:
    @pytest.mark.asyncio
    async def test_indexes_source(self, ctx, seeded, reporter, repository):
        result = await handle_index_skill(
            ctx, {"source": {"owner": "acme", "repo": "tools", "path": "skills/pdf"}}, reporter
        )

        assert result["status"] == "indexed"
        assert result["skillId"] == "acme/tools/pdf-tools"
        assert "acme/tools/pdf-tools" in repository.skills
        assert reporter.values[-1] == 100

    @pytest.mark.asyncio
    async def test_missing_source(self, ctx, reporter):
        with pytest.raises(JobError):
            await handle_index_skill(ctx, {}, reporter)


class TestFullCrawl:
    @pytest.mark.asyncio
    async def test_indexes_code_search_results(self, ctx, seeded, reporter, repository):
        seeded.code_results["filename:SKILL.md"] = [{
            "name": "SKILL.md",
            "path": "skills/pdf/SKILL.md",
            "repository": {"owner": {"login": "acme"}, "name": "tools"},
        }]

        result = await handle_full_crawl(ctx, {"maxPages": 1}, reporter)

        assert result["stats"]["discovered"] == 1
        assert result["stats"]["indexed"] == 1
        assert ("wait_for_budget", 0.33) in seeded.calls
        assert "acme/tools/pdf-tools" in repository.skills


class TestAddRequests:
    @pytest.mark.asyncio
    async def test_no_pending_requests(self, ctx, reporter):
        result = await handle_process_add_requests(ctx, {}, reporter)
        assert result["stats"] == {"pending": 0, "indexed": 0}

    @pytest.mark.asyncio
    async def test_request_is_indexed(self, ctx, seeded, reporter, repository):
        repository.add_request(
            "req-1", repository_url="https://github.com/acme/tools", skill_path="skills/pdf", has_skill_md=True
        )

        result = await handle_process_add_requests(ctx, {}, reporter)

        assert result["stats"]["indexed"] == 1
        assert repository.add_requests["req-1"]["status"] == "indexed"
        assert repository.add_requests["req-1"]["indexed_skill_id"] == "acme/tools/pdf-tools"

    @pytest.mark.asyncio
    async def test_existing_skill_is_reused(self, ctx, seeded, reporter, repository):
        repository.add_skill("acme/tools/pdf")
        repository.add_request(
            "req-1", repository_url="https://github.com/acme/tools", skill_path="skills/pdf", has_skill_md=True
        )

        await handle_process_add_requests(ctx, {}, reporter)

        assert repository.add_requests["req-1"]["indexed_skill_id"] == "acme/tools/pdf"
        assert not [c for c in seeded.calls if c[0] == "get_file_text"]

    @pytest.mark.asyncio
    async def test_request_without_skill_file_needs_review(self, ctx, reporter, repository):
        repository.add_request("req-1", repository_url="https://github.com/acme/tools")

        result = await handle_process_add_requests(ctx, {}, reporter)

        assert result["stats"]["needsReview"] == 1
        assert repository.add_requests["req-1"]["status"] == "approved"
        assert repository.add_requests["req-1"]["error_message"] == NO_SKILL_FILE_MESSAGE

    @pytest.mark.asyncio
    async def test_nothing_indexed(self, ctx, seeded, reporter, repository):
        repository.add_request(
            "req-1", repository_url="https://github.com/acme/tools", skill_path="skills/missing", has_skill_md=True
        )

        result = await handle_process_add_requests(ctx, {}, reporter)

        assert result["stats"]["approved"] == 1
        assert repository.add_requests["req-1"]["error_message"] == NOTHING_INDEXED_MESSAGE

    @pytest.mark.asyncio
    async def test_invalid_url_is_recorded(self, ctx, reporter, repository):
        repository.add_request("req-1", repository_url="not a url", skill_path="skills/pdf", has_skill_md=True)

        result = await handle_process_add_requests(ctx, {}, reporter)

        assert result["stats"]["failed"] == 1
        assert repository.add_requests["req-1"]["status"] == "approved"
        assert repository.add_requests["req-1"]["error_message"] == "Invalid repository URL"

    @pytest.mark.asyncio
    async def test_low_quota_defers_remaining_requests(self, ctx, seeded, reporter, repository):
        for request_id in ("req-1", "req-2"):
            repository.add_request(
                request_id, repository_url="https://github.com/acme/tools", skill_path="skills/pdf", has_skill_md=True
            )
        seeded.budget = False

        result = await handle_process_add_requests(ctx, {}, reporter)

        assert result["stats"]["deferred"] == 2
        assert result["stats"]["indexed"] == 0
        assert all(r["status"] == "pending" for r in repository.add_requests.values())


class TestDiscoveryHandlers:
    @pytest.mark.asyncio
    async def test_awesome_lists_saves_references(self, ctx, pool, reporter, repository):
        first = KNOWN_CURATED_LISTS[0]
        pool.add_file(first.owner, first.repo, first.path, "- https://github.com/acme/tools\n- https://github.com/beta/kit")

        result = await handle_awesome_lists(ctx, {}, reporter)

        assert result["stats"] == {"lists": len(KNOWN_CURATED_LISTS), "discovered": 2}
        assert set(repository.discovered) == {"acme/tools", "beta/kit"}
        assert repository.curated[first.id]["repo_count"] == 2

    @pytest.mark.asyncio
    async def test_deep_scan_indexes_discovered_repositories(self, ctx, seeded, reporter, repository):
        seeded.trees[("acme", "tools", "main")] = {"tree": [{"path": "skills/pdf/SKILL.md", "type": "blob"}]}
        repository.upsert_discovered_repos([
            RepoRef("acme", "tools", "topic-search", stars=20),
            RepoRef("gone", "repo", "topic-search", stars=5),
        ])

        result = await handle_deep_scan(ctx, {}, reporter)

        assert result["stats"]["scanned"] == 2
        assert result["stats"]["discovered"] == 1
        assert result["stats"]["indexed"] == 1
        assert repository.discovered["acme/tools"]["has_skill_md"] is True
        assert repository.discovered["gone/repo"]["skill_count"] == 0

        again = await handle_deep_scan(ctx, {}, reporter)
        assert again["stats"]["scanned"] == 0

    @pytest.mark.asyncio
    async def test_awesome_lists_waits_for_budget_and_keeps_star_counts(self, ctx, pool, reporter, repository):
        first = KNOWN_CURATED_LISTS[0]
        pool.add_file(first.owner, first.repo, first.path, "- https://github.com/acme/tools")
        repository.upsert_discovered_repos([RepoRef("acme", "tools", "topic-search", stars=500)])

        await handle_awesome_lists(ctx, {}, reporter)

        assert ("wait_for_budget", ctx.quota_reserve) in pool.calls
        assert repository.discovered["acme/tools"]["stars"] == 500
        assert repository.discovered["acme/tools"]["discovered_via"] == "topic-search"

    @pytest.mark.asyncio
    async def test_discover_repos_waits_for_budget_per_strategy(self, ctx, pool, reporter):
        await handle_discover_repos(ctx, {"strategies": ["topic-search", "fork-network"]}, reporter)

        assert [c for c in pool.calls if c[0] == "wait_for_budget"] == [("wait_for_budget", ctx.quota_reserve)] * 2

    @pytest.mark.asyncio
    async def test_deep_scan_failures_stay_with_their_item(self, ctx, seeded, reporter, repository):
        seeded.add_repo("aaa", "odd")
        seeded.add_file("aaa", "odd", "SKILL.md", SCALAR_TRIGGERS_SKILL_MD)
        seeded.trees[("aaa", "odd", "main")] = {"tree": [{"path": "SKILL.md", "type": "blob"}]}
        seeded.add_repo("broken", "repo")
        seeded.trees[("acme", "tools", "main")] = {"tree": [
            {"path": "skills/pdf/SKILL.md", "type": "blob"},
            {"path": "skills/boom/SKILL.md", "type": "blob"},
        ]}
        fetch_text = seeded.get_file_text
        fetch_tree = seeded.get_tree

        async def get_file_text(owner, repo, path, ref=None):
            if path == "skills/boom/SKILL.md":
                raise ValueError("unexpected payload")
            return await fetch_text(owner, repo, path, ref)

        async def get_tree(owner, repo, ref, recursive=True):
            if owner == "broken":
                raise RuntimeError("tree exploded")
            return await fetch_tree(owner, repo, ref, recursive)

        seeded.get_file_text = get_file_text
        seeded.get_tree = get_tree
        repository.upsert_discovered_repos([
            RepoRef("aaa", "odd", "topic-search", stars=100),
            RepoRef("broken", "repo", "topic-search", stars=50),
            RepoRef("acme", "tools", "topic-search", stars=20),
        ])

        result = await handle_deep_scan(ctx, {}, reporter)

        stats = result["stats"]
        assert (stats["scanned"], stats["errors"], stats["indexed"], stats["failed"]) == (2, 1, 2, 1)
        assert "aaa/odd/odd-triggers" in repository.skills
        assert "acme/tools/pdf-tools" in repository.skills
        assert repository.discovered["broken/repo"]["scan_error"] == "tree exploded"
        assert repository.discovered["acme/tools"]["skill_count"] == 2

    @pytest.mark.asyncio
    async def test_deep_scan_rate_limit_leaves_repositories_unscanned(self, ctx, seeded, reporter, repository):
        seeded.add_repo("beta", "kit")

        async def get_tree(owner, repo, ref, recursive=True):
            raise RateLimitError(403, "API rate limit exceeded")

        seeded.get_tree = get_tree
        repository.upsert_discovered_repos([
            RepoRef("acme", "tools", "topic-search", stars=20),
            RepoRef("beta", "kit", "topic-search", stars=10),
        ])

        result = await handle_deep_scan(ctx, {}, reporter)

        assert result["stats"]["deferred"] == 2
        assert result["stats"]["scanned"] == 0
        assert result["stats"]["errors"] == 0
        assert all(r["last_scanned_at"] is None for r in repository.discovered.values())

    @pytest.mark.asyncio
    async def test_multi_platform_respects_budget(self, ctx, pool, reporter):
        pool.budget = False

        result = await handle_multi_platform(ctx, {}, reporter)

        assert result["stats"]["byFormat"] == {}
        assert result["stats"]["skippedFormats"] == [k for k in FORMATS if k != PRIMARY_FORMAT]


class TestCurate:
    @pytest.mark.asyncio
    async def test_dry_run(self, ctx, reporter, repository):
        repository.add_skill("acme/tools/pdf", raw_content=SKILL_MD)

        result = await handle_curate(ctx, {"dryRun": True}, reporter)

        assert result["success"] is True
        assert result["dry_run"] is True
        assert repository.skills["acme/tools/pdf"]["skill_type"] is None

    @pytest.mark.asyncio
    async def test_single_step(self, ctx, reporter, repository):
        repository.add_skill("acme/tools/pdf")

        result = await handle_curate(ctx, {"step": 1}, reporter)

        assert list(result["steps"]) == ["1:repo-skill-count"]
