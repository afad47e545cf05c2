# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Tests for canonical selection and the curation engine.

The engine runs against the in-memory repository; every step persists
through save_curation_updates exactly like the SQL implementation.
"""
import copy
import datetime

import pytest

from core.curation.engine import CurationEngine, STEP_NAMES
from core.curation.rules import CatalogEntry, is_canonical, select_canonical
from core.indexing.hashing import content_hash

NOW = datetime.datetime(2025, 6, 1, tzinfo=datetime.timezone.utc)
PDF_SKILL = "---\nname: pdf\ndescription: PDF helper\n---\nRead, split and merge PDF documents on request."


def days_ago(days):
    return NOW - datetime.timedelta(days=days)


def entry(skill_id, **values):
    owner, repo, name = skill_id.split("/")
    return CatalogEntry(id=skill_id, name=name, github_owner=owner, github_repo=repo, **values)


def add_repo_skills(repository, owner, repo, count, **values):
    for i in range(count):
        repository.add_skill(f"{owner}/{repo}/skill-{i}", **values)


def step_result(report, number):
    return report.steps[f"{number}:{STEP_NAMES[number]}"]


# =============================================================================
# Canonical selection
# =============================================================================

class TestIsCanonical:
    def test_standalone_beats_aggregator_regardless_of_stars_and_age(self):
        standalone = entry("solo/pdf/pdf", skill_type="standalone", github_stars=5, repo_created_at=days_ago(10))
        aggregator = entry("big/market/pdf", skill_type="aggregator", github_stars=5000, repo_created_at=days_ago(200))

        assert is_canonical(standalone, aggregator)
        assert not is_canonical(aggregator, standalone)

    def test_much_older_repository_wins_over_stars(self):
        older = entry("a/r/pdf", github_stars=5, repo_created_at=days_ago(300))
        newer = entry("b/r/pdf", github_stars=500, repo_created_at=days_ago(150))

        assert is_canonical(older, newer)
        assert not is_canonical(newer, older)

    def test_stars_decide_within_age_gap(self):
        older = entry("a/r/pdf", github_stars=5, repo_created_at=days_ago(100))
        popular = entry("b/r/pdf", github_stars=500, repo_created_at=days_ago(60))

        assert is_canonical(popular, older)

    def test_forks_then_age_then_index_date_then_id(self):
        a = entry("a/r/pdf", github_stars=1, github_forks=3)
        b = entry("b/r/pdf", github_stars=1, github_forks=1)
        assert is_canonical(a, b)

        c = entry("c/r/pdf", repo_created_at=days_ago(20))
        d = entry("d/r/pdf", repo_created_at=days_ago(10))
        assert is_canonical(c, d)

        e = entry("e/r/pdf", created_at=days_ago(2))
        f = entry("f/r/pdf", created_at=days_ago(5))
        assert is_canonical(f, e)

        assert is_canonical(entry("a/r/x"), entry("b/r/x"))
        assert not is_canonical(entry("b/r/x"), entry("a/r/x"))

    def test_select_canonical_is_order_independent(self):
        group = [
            entry("copy/r/pdf", skill_type="standalone", github_stars=1, repo_created_at=days_ago(5)),
            entry("market/r/pdf", skill_type="aggregator", github_stars=5000, repo_created_at=days_ago(10)),
            entry("orig/r/pdf", skill_type="standalone", github_stars=5, repo_created_at=days_ago(200)),
        ]

        assert select_canonical(group).id == "orig/r/pdf"
        assert select_canonical(list(reversed(group))).id == "orig/r/pdf"


# =============================================================================
# Engine
# =============================================================================

@pytest.fixture
def duplicated(repository):
    repository.add_skill(
        "orig/skill/pdf", raw_content=PDF_SKILL, github_stars=5, repo_created_at=days_ago(200)
    )
    repository.add_skill(
        "agg/marketplace/pdf", raw_content=PDF_SKILL, skill_type="aggregator",
        github_stars=5000, repo_created_at=days_ago(10)
    )
    repository.add_skill(
        "copy/skill/pdf", raw_content=PDF_SKILL + "\n", github_stars=1, repo_created_at=days_ago(5)
    )
    for skill_id in ("orig/skill/pdf", "agg/marketplace/pdf", "copy/skill/pdf"):
        repository.links[skill_id] = ["cat-documents"]
    return repository


class TestCurationEngine:
    def test_duplicates_resolve_to_one_canonical(self, duplicated):
        report = CurationEngine(duplicated).run()

        skills = duplicated.skills
        assert [s for s in ("orig/skill/pdf", "agg/marketplace/pdf", "copy/skill/pdf") if not skills[s]["is_duplicate"]] == ["orig/skill/pdf"]
        assert skills["agg/marketplace/pdf"]["canonical_skill_id"] == "orig/skill/pdf"
        assert skills["copy/skill/pdf"]["canonical_skill_id"] == "orig/skill/pdf"
        assert skills["orig/skill/pdf"]["canonical_skill_id"] is None
        assert step_result(report, 5)["groups"] == 1
        assert step_result(report, 5)["duplicates"] == 2

    def test_missing_hashes_are_filled(self, duplicated):
        CurationEngine(duplicated).run()

        assert duplicated.skills["orig/skill/pdf"]["content_hash"] == content_hash(PDF_SKILL)
        assert duplicated.skills["copy/skill/pdf"]["content_hash"] == content_hash(PDF_SKILL)

    def test_stale_hash_version_triggers_full_rehash(self, repository):
        repository.add_skill("a/r/one", raw_content="first body", content_hash="d41d8cd98f00b204e9800998ecf8427e")
        repository.add_skill("b/r/two", raw_content="second body", content_hash=content_hash("outdated"))
        repository.add_skill("c/r/gone", raw_content=None, content_hash="0cc175b9c0f1b6a831c399e269772661")
        repository.add_skill("d/r/kept", raw_content=None, content_hash=content_hash("kept body"))

        report = CurationEngine(repository).run(step=4)

        assert step_result(report, 4)["full_rehash"] is True
        assert repository.skills["a/r/one"]["content_hash"] == content_hash("first body")
        assert repository.skills["b/r/two"]["content_hash"] == content_hash("second body")
        assert repository.skills["c/r/gone"]["content_hash"] is None
        assert repository.skills["d/r/kept"]["content_hash"] == content_hash("kept body")
        assert step_result(report, 4)["cleared"] == 1

    def test_classification(self, repository):
        add_repo_skills(repository, "acme", "everything", 50)
        add_repo_skills(repository, "acme", "awesome-skills", 12)
        add_repo_skills(repository, "solo", "trio", 3)
        repository.add_skill("me/dotfiles/my-project-config")
        repository.add_skill("solo/pdf/pdf-tools")

        CurationEngine(repository).run()

        skills = repository.skills
        assert skills["acme/everything/skill-0"]["skill_type"] == "aggregator"
        assert skills["acme/everything/skill-0"]["repo_skill_count"] == 50
        assert skills["acme/awesome-skills/skill-3"]["skill_type"] == "aggregator"
        assert skills["solo/trio/skill-1"]["skill_type"] == "collection"
        assert skills["me/dotfiles/my-project-config"]["skill_type"] == "project-bound"
        assert skills["solo/pdf/pdf-tools"]["skill_type"] == "standalone"

    def test_existing_classification_is_kept(self, repository):
        repository.add_skill("solo/pdf/pdf-tools", skill_type="collection")

        CurationEngine(repository).run()

        assert repository.skills["solo/pdf/pdf-tools"]["skill_type"] == "collection"

    def test_fork_marketplaces(self, repository):
        for owner in ("a", "b", "c"):
            add_repo_skills(repository, owner, "Skills-Hub" if owner == "c" else "skills-hub", 20)
        add_repo_skills(repository, "d", "unique-pack", 20)

        report = CurationEngine(repository).run()

        assert repository.skills["a/skills-hub/skill-0"]["skill_type"] == "aggregator"
        assert repository.skills["c/Skills-Hub/skill-0"]["skill_type"] == "aggregator"
        assert repository.skills["d/unique-pack/skill-0"]["skill_type"] == "collection"
        assert step_result(report, 6)["marketplaces"] == {"skills-hub": 3}

    def test_category_counts_use_browse_ready_records(self, duplicated):
        report = CurationEngine(duplicated).run()

        assert duplicated.categories["cat-documents"] == 1
        assert duplicated.categories["cat-devops"] == 0
        assert "cat-devops" in step_result(report, 7)["empty"]

    def test_blocked_records_are_ignored(self, duplicated):
        duplicated.add_skill("orig/skill/blocked", is_blocked=True, raw_content=PDF_SKILL)

        CurationEngine(duplicated).run()

        blocked = duplicated.skills["orig/skill/blocked"]
        assert blocked["is_duplicate"] is False
        assert blocked["skill_type"] is None
        assert duplicated.skills["orig/skill/pdf"]["repo_skill_count"] == 1

    def test_summary(self, duplicated):
        report = CurationEngine(duplicated).run()

        summary = step_result(report, 8)
        assert summary["total"] == 3
        assert summary["unique"] == 1
        assert summary["duplicates"] == 2
        assert summary["browse_ready"] == 1
        assert summary["top_standalone"] == [{"id": "orig/skill/pdf", "stars": 5}]

    def test_dry_run_writes_nothing(self, duplicated):
        before_skills = copy.deepcopy(duplicated.skills)
        before_categories = dict(duplicated.categories)

        report = CurationEngine(duplicated).run(dry_run=True)

        assert duplicated.skills == before_skills
        assert duplicated.categories == before_categories
        assert report.dry_run is True
        assert step_result(report, 5)["duplicates"] == 2
        assert step_result(report, 5)["changed"] == 2

    def test_second_run_changes_nothing(self, duplicated):
        CurationEngine(duplicated).run()
        report = CurationEngine(duplicated).run()

        for number in range(1, 7):
            assert step_result(report, number)["changed"] == 0

    def test_single_step(self, duplicated):
        report = CurationEngine(duplicated).run(step=1)

        assert list(report.steps) == ["1:repo-skill-count"]
        assert duplicated.skills["orig/skill/pdf"]["repo_skill_count"] == 1
        assert duplicated.skills["orig/skill/pdf"]["skill_type"] is None

    def test_unknown_step(self, duplicated):
        with pytest.raises(ValueError):
            CurationEngine(duplicated).run(step=9)

    def test_report_to_dict(self, duplicated):
        data = CurationEngine(duplicated).run(dry_run=True).to_dict()

        assert data["dry_run"] is True
        assert len(data["steps"]) == 8
