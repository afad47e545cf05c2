# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
SkillHub Indexer Tests

Test organization:
- test_indexing_*.py: Format detection, parsing, hashing, security scan and the indexer
- test_discovery.py: Curated lists, branch selection, code search, deep scan and merging
- test_curation.py: Canonical selection and the curation engine
- test_credentials.py: Credential pool and quota budget
- test_task_queue.py / test_task_handlers.py: Job queue and job handlers
- test_scheduler.py: Recurring schedule
- test_api.py / test_cli.py: Operator API routes, command line and settings
- fakes.py: In-memory repository, API pool and search mirror
"""
