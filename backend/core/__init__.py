# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Core modules for the SkillHub indexer.

- discovery: repository and file discovery strategies
- indexing: instruction-file parsing, hashing and the skill indexer
- curation: batch classification and duplicate resolution
- task_queue / task_handlers: durable job queue and job handlers
- exceptions / error_handlers: error hierarchy and FastAPI handlers
"""
