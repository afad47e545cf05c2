# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Content security scan for indexed instruction files.

Pattern checks for prompt injection, data exfiltration and hardcoded
credentials. Each finding deducts from a score of 100 by severity; any
critical finding fails the file, any high finding warns.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern

from models.enums import SecurityStatus

SEVERITY_PENALTY: Dict[str, int] = {"critical": 30, "high": 20, "medium": 10, "low": 5}


@dataclass(frozen=True)
class PatternCheck:
    pattern: Pattern
    severity: str
    issue_type: str
    description: str


@dataclass
class SecurityIssue:
    severity: str
    issue_type: str
    description: str
    line: int


@dataclass
class SecurityReport:
    score: int
    status: SecurityStatus
    issues: List[SecurityIssue] = field(default_factory=list)


def _check(pattern: str, severity: str, issue_type: str, description: str) -> PatternCheck:
    return PatternCheck(re.compile(pattern, re.IGNORECASE), severity, issue_type, description)


PROMPT_INJECTION_PATTERNS = [
    _check(r"ignore\s+(all\s+)?previous\s+instructions", "high", "prompt_injection",
           "Prompt injection: ignore previous instructions"),
    _check(r"disregard\s+(all\s+)?prior\s+instructions", "high", "prompt_injection",
           "Prompt injection: disregard prior instructions"),
    _check(r"you\s+are\s+now\s+in\s+.*mode", "medium", "prompt_injection",
           "Prompt injection: mode switching attempt"),
    _check(r"system\s*:\s*you\s+are", "high", "prompt_injection",
           "Prompt injection: fake system message"),
    _check(r"\[SYSTEM\]", "medium", "prompt_injection",
           "Prompt injection: system tag in content"),
    _check(r"forget\s+(everything|all)\s+(you\s+)?know", "high", "prompt_injection",
           "Prompt injection: memory wipe attempt"),
]

DATA_EXFILTRATION_PATTERNS = [
    _check(r"send.*to.*external", "high", "data_exfiltration", "Potential data exfiltration instruction"),
    _check(r"upload.*credentials", "critical", "data_exfiltration", "Instruction to upload credentials"),
    _check(r"transmit.*api[_-]?key", "critical", "data_exfiltration", "Instruction to transmit API keys"),
    _check(r"exfiltrate", "critical", "data_exfiltration", "Explicit exfiltration instruction"),
    _check(r"base64.*encode.*secret", "high", "data_exfiltration", "Encoding secrets pattern"),
]

CREDENTIAL_PATTERNS = [
    _check(r"password\s*[=:]\s*[\"'][^\"']+[\"']", "critical", "credential_exposure",
           "Hardcoded password detected"),
    _check(r"api[_-]?key\s*[=:]\s*[\"'][a-zA-Z0-9]{20,}[\"']", "critical", "credential_exposure",
           "Hardcoded API key detected"),
    _check(r"secret\s*[=:]\s*[\"'][^\"']{10,}[\"']", "high", "credential_exposure",
           "Hardcoded secret detected"),
    _check(r"private[_-]?key\s*[=:]", "critical", "credential_exposure",
           "Private key assignment detected"),
]

CONTENT_CHECKS = PROMPT_INJECTION_PATTERNS + DATA_EXFILTRATION_PATTERNS + CREDENTIAL_PATTERNS


def scan_content(content: str) -> SecurityReport:
    """Run every content check once; a check reports its first match only."""
    issues: List[SecurityIssue] = []
    for check in CONTENT_CHECKS:
        match = check.pattern.search(content)
        if match:
            line = content.count("\n", 0, match.start()) + 1
            issues.append(SecurityIssue(check.severity, check.issue_type, check.description, line))

    score = 100 - sum(SEVERITY_PENALTY[i.severity] for i in issues)
    if any(i.severity == "critical" for i in issues):
        status = SecurityStatus.FAIL
    elif any(i.severity == "high" for i in issues):
        status = SecurityStatus.WARNING
    else:
        status = SecurityStatus.PASS
    return SecurityReport(score=max(0, score), status=status, issues=issues)
