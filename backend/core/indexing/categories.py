# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Keyword categorization.

A skill is linked to every category with at least one keyword occurring as a
substring of its lowercased name and description, or to ``cat-other`` when
nothing matches. Categories are ordered from most to least specific.
"""

from typing import Dict, List, Tuple

FALLBACK_CATEGORY = "cat-other"

CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "cat-ai-llm": (
        "llm", "langchain", "llamaindex", "openai", "anthropic", "claude", "gpt",
        "huggingface", "transformer", "embedding", "vector", "rag", "machine-learning",
        "deep-learning", "neural", "pytorch", "tensorflow", "nlp", "text-generation",
        "gemini", "mistral", "llama", "summarize", "summary",
    ),
    "cat-agents": (
        "agent", "agentic", "multi-agent", "autonomous", "orchestrat", "swarm",
        "crew", "autogen", "langgraph", "tool-use", "function-calling",
    ),
    "cat-prompts": (
        "prompt", "prompting", "chain-of-thought", "few-shot", "zero-shot",
        "instruction", "system-prompt",
    ),
    "cat-security": (
        "security", "auth", "oauth", "jwt", "saml", "encrypt", "decrypt", "crypto",
        "ssl", "tls", "certificate", "vulnerab", "pentest", "owasp", "xss", "csrf",
        "rbac", "permission", "vault", "secrets",
    ),
    "cat-mobile": (
        "ios", "android", "react-native", "flutter", "ionic", "expo", "swiftui",
        "kotlin", "mobile-app", "app-store",
    ),
    "cat-mcp": ("mcp", "model-context-protocol", "skill-creator", "superpower", "skillhub", "skill.md"),
    "cat-documents": (
        "pdf", "docx", "xlsx", "pptx", "csv", "document", "excel", "powerpoint",
        "spreadsheet", "presentation", "ocr",
    ),
    "cat-data": (
        "postgres", "mysql", "mongodb", "redis", "elasticsearch", "sqlite", "supabase",
        "firebase", "dynamodb", "neo4j", "sql", "orm", "prisma", "database", "migration",
        "etl", "dbt", "airflow", "spark", "bigquery",
    ),
    "cat-devops": (
        "docker", "kubernetes", "k8s", "container", "helm", "aws", "azure", "gcp",
        "terraform", "pulumi", "ansible", "github-actions", "gitlab-ci", "jenkins",
        "ci-cd", "pipeline", "deploy", "infrastructure", "monitoring", "prometheus", "grafana",
    ),
    "cat-git": (
        "git", "github", "gitlab", "bitbucket", "branch", "merge", "rebase", "commit",
        "pull-request", "worktree", "monorepo",
    ),
    "cat-testing": (
        "jest", "vitest", "mocha", "cypress", "playwright", "selenium", "puppeteer",
        "test", "testing", "tdd", "bdd", "e2e", "coverage", "mock", "stub", "fixture",
        "debug", "bug", "fix",
    ),
    "cat-content": (
        "documentation", "docs", "readme", "changelog", "writing", "writer",
        "copywriting", "blog", "article", "content", "translate", "i18n", "localization",
    ),
    "cat-frontend": (
        "react", "vue", "svelte", "angular", "nextjs", "nuxt", "remix", "astro",
        "tailwind", "shadcn", "frontend", "front-end", "responsive", "css", "component",
        "layout", "animation", "theme", "godot", "unity", "game",
    ),
    "cat-backend": (
        "express", "fastapi", "django", "flask", "rails", "spring", "nestjs", "graphql",
        "rest", "api", "microservice", "middleware", "endpoint", "backend", "back-end",
        "nodejs", "deno",
    ),
    "cat-languages": (
        "python", "javascript", "typescript", "rust", "golang", "java", "ruby", "php",
        "swift", "cpp", "csharp", "dotnet", "scala", "elixir",
    ),
    "cat-productivity": (
        "notes", "note-taking", "reminder", "todo", "task-manager", "calendar",
        "schedule", "productivity", "notion", "obsidian", "logseq", "applescript",
    ),
    "cat-iot": (
        "smart-home", "iot", "home-automation", "homekit", "philips-hue", "sonos",
        "bluetooth", "zigbee", "mqtt", "home-assistant", "camera", "thermostat", "sensor",
    ),
    "cat-multimedia": (
        "spotify", "music", "audio", "video", "playback", "stream", "ffmpeg", "gif",
        "podcast", "tts", "text-to-speech", "speech", "whisper", "transcribe", "subtitle",
    ),
    "cat-social": (
        "twitter", "tweet", "imessage", "sms", "message", "social-media", "linkedin",
        "instagram", "discord-bot", "slack-bot", "telegram-bot", "whatsapp", "reddit",
        "mastodon", "bluesky",
    ),
    "cat-business": (
        "stripe", "payment", "billing", "invoice", "subscription", "financi", "startup",
        "revenue", "pricing", "go-to-market", "crm", "salesforce", "hubspot", "accounting",
        "budget", "forecast",
    ),
    "cat-science": (
        "math", "calculus", "algebra", "geometry", "statistics", "theorem", "equation",
        "physics", "chemistry", "biology", "scientific", "research", "simulation",
        "bioinformatics", "genomics",
    ),
    "cat-blockchain": (
        "blockchain", "web3", "ethereum", "solana", "defi", "nft", "smart-contract",
        "dapp", "staking", "wallet", "metamask", "hardhat", "solidity",
    ),
    FALLBACK_CATEGORY: (),
}

CATEGORY_NAMES: Dict[str, str] = {
    "cat-ai-llm": "AI & LLM",
    "cat-agents": "Agents",
    "cat-prompts": "Prompts",
    "cat-security": "Security",
    "cat-mobile": "Mobile",
    "cat-mcp": "MCP & Skills",
    "cat-documents": "Documents",
    "cat-data": "Data & Databases",
    "cat-devops": "DevOps & Cloud",
    "cat-git": "Git & Version Control",
    "cat-testing": "Testing & Debugging",
    "cat-content": "Content & Docs",
    "cat-frontend": "Frontend",
    "cat-backend": "Backend & APIs",
    "cat-languages": "Languages",
    "cat-productivity": "Productivity",
    "cat-iot": "IoT & Smart Home",
    "cat-multimedia": "Multimedia",
    "cat-social": "Social & Messaging",
    "cat-business": "Business & Finance",
    "cat-science": "Science & Math",
    "cat-blockchain": "Blockchain",
    FALLBACK_CATEGORY: "Other",
}


def match_categories(name: str, description: str) -> List[str]:
    """Category ids for a skill, in specificity order."""
    text = f"{name} {description or ''}".lower()
    matched = [
        category_id
        for category_id, keywords in CATEGORY_KEYWORDS.items()
        if keywords and any(keyword in text for keyword in keywords)
    ]
    return matched or [FALLBACK_CATEGORY]
