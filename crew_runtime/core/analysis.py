"""Keyword heuristics that describe a task before anyone runs it."""
from __future__ import annotations

import re
from typing import Any, Literal

Complexity = Literal["low", "medium", "high"]

_DOMAIN_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("backend-development", ("api", "backend", "controller", "database")),
    ("frontend-development", ("ui", "interface", "component", "frontend")),
    ("data-modeling", ("design", "schema", "model", "entity")),
]

_COMPLEXITY_KEYWORDS = ("complex", "difficult", "advanced", "secure", "optimize", "performance")

_SUBTASKS = {
    "backend-development": [
        "Define the controller structure",
        "Implement the REST endpoints",
        "Create validation DTOs",
        "Implement the service logic",
        "Add API documentation",
        "Write unit tests",
    ],
    "frontend-development": [
        "Create the React components",
        "Implement custom hooks",
        "Style the components",
        "Integrate with the API",
        "Add component tests",
    ],
    "data-modeling": [
        "Define entities and relationships",
        "Write the Prisma schema",
        "Define indexes and constraints",
        "Prepare migrations",
    ],
}

_DEPENDENCIES = {
    "backend-development": ["Data model definition", "Database connection configuration"],
    "frontend-development": ["Backend API implemented", "Interface design defined"],
}

_AGENTS = {
    "backend-development": ["Backend Developer", "Database Designer"],
    "frontend-development": ["Frontend Developer", "UI Designer"],
    "data-modeling": ["Database Designer", "Backend Developer"],
}

_ESTIMATES = {"low": "30-60 minutes", "medium": "1-3 hours", "high": "4-8 hours"}


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z0-9.]+", text.lower()))


def infer_domain(description: str) -> str:
    words = _words(description)
    for domain, keywords in _DOMAIN_KEYWORDS:
        if words.intersection(keywords):
            return domain
    return "general-development"


def estimate_complexity(description: str) -> Complexity:
    text = description.lower()
    hits = sum(1 for keyword in _COMPLEXITY_KEYWORDS if keyword in text)
    if len(description) > 200 or hits >= 2:
        return "high"
    if len(description) > 100 or hits >= 1:
        return "medium"
    return "low"


def _context_mentions(context: dict[str, Any], key: str, value: str) -> bool:
    entry = context.get(key)
    if isinstance(entry, str):
        return value in entry.lower()
    if isinstance(entry, (list, tuple)):
        return any(value in str(item).lower() for item in entry)
    return False


def required_knowledge(description: str, context: dict[str, Any] | None = None) -> list[str]:
    context = context or {}
    text = description.lower()
    knowledge: list[str] = []
    if "nestjs" in text or _context_mentions(context, "technologies", "nestjs"):
        knowledge.append("NestJS")
    if "prisma" in text or _context_mentions(context, "database", "prisma"):
        knowledge.append("Prisma ORM")
    if "react" in text or _context_mentions(context, "technologies", "react"):
        knowledge.append("React")
    if "next" in _words(description) or _context_mentions(context, "technologies", "next"):
        knowledge.append("Next.js")
    knowledge.append("TypeScript")
    if any(keyword in text for keyword in ("database", "model", "entity")):
        knowledge.append("Database Design")
    return knowledge


def analyze_task(description: str, context: dict[str, Any] | None = None) -> dict[str, Any]:
    domain = infer_domain(description)
    complexity = estimate_complexity(description)
    return {
        "domain": domain,
        "complexity": complexity,
        "required_knowledge": required_knowledge(description, context),
        "subtasks": list(_SUBTASKS.get(domain, [])),
        "estimated_time": _ESTIMATES[complexity],
        "dependencies": list(_DEPENDENCIES.get(domain, [])),
        "recommended_agents": list(_AGENTS.get(domain, ["Fullstack Developer"])),
    }
