"""Prompt construction for task executions.

Everything here is a pure function of its arguments. Templates use
``{{variable}}`` placeholders; placeholders without a matching variable are
left in the output untouched.
"""
from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any

import structlog

from crew_runtime.schemas.task import TaskRead
from crew_runtime.schemas.template import TemplateRead

logger = structlog.get_logger(__name__)

DEFAULT_LANGUAGE = "typescript"
DEFAULT_FRAMEWORKS = ["NestJS", "Prisma"]

CHAIN_OF_THOUGHT_STEPS = [
    "1. Understand the goal of the task",
    "2. Identify the available input parameters",
    "3. Decide how to approach the task in a structured way",
    "4. Carry out the task following good practices",
    "5. Check that the result meets the expected criteria",
]

CODE_GENERATION_TEMPLATE = """# Code generation

## Task
{{task}}

## Language
{{language}}

## Frameworks
{{frameworks}}

## Requirements
{{requirements}}

Write complete, working {{language}} code for the task above. Follow the
conventions of the listed frameworks and explain any assumption you make."""

CODE_ANALYSIS_TEMPLATE = """# Code analysis

Analysis type: {{analysis_type}}

```
{{code_snippet}}
```

Review the material above. Report problems with security, performance and
quality where relevant to the analysis type, and suggest concrete fixes."""

CHAIN_OF_THOUGHT_TEMPLATE = """# Question
{{question}}

## Think step by step
{{steps}}

## Reasoning
{{reasoning}}

## Answer
{{final_answer}}"""

_LANGUAGE_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("typescript", "ts"), "typescript"),
    (("javascript", "js"), "javascript"),
    (("python",), "python"),
    (("java",), "java"),
    (("c#", "csharp"), "csharp"),
    (("rust",), "rust"),
    (("go", "golang"), "go"),
]

_FRAMEWORK_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("nestjs", "nest.js"), "NestJS"),
    (("react", "reactjs"), "React"),
    (("next", "next.js", "nextjs"), "Next.js"),
    (("express",), "Express"),
    (("prisma",), "Prisma"),
    (("django",), "Django"),
    (("flask",), "Flask"),
]

_TOKEN = re.compile(r"[a-z0-9#.+]+")


class PromptStrategy(str, Enum):
    CODE_GENERATION = "code_generation"
    ANALYSIS = "analysis"
    CHAIN_OF_THOUGHT = "chain_of_thought"


def build_from_template(template: str, variables: dict[str, Any]) -> str:
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", str(value))
    return result


def classify_task(description: str) -> PromptStrategy:
    text = description.lower()
    if any(keyword in text for keyword in ("code", "programming", "develop")):
        return PromptStrategy.CODE_GENERATION
    if any(keyword in text for keyword in ("analysis", "evaluate", "review")):
        return PromptStrategy.ANALYSIS
    return PromptStrategy.CHAIN_OF_THOUGHT


def _tokens(text: str) -> set[str]:
    # Sentence punctuation would otherwise stick to the last word.
    return {token.strip(".") for token in _TOKEN.findall(text.lower())}


def infer_language(task: TaskRead, input: dict[str, Any]) -> str:
    if input.get("language"):
        return str(input["language"])
    if task.context.get("language"):
        return str(task.context["language"])
    tokens = _tokens(task.description)
    for keywords, language in _LANGUAGE_KEYWORDS:
        if tokens.intersection(keywords):
            return language
    return DEFAULT_LANGUAGE


def _as_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def infer_frameworks(task: TaskRead, input: dict[str, Any]) -> list[str]:
    if input.get("frameworks"):
        return _as_list(input["frameworks"])
    if task.context.get("frameworks"):
        return _as_list(task.context["frameworks"])
    tokens = _tokens(task.description)
    found = [name for keywords, name in _FRAMEWORK_KEYWORDS if tokens.intersection(keywords)]
    return found or list(DEFAULT_FRAMEWORKS)


def build_code_generation_prompt(task: str, language: str, frameworks: list[str], requirements: str) -> str:
    return build_from_template(
        CODE_GENERATION_TEMPLATE,
        {"task": task, "language": language, "frameworks": ", ".join(frameworks), "requirements": requirements},
    )


def build_code_analysis_prompt(code_snippet: str, analysis_type: str = "all") -> str:
    return build_from_template(CODE_ANALYSIS_TEMPLATE, {"code_snippet": code_snippet, "analysis_type": analysis_type})


def build_chain_of_thought_prompt(question: str, steps: list[str], reasoning: str, final_answer: str) -> str:
    return build_from_template(
        CHAIN_OF_THOUGHT_TEMPLATE,
        {"question": question, "steps": "\n".join(steps), "reasoning": reasoning, "final_answer": final_answer},
    )


def build_generic_prompt(task: TaskRead, input: dict[str, Any]) -> str:
    strategy = classify_task(task.description)
    logger.debug("prompt.generic", task_id=task.id, strategy=strategy.value)

    if strategy is PromptStrategy.CODE_GENERATION:
        return build_code_generation_prompt(
            task.description,
            infer_language(task, input),
            infer_frameworks(task, input),
            json.dumps(input),
        )
    if strategy is PromptStrategy.ANALYSIS:
        return build_code_analysis_prompt(input.get("code_to_analyze") or json.dumps(input), "all")

    final_answer = (
        f"The result should be: {task.expected_output}"
        if task.expected_output
        else "Provide a clear, structured result."
    )
    return build_chain_of_thought_prompt(
        question=task.description,
        steps=CHAIN_OF_THOUGHT_STEPS,
        reasoning=f"This task involves: {task.description}.\n\nThe input parameters are: {json.dumps(input, indent=2)}",
        final_answer=final_answer,
    )


def build_task_prompt(task: TaskRead, input: dict[str, Any], template: TemplateRead | None = None) -> str:
    """Render the task's template when one is available, else a generic strategy prompt."""
    if template is None:
        return build_generic_prompt(task, input)

    variables = {
        **input,
        "task_id": task.id,
        "task_description": task.description,
        "expected_output": task.expected_output or "",
        "context": json.dumps(task.context),
    }
    # camelCase spellings keep older templates rendering.
    variables.update(
        taskId=variables["task_id"],
        taskDescription=variables["task_description"],
        expectedOutput=variables["expected_output"],
    )
    return build_from_template(template.prompt_template, variables)
