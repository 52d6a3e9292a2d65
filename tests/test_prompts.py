import json

from crew_runtime.core.prompts import (
    CHAIN_OF_THOUGHT_STEPS,
    PromptStrategy,
    build_from_template,
    build_generic_prompt,
    build_task_prompt,
    classify_task,
    infer_frameworks,
    infer_language,
)
from crew_runtime.schemas.task import TaskRead
from crew_runtime.schemas.template import TemplateRead


def make_task(description: str, **kwargs) -> TaskRead:
    return TaskRead(id="task-1", description=description, **kwargs)


def test_template_substitution_replaces_every_occurrence_and_keeps_unknown_placeholders():
    rendered = build_from_template(
        "Hello {{name}}! {{name}} has {{count}} items and {{missing}}.",
        {"name": "Ada", "count": 3},
    )

    assert rendered == "Hello Ada! Ada has 3 items and {{missing}}."


def test_classify_task_by_keywords():
    assert classify_task("Develop a billing module") is PromptStrategy.CODE_GENERATION
    assert classify_task("Write CODE for the importer") is PromptStrategy.CODE_GENERATION
    assert classify_task("Review the pull request") is PromptStrategy.ANALYSIS
    assert classify_task("Evaluate vendor proposals") is PromptStrategy.ANALYSIS
    assert classify_task("Plan the team offsite") is PromptStrategy.CHAIN_OF_THOUGHT


def test_infer_language_prefers_input_then_context_then_description():
    task = make_task("Write a python script", context={"language": "rust"})

    assert infer_language(task, {"language": "kotlin"}) == "kotlin"
    assert infer_language(task, {}) == "rust"
    assert infer_language(make_task("Write a python script"), {}) == "python"
    assert infer_language(make_task("Write a Go service"), {}) == "go"


def test_infer_language_matches_whole_words_only():
    # "status" and "settings" contain "ts" but are not TypeScript hints.
    assert infer_language(make_task("Show the status of the settings page in java"), {}) == "java"
    assert infer_language(make_task("Update the status page"), {}) == "typescript"


def test_infer_frameworks():
    assert infer_frameworks(make_task("Build a React dashboard with Next.js"), {}) == ["React", "Next.js"]
    assert infer_frameworks(make_task("Anything"), {"frameworks": "Django"}) == ["Django"]
    assert infer_frameworks(make_task("Anything", context={"frameworks": ["Flask"]}), {}) == ["Flask"]
    assert infer_frameworks(make_task("Write a CLI"), {}) == ["NestJS", "Prisma"]


def test_generic_prompt_for_code_generation_lists_language_and_frameworks():
    prompt = build_generic_prompt(make_task("Develop a python Flask endpoint"), {"resource": "users"})

    assert "Develop a python Flask endpoint" in prompt
    assert "python" in prompt
    assert "Flask" in prompt
    assert json.dumps({"resource": "users"}) in prompt


def test_generic_prompt_for_analysis_uses_code_to_analyze():
    prompt = build_generic_prompt(make_task("Review this function"), {"code_to_analyze": "def f(): pass"})

    assert "def f(): pass" in prompt
    assert "all" in prompt


def test_generic_prompt_falls_back_to_chain_of_thought():
    task = make_task("Plan the quarterly roadmap", expected_output="A ranked list")

    prompt = build_generic_prompt(task, {"quarter": "Q3"})

    for step in CHAIN_OF_THOUGHT_STEPS:
        assert step in prompt
    assert "The result should be: A ranked list" in prompt
    assert '"quarter": "Q3"' in prompt


def test_task_prompt_renders_template_with_task_variables():
    task = make_task("Draft a welcome email", expected_output="Email body", context={"tone": "warm"})
    template = TemplateRead(
        id="template-1",
        name="email",
        description="Email writer",
        prompt_template="{{task_description}} for {{customer}} ({{task_id}}). Context: {{context}}. {{expected_output}}",
        category="writing",
    )

    prompt = build_task_prompt(task, {"customer": "ACME"}, template)

    assert prompt == 'Draft a welcome email for ACME (task-1). Context: {"tone": "warm"}. Email body'


def test_task_prompt_without_template_uses_generic_strategy():
    task = make_task("Plan a launch")

    assert build_task_prompt(task, {}, None) == build_generic_prompt(task, {})


def test_task_prompt_accepts_camel_case_task_variables():
    task = make_task("Draft a welcome email", expected_output="Email body")
    template = TemplateRead(
        id="template-1",
        name="email",
        description="Email writer",
        prompt_template="{{taskDescription}} ({{taskId}}) -> {{expectedOutput}}",
        category="writing",
    )

    assert build_task_prompt(task, {}, template) == "Draft a welcome email (task-1) -> Email body"
