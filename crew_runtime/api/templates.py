"""Prompt template endpoints."""
from fastapi import APIRouter, Depends, Query, status

from crew_runtime.dependencies import Runtime, get_runtime
from crew_runtime.schemas.template import TemplateCreate, TemplateRead

router = APIRouter()


@router.post("", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
async def create_template(template: TemplateCreate, runtime: Runtime = Depends(get_runtime)) -> TemplateRead:
    return await runtime.tasks.create_template(template)


@router.get("", response_model=list[TemplateRead])
async def list_templates(
    category: str | None = None,
    search: str | None = None,
    tags: list[str] | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
) -> list[TemplateRead]:
    return await runtime.tasks.list_templates({"category": category, "search": search, "tags": tags})


@router.get("/{template_id}", response_model=TemplateRead)
async def get_template(template_id: str, runtime: Runtime = Depends(get_runtime)) -> TemplateRead:
    return await runtime.tasks.get_template(template_id)
