"""Prompt template storage."""
from sqlalchemy import JSON, Column, DateTime, String, Text

from crew_runtime.db.session import Base


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    prompt_template = Column(Text, nullable=False)
    default_model_name = Column(String, nullable=True)
    parameters = Column(JSON, nullable=False, default=list)
    category = Column(String, nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
