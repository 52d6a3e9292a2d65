"""SQLAlchemy model definitions for tasks."""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum, String, Text
from sqlalchemy.orm import relationship

from crew_runtime.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    description = Column(Text, nullable=False)
    expected_output = Column(Text, nullable=True)
    context = Column(JSON, nullable=False, default=dict)
    priority = Column(
        Enum("low", "medium", "high", "critical", name="task_priority"), nullable=False, default="medium"
    )
    deadline = Column(DateTime(timezone=True), nullable=True)
    assigned_agent_id = Column(String, nullable=True, index=True)
    assigned_crew_id = Column(String, nullable=True, index=True)
    dependencies = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    template_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    executions = relationship("TaskExecution", back_populates="task", cascade="all, delete-orphan", passive_deletes=True
    )
