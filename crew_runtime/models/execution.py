"""Execution records for task runs."""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from crew_runtime.db.session import Base


class TaskExecution(Base):
    __tablename__ = "task_executions"

    id = Column(String, primary_key=True)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String, nullable=True)
    crew_id = Column(String, nullable=True)
    input = Column(JSON, nullable=False, default=dict)
    output = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    execution_time = Column(Integer, nullable=True)
    metrics = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    logs = Column(JSON, nullable=False, default=list)

    task = relationship("Task", back_populates="executions")
