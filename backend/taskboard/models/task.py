from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from taskboard.core.database import Base

class Task(Base):
    __tablename__ = "tasks"
    # Not unique: positions shift inside the reorder transaction and deletes leave gaps.
    __table_args__ = (Index("ix_tasks_project_status_position", "project_id", "status", "position"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="TODO")  # TODO, IN_PROGRESS, COMPLETED
    position = Column(Integer, nullable=False, default=0)
    assigned_to_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    labels = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="tasks")
    assigned_to = relationship("User")
