from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import TaskStatus, FINISHED_TASK_STATUSES


class Task(BaseModel):
    __tablename__ = "tasks"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default=TaskStatus.BACKLOG.value, index=True)
    priority = Column(String, default="medium")  # low, medium, high, critical
    story_points = Column(Integer, nullable=True)
    archived = Column(Boolean, default=False, nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)

    # Foreign keys
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    story_id = Column(Integer, ForeignKey("stories.id"), nullable=True, index=True)
    epic_id = Column(Integer, ForeignKey("epics.id"), nullable=True, index=True)
    sprint_id = Column(Integer, ForeignKey("sprints.id"), nullable=True, index=True)
    moved_from_sprint_id = Column(Integer, ForeignKey("sprints.id"), nullable=True)

    # Relationships
    story = relationship("Story", back_populates="tasks")
    epic = relationship("Epic")
    sprint = relationship("Sprint", foreign_keys=[sprint_id])
    moved_from_sprint = relationship("Sprint", foreign_keys=[moved_from_sprint_id])
    subtasks = relationship(
        "Subtask",
        back_populates="task",
        order_by="Subtask.position",
        cascade="all, delete-orphan",
        lazy="selectin"
    )


class Subtask(BaseModel):
    """Ordered checklist item embedded in a task"""
    __tablename__ = "task_subtasks"

    title = Column(String, nullable=False)
    status = Column(String, default=TaskStatus.TODO.value)
    is_completed = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)

    # Foreign keys
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    # Relationships
    task = relationship("Task", back_populates="subtasks")

    @property
    def is_incomplete(self) -> bool:
        return self.status not in FINISHED_TASK_STATUSES and not self.is_completed
