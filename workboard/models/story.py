from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import StoryStatus


class Story(BaseModel):
    __tablename__ = "stories"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default=StoryStatus.BACKLOG.value, index=True)  # backlog, in_progress, completed, done, cancelled
    story_points = Column(Integer, nullable=True)
    archived = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Foreign keys
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    sprint_id = Column(Integer, ForeignKey("sprints.id"), nullable=True, index=True)
    epic_id = Column(Integer, ForeignKey("epics.id"), nullable=True, index=True)

    # Relationships
    sprint = relationship("Sprint", back_populates="stories")
    epic = relationship("Epic", back_populates="stories")
    tasks = relationship("Task", back_populates="story")
