from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import EpicStatus


class Epic(BaseModel):
    __tablename__ = "epics"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default=EpicStatus.BACKLOG.value, index=True)  # backlog, in_progress, completed, done, cancelled
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Foreign keys
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)

    # Relationships
    stories = relationship("Story", back_populates="epic")
