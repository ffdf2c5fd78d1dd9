from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Text, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .base import Base, BaseModel
from .enums import SprintStatus


# Historical ledger of every task assigned to a sprint; the primary key keeps it a set
sprint_tasks = Table(
    "sprint_tasks",
    Base.metadata,
    Column("sprint_id", Integer, ForeignKey("sprints.id", ondelete="CASCADE"), primary_key=True),
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("added_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

sprint_members = Table(
    "sprint_members",
    Base.metadata,
    Column("sprint_id", Integer, ForeignKey("sprints.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Sprint(BaseModel):
    __tablename__ = "sprints"

    name = Column(String, nullable=False)
    goal = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String, default=SprintStatus.PLANNING.value, index=True)  # planning, active, completed, cancelled
    actual_start_date = Column(DateTime(timezone=True), nullable=True)
    actual_end_date = Column(DateTime(timezone=True), nullable=True)

    # Foreign keys
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Relationships
    project = relationship("Project", back_populates="sprints")
    created_by = relationship("User")
    team_members = relationship("User", secondary=sprint_members)
    stories = relationship("Story", back_populates="sprint")
    tasks = relationship(
        "Task",
        secondary=sprint_tasks,
        order_by=(sprint_tasks.c.added_at, sprint_tasks.c.task_id),
        viewonly=True
    )
