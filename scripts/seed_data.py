#!/usr/bin/env python3
"""
Seed Data Script for Workboard

Creates a small organization to exercise the sprint lifecycle:
- 1 Organization, 1 Project, 3 Users
- 1 Epic with 2 Stories
- 1 Active Sprint and 1 Planning Sprint
- Tasks in every interesting state (done, in progress, with open subtasks)

Usage:
    python scripts/seed_data.py              # Add seed data
    python scripts/seed_data.py --clear      # Clear all data first
"""
import asyncio
import sys
import os
from datetime import date, timedelta

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from workboard.core.auth import create_access_token
from workboard.core.permissions import Permission
from workboard.database import async_session, create_tables, engine
from workboard.models import (
    Base, Epic, Organization, Project, Sprint, Story, Subtask, Task, User, sprint_tasks
)
from workboard.models.enums import EpicStatus, SprintStatus, StoryStatus, TaskStatus


# ==================== DATA DEFINITIONS ====================

USERS_DATA = [
    {"email": "alice@company.com", "first_name": "Alice", "last_name": "Johnson"},
    {"email": "emma@company.com", "first_name": "Emma", "last_name": "Rodriguez"},
    {"email": "frank@company.com", "first_name": "Frank", "last_name": "Smith"},
]

# (title, story index or None, status, subtasks)
TASKS_DATA = [
    ("Design login form", 0, TaskStatus.DONE, []),
    ("Implement token refresh", 0, TaskStatus.DONE, []),
    ("Write auth integration tests", 0, TaskStatus.IN_PROGRESS, [("Happy path", True), ("Expired token", False)]),
    ("Dashboard layout", 1, TaskStatus.REVIEW, []),
    ("Export to PDF", 1, TaskStatus.TODO, []),
    ("Upgrade CI runners", None, TaskStatus.DONE, []),
]


async def clear_database():
    """Drop and recreate every table"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await create_tables()
    print("Cleared existing data")


async def seed_database(clear_first: bool = False):
    if clear_first:
        await clear_database()
    else:
        await create_tables()

    async with async_session() as session:
        organization = Organization(name="Acme")
        session.add(organization)
        await session.flush()

        project = Project(name="Customer Portal", organization_id=organization.id)
        users = [User(organization_id=organization.id, **data) for data in USERS_DATA]
        session.add(project)
        session.add_all(users)
        await session.flush()

        epic = Epic(
            title="Self-service accounts",
            status=EpicStatus.BACKLOG.value,
            organization_id=organization.id,
            project_id=project.id
        )
        session.add(epic)
        await session.flush()

        active = Sprint(
            name="Sprint 1",
            status=SprintStatus.ACTIVE.value,
            start_date=date.today() - timedelta(days=10),
            end_date=date.today() + timedelta(days=4),
            organization_id=organization.id,
            project_id=project.id,
            created_by_id=users[0].id,
            team_members=users
        )
        upcoming = Sprint(
            name="Sprint 2",
            status=SprintStatus.PLANNING.value,
            start_date=date.today() + timedelta(days=5),
            end_date=date.today() + timedelta(days=19),
            organization_id=organization.id,
            project_id=project.id,
            created_by_id=users[0].id
        )
        session.add_all([active, upcoming])
        await session.flush()

        stories = [
            Story(title="User authentication", status=StoryStatus.IN_PROGRESS.value,
                  organization_id=organization.id, project_id=project.id,
                  sprint_id=active.id, epic_id=epic.id),
            Story(title="Account dashboard", status=StoryStatus.IN_PROGRESS.value,
                  organization_id=organization.id, project_id=project.id,
                  sprint_id=active.id, epic_id=epic.id),
        ]
        session.add_all(stories)
        await session.flush()

        tasks = []
        for title, story_index, status, subtasks in TASKS_DATA:
            task = Task(
                title=title,
                status=status.value,
                organization_id=organization.id,
                project_id=project.id,
                story_id=stories[story_index].id if story_index is not None else None,
                epic_id=epic.id if story_index is None else None,
                sprint_id=active.id,
                subtasks=[
                    Subtask(title=sub_title, is_completed=done, position=position,
                            status=TaskStatus.DONE.value if done else TaskStatus.TODO.value)
                    for position, (sub_title, done) in enumerate(subtasks)
                ]
            )
            session.add(task)
            tasks.append(task)
        await session.flush()

        await session.execute(
            sprint_tasks.insert().values([{"sprint_id": active.id, "task_id": t.id} for t in tasks])
        )
        await session.commit()

        token = create_access_token(
            users[0].id,
            organization.id,
            permissions=[p.value for p in Permission]
        )

    print("\n" + "=" * 60)
    print("Database seeding complete!")
    print("=" * 60)
    print(f"  Users: {len(USERS_DATA)}")
    print(f"  Sprints: 2 (active #{active.id}, planning #{upcoming.id})")
    print(f"  Stories: {len(stories)}")
    print(f"  Tasks: {len(TASKS_DATA)}")
    print(f"\nBearer token for {USERS_DATA[0]['email']}:\n  {token}")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed Workboard database")
    parser.add_argument("--clear", action="store_true", help="Clear all data before seeding")
    args = parser.parse_args()

    asyncio.run(seed_database(clear_first=args.clear))
