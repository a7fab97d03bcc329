"""共用測試 fixture：記憶體 SQLite（aiosqlite + StaticPool），每個測試獨立建表。"""
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hrbonus.database import Base
from hrbonus.models import (
    BonusPool,
    Employee,
    PerformanceAssessment,
    Project,
    ProjectMember,
)


@pytest.fixture
async def async_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield session_factory
    finally:
        await engine.dispose()


async def seed_project(db: AsyncSession, code: str = "P001", name: str = "測試項目") -> Project:
    project = Project(code=code, name=name)
    db.add(project)
    await db.flush()
    return project


async def seed_employee(db: AsyncSession, employee_no: str, name: str) -> Employee:
    emp = Employee(employee_no=employee_no, name=name)
    db.add(emp)
    await db.flush()
    return emp


async def seed_member(
    db: AsyncSession,
    project: Project,
    employee_id: Optional[int],
    role_id: Optional[str] = "developer",
    status: str = "active",
    participation_ratio=None,
) -> ProjectMember:
    member = ProjectMember(
        project_id=project.id,
        employee_id=employee_id,
        role_id=role_id,
        status=status,
        participation_ratio=participation_ratio,
    )
    db.add(member)
    await db.flush()
    return member


async def seed_assessment(
    db: AsyncSession,
    employee_id: int,
    period: str,
    score,
    evaluation_date: Optional[date] = None,
) -> PerformanceAssessment:
    assessment = PerformanceAssessment(
        employee_id=employee_id,
        period=period,
        final_score=score,
        evaluation_date=evaluation_date,
    )
    db.add(assessment)
    await db.flush()
    return assessment


async def seed_pool(
    db: AsyncSession,
    project: Project,
    period: str = "2025-Q2",
    total_amount: Decimal = Decimal("150000"),
) -> BonusPool:
    pool = BonusPool(project_id=project.id, period=period, total_amount=total_amount)
    db.add(pool)
    await db.flush()
    return pool
