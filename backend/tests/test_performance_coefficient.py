"""
績效係數測試：分段表、當期評估、非當期評估打折與下限、無評估與查詢失敗時中性係數。
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from hrbonus.bonus.performance import (
    NEUTRAL_COEFFICIENT,
    resolve_performance_coefficient,
    score_to_coefficient,
    stale_coefficient,
)

from conftest import seed_assessment, seed_employee


@pytest.mark.parametrize(
    "score,expected",
    [
        ("100", "1.3"),
        ("95", "1.3"),
        ("94.99", "1.2"),
        ("90", "1.2"),
        ("85", "1.1"),
        ("80", "1.1"),
        ("79.5", "1.0"),
        ("70", "1.0"),
        ("65", "0.9"),
        ("60", "0.9"),
        ("50", "0.8"),
        ("49.99", "0.7"),
        ("0", "0.7"),
    ],
)
def test_score_table(score, expected):
    assert score_to_coefficient(Decimal(score)) == Decimal(expected)


def test_stale_coefficient_discount_and_floor():
    """非當期：分段表 × 0.95，不低於 0.9"""
    assert stale_coefficient(Decimal("96")) == Decimal("1.235")
    assert stale_coefficient(Decimal("92")) == Decimal("1.14")
    assert stale_coefficient(Decimal("72")) == Decimal("0.95")
    assert stale_coefficient(Decimal("65")) == Decimal("0.9")
    assert stale_coefficient(Decimal("10")) == Decimal("0.9")


async def test_no_assessment_is_neutral(async_session):
    async with async_session() as db:
        emp = await seed_employee(db, "E001", "王小明")
        coeff = await resolve_performance_coefficient(db, emp.id, "2025-Q2")
    assert coeff == NEUTRAL_COEFFICIENT == Decimal("1.0")


async def test_none_employee_is_neutral(async_session):
    async with async_session() as db:
        coeff = await resolve_performance_coefficient(db, None, "2025-Q2")
    assert coeff == Decimal("1.0")


async def test_exact_period_uses_table(async_session):
    async with async_session() as db:
        emp = await seed_employee(db, "E001", "王小明")
        await seed_assessment(db, emp.id, "2025-Q2", Decimal("85"))
        await seed_assessment(db, emp.id, "2025-Q1", Decimal("98"))
        coeff = await resolve_performance_coefficient(db, emp.id, "2025-Q2")
    assert coeff == Decimal("1.1")


async def test_exact_period_without_score_is_neutral(async_session):
    """當期評估存在但分數為空：不改用其他期間，直接中性係數"""
    async with async_session() as db:
        emp = await seed_employee(db, "E001", "王小明")
        await seed_assessment(db, emp.id, "2025-Q2", None)
        await seed_assessment(db, emp.id, "2025-Q1", Decimal("98"))
        coeff = await resolve_performance_coefficient(db, emp.id, "2025-Q2")
    assert coeff == Decimal("1.0")


async def test_stale_period_uses_latest_assessment(async_session):
    """當期無評估：取評估日期最近的一筆，打折後使用"""
    async with async_session() as db:
        emp = await seed_employee(db, "E001", "王小明")
        await seed_assessment(db, emp.id, "2024-Q4", Decimal("55"), evaluation_date=date(2025, 1, 5))
        await seed_assessment(db, emp.id, "2025-Q1", Decimal("92"), evaluation_date=date(2025, 4, 3))
        coeff = await resolve_performance_coefficient(db, emp.id, "2025-Q2")
    assert coeff == Decimal("1.14")


async def test_stale_low_score_floored(async_session):
    async with async_session() as db:
        emp = await seed_employee(db, "E001", "王小明")
        await seed_assessment(db, emp.id, "2025-Q1", Decimal("40"), evaluation_date=date(2025, 4, 3))
        coeff = await resolve_performance_coefficient(db, emp.id, "2025-Q2")
    assert coeff == Decimal("0.9")


async def test_query_failure_is_neutral(async_session, monkeypatch):
    async with async_session() as db:
        emp = await seed_employee(db, "E001", "王小明")
        await seed_assessment(db, emp.id, "2025-Q2", Decimal("95"))

        async def failing_execute(*args, **kwargs):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(db, "execute", failing_execute)
        coeff = await resolve_performance_coefficient(db, emp.id, "2025-Q2")
    assert coeff == NEUTRAL_COEFFICIENT
