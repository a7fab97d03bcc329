"""
績效係數：依員工該期間績效分數分段對應倍率。

- 當期有評估且分數有效 → 分段表。
- 當期無評估 → 取最近一筆評估（評估日期，無則建立時間），分段表後打 95 折，下限 0.9。
- 完全無評估 → 1.0。
查詢失敗不拋錯，記錄後回傳 1.0。
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.config import settings
from hrbonus.models import PerformanceAssessment
from hrbonus.bonus.numbers import to_finite_decimal

logger = logging.getLogger(__name__)

NEUTRAL_COEFFICIENT = Decimal("1.0")

# (分數下限, 係數)，由高到低比對
COEFFICIENT_TABLE = (
    (Decimal("95"), Decimal("1.3")),
    (Decimal("90"), Decimal("1.2")),
    (Decimal("80"), Decimal("1.1")),
    (Decimal("70"), Decimal("1.0")),
    (Decimal("60"), Decimal("0.9")),
    (Decimal("50"), Decimal("0.8")),
)
LOWEST_COEFFICIENT = Decimal("0.7")


def score_to_coefficient(score: Decimal) -> Decimal:
    for threshold, coeff in COEFFICIENT_TABLE:
        if score >= threshold:
            return coeff
    return LOWEST_COEFFICIENT


def stale_coefficient(score: Decimal) -> Decimal:
    """非當期績效：分段表 × 折扣，且不低於下限"""
    discounted = score_to_coefficient(score) * settings.stale_assessment_discount
    return max(settings.stale_assessment_floor, discounted)


async def get_assessment(db: AsyncSession, employee_id: int, period: str) -> Optional[PerformanceAssessment]:
    r = await db.execute(
        select(PerformanceAssessment).where(
            PerformanceAssessment.employee_id == employee_id,
            PerformanceAssessment.period == period,
        )
    )
    return r.scalar_one_or_none()


async def get_latest_assessment(db: AsyncSession, employee_id: int) -> Optional[PerformanceAssessment]:
    """最近一筆評估：評估日期優先，無評估日期以建立時間比較；同時間以 id 大者為準"""
    q = (
        select(PerformanceAssessment)
        .where(PerformanceAssessment.employee_id == employee_id)
        .order_by(
            func.coalesce(PerformanceAssessment.evaluation_date, func.date(PerformanceAssessment.created_at)).desc(),
            PerformanceAssessment.created_at.desc(),
            PerformanceAssessment.id.desc(),
        )
        .limit(1)
    )
    r = await db.execute(q)
    return r.scalars().first()


async def resolve_performance_coefficient(db: AsyncSession, employee_id: Optional[int], period: str) -> Decimal:
    if employee_id is None:
        return NEUTRAL_COEFFICIENT
    try:
        assessment = await get_assessment(db, employee_id, period)
        if assessment is not None:
            score = to_finite_decimal(assessment.final_score)
            if score is None:
                logger.warning(
                    "invalid final_score; use neutral coefficient. employee_id=%s period=%s score=%r",
                    employee_id,
                    period,
                    assessment.final_score,
                )
                return NEUTRAL_COEFFICIENT
            return score_to_coefficient(score)

        latest = await get_latest_assessment(db, employee_id)
    except SQLAlchemyError:
        logger.exception("load performance assessment failed; use neutral coefficient. employee_id=%s", employee_id)
        return NEUTRAL_COEFFICIENT

    if latest is not None:
        score = to_finite_decimal(latest.final_score)
        if score is not None:
            logger.info(
                "no assessment for period %s; use latest period %s score=%s employee_id=%s",
                period,
                latest.period,
                score,
                employee_id,
            )
            return stale_coefficient(score)
    return NEUTRAL_COEFFICIENT
