"""
項目獎金分配計算。

成員權重 = 角色權重 × 績效係數 × 參與比例；
個人獎金 = 獎金池總額 × 成員權重 / 總權重，四捨五入至小數兩位、不為負。
同一獎金池同時只允許一個計算（calculation_state 為 CAS 鎖），第二個呼叫直接回 Conflict。
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.config import settings
from hrbonus.models import AllocationStatus, BonusAllocation, BonusPool, Employee, ProjectMember
from hrbonus.bonus.eligibility import select_eligible
from hrbonus.bonus.errors import BonusConflictError, BonusError, BonusInternalError, BonusValidationError
from hrbonus.bonus.numbers import parse_decimal, round_money
from hrbonus.bonus.performance import resolve_performance_coefficient
from hrbonus.bonus.persistence import (
    acquire_calculation_lock,
    clear_pool_allocations,
    create_allocation,
    get_pool,
    release_calculation_lock,
    require_pending_pool,
)
from hrbonus.bonus.role_weights import DEFAULT_ROLE_KEY, resolve_role_weights

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
FULL_PARTICIPATION = Decimal("1.0")


@dataclass
class MemberWeight:
    member: ProjectMember
    employee: Employee
    role_id: str
    default_role_assigned: bool
    role_weight: Decimal
    performance_coeff: Decimal
    participation_ratio: Decimal
    weight: Decimal


def allocate_shares(total_amount: Decimal, weights: List[Decimal]) -> Tuple[Decimal, List[Decimal]]:
    """
    依權重比例切分總額。回傳 (總權重, 各成員金額)。
    總權重須大於 0；金額四捨五入至分，且不為負。
    """
    total_weight = sum(weights, ZERO)
    if total_weight <= 0:
        raise BonusValidationError("成員總權重為 0，無法進行獎金分配")
    shares = [max(ZERO, round_money(total_amount * w / total_weight)) for w in weights]
    return total_weight, shares


class BonusAllocationCalculator:
    """
    項目獎金分配計算器：db 由呼叫端建立並注入（生命週期歸呼叫端）。
    drift_tolerance / max_members 未指定時取設定值。
    """

    def __init__(
        self,
        db: AsyncSession,
        drift_tolerance: Optional[Decimal] = None,
        max_members: Optional[int] = None,
    ):
        self.db = db
        self.drift_tolerance = drift_tolerance if drift_tolerance is not None else settings.allocation_drift_tolerance
        self.max_members = max_members if max_members is not None else settings.max_members_per_calculation

    async def calculate(self, pool_id: int) -> Dict[str, Any]:
        db = self.db
        pool = await get_pool(db, pool_id)
        require_pending_pool(pool, "計算")
        if not await acquire_calculation_lock(db, pool_id):
            raise BonusConflictError(f"獎金池 {pool_id} 已有計算進行中或狀態已變更，請稍後再試")
        await db.commit()
        await db.refresh(pool)
        logger.info(
            "bonus calculation start pool_id=%s project_id=%s period=%s total_amount=%s",
            pool.id,
            pool.project_id,
            pool.period,
            pool.total_amount,
        )
        try:
            return await self._calculate_locked(pool)
        except BonusError:
            await self._abort(pool_id)
            raise
        except SQLAlchemyError as e:
            await self._abort(pool_id)
            raise BonusInternalError(f"項目獎金計算失敗（獎金池 {pool_id}）: {e}") from e

    async def _abort(self, pool_id: int) -> None:
        """回滾本次寫入並釋放計算鎖"""
        await self.db.rollback()
        await release_calculation_lock(self.db, pool_id)
        await self.db.commit()
        logger.warning("bonus calculation aborted pool_id=%s; batch rolled back", pool_id)

    async def _collect_weights(self, pool: BonusPool, warnings: List[str]) -> Tuple[List[MemberWeight], int]:
        db = self.db
        eligibility = await select_eligible(db, pool.project_id)
        if not eligibility.eligible:
            raise BonusValidationError(eligibility.describe_rejection(pool.project_id))
        if len(eligibility.eligible) > self.max_members:
            raise BonusValidationError(
                f"項目 {pool.project_id} 合格成員 {len(eligibility.eligible)} 名，超過單次計算上限 {self.max_members} 名"
            )

        role_weights = await resolve_role_weights(db, pool.project_id)
        weighted: List[MemberWeight] = []
        skipped = 0
        for member in eligibility.eligible:
            employee = await db.get(Employee, member.employee_id)
            if employee is None:
                skipped += 1
                msg = f"成員 {member.id} 對應的員工 {member.employee_id} 不存在，已略過"
                warnings.append(msg)
                logger.warning("employee not found; skip member. member_id=%s employee_id=%s", member.id, member.employee_id)
                continue

            role_id = (member.role_id or "").strip()
            default_role_assigned = not role_id
            if default_role_assigned:
                role_id = DEFAULT_ROLE_KEY
            role_weight = role_weights.get(role_id)
            if role_weight is None:
                logger.warning("unknown role %s for member %s; use default weight", role_id, member.id)
                role_weight = role_weights[DEFAULT_ROLE_KEY]

            coeff = await resolve_performance_coefficient(db, member.employee_id, pool.period)
            ratio = parse_decimal(
                member.participation_ratio,
                f"成員 {member.id} 參與比例",
                default=FULL_PARTICIPATION,
                minimum=ZERO,
                maximum=FULL_PARTICIPATION,
            )
            weight = role_weight * coeff * ratio
            if weight <= 0:
                skipped += 1
                warnings.append(f"成員 {member.id}（{employee.name}）權重為 0，不參與分配")
                logger.warning("member %s weight is zero; excluded", member.id)
                continue

            logger.debug(
                "member %s (%s) role=%s weight = %s x %s x %s = %s",
                member.id,
                employee.name,
                role_id,
                role_weight,
                coeff,
                ratio,
                weight,
            )
            weighted.append(
                MemberWeight(
                    member=member,
                    employee=employee,
                    role_id=role_id,
                    default_role_assigned=default_role_assigned,
                    role_weight=role_weight,
                    performance_coeff=coeff,
                    participation_ratio=ratio,
                    weight=weight,
                )
            )
        return weighted, skipped

    async def _calculate_locked(self, pool: BonusPool) -> Dict[str, Any]:
        db = self.db
        warnings: List[str] = []
        total_amount = parse_decimal(pool.total_amount, f"獎金池 {pool.id} 總額", minimum=ZERO)
        weighted, skipped = await self._collect_weights(pool, warnings)
        if not weighted:
            raise BonusValidationError(
                f"項目 {pool.project_id} 沒有權重大於 0 的有效成員（略過 {skipped} 名），無法進行獎金分配"
            )
        total_weight, shares = allocate_shares(total_amount, [mw.weight for mw in weighted])

        total_allocated = sum(shares, ZERO)
        drift = abs(total_allocated - total_amount)
        drift_exceeded = drift > self.drift_tolerance
        if drift_exceeded:
            logger.warning(
                "allocated total differs from pool total: allocated=%s pool=%s drift=%s tolerance=%s",
                total_allocated,
                total_amount,
                drift,
                self.drift_tolerance,
            )

        await clear_pool_allocations(db, pool.id)
        now = datetime.utcnow()
        saved: List[BonusAllocation] = []
        for mw, share in zip(weighted, shares):
            try:
                allocation = await create_allocation(
                    db,
                    pool_id=pool.id,
                    project_id=pool.project_id,
                    member_id=mw.member.id,
                    employee_id=mw.member.employee_id,
                    role_id=mw.role_id,
                    role_weight=mw.role_weight,
                    performance_coeff=mw.performance_coeff,
                    participation_ratio=mw.participation_ratio,
                    calculated_weight=mw.weight,
                    bonus_amount=share,
                    default_role_assigned=mw.default_role_assigned,
                    status=AllocationStatus.CALCULATED.value,
                    calculated_at=now,
                )
            except SQLAlchemyError as e:
                raise BonusInternalError(
                    f"保存獎金分配結果失敗（成員 {mw.member.id}，員工 {mw.employee.name}）: {e}"
                ) from e
            saved.append(allocation)

        await release_calculation_lock(db, pool.id, calculated_at=now)
        await db.commit()
        await db.refresh(pool)

        logger.info(
            "bonus calculation done pool_id=%s members=%s total_weight=%s allocated=%s",
            pool.id,
            len(saved),
            total_weight,
            total_allocated,
        )
        count = len(saved)
        return {
            "pool_id": pool.id,
            "project_id": pool.project_id,
            "period": pool.period,
            "total_amount": total_amount,
            "total_allocated": total_allocated,
            "member_count": count,
            "allocations": saved,
            "summary": {
                "valid_member_count": count,
                "total_weight": total_weight,
                "average_bonus": round_money(total_allocated / count),
                "max_bonus": max(shares),
                "min_bonus": min(shares),
                "default_role_count": sum(1 for mw in weighted if mw.default_role_assigned),
                "skipped_member_count": skipped,
                "drift": drift,
                "drift_exceeded": drift_exceeded,
            },
            "warnings": warnings,
        }
