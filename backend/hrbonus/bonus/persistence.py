"""項目獎金池與分配結果之落表、狀態流轉（審批 / 退回 / 發放 / 軟刪除）與計算鎖。
pool 與其 allocations 一律同批流轉；刪除僅標記 deleted，不實體刪除。"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.config import settings
from hrbonus.models import (
    AllocationStatus,
    BonusAllocation,
    BonusPool,
    CalculationState,
    PoolStatus,
    Project,
)
from hrbonus.schemas import BonusPoolCreate, BonusPoolUpdate, BonusAllocationUpdate
from hrbonus.bonus.errors import BonusConflictError, BonusNotFoundError, BonusValidationError
from hrbonus.bonus.numbers import round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def require_pending_pool(pool: BonusPool, action: str) -> None:
    """只有 pending 狀態的獎金池可編輯、計算、審批、退回、刪除"""
    if pool.status != PoolStatus.PENDING.value:
        raise BonusValidationError(
            f"獎金池 {pool.id} 狀態為「{pool.status}」，只有「{PoolStatus.PENDING.value}」狀態的獎金池可以{action}"
        )


def summarize_allocations(allocations: Iterable[BonusAllocation]) -> Dict[str, Any]:
    amounts = [Decimal(a.bonus_amount) for a in allocations]
    total = sum(amounts, ZERO)
    count = len(amounts)
    return {
        "member_count": count,
        "total_allocated": total,
        "average_bonus": round_money(total / count) if count else ZERO,
        "max_bonus": max(amounts) if amounts else ZERO,
        "min_bonus": min(amounts) if amounts else ZERO,
    }


# ---------- 獎金池 ----------
async def find_pool(db: AsyncSession, pool_id: int) -> Optional[BonusPool]:
    r = await db.execute(select(BonusPool).where(BonusPool.id == pool_id))
    return r.scalar_one_or_none()


async def get_pool(db: AsyncSession, pool_id: int) -> BonusPool:
    pool = await find_pool(db, pool_id)
    if pool is None:
        raise BonusNotFoundError(f"項目獎金池不存在: {pool_id}")
    return pool


async def find_active_pool(db: AsyncSession, project_id: int, period: str) -> Optional[BonusPool]:
    """同項目同期間未刪除的獎金池"""
    r = await db.execute(
        select(BonusPool)
        .where(
            BonusPool.project_id == project_id,
            BonusPool.period == period,
            BonusPool.status != PoolStatus.DELETED.value,
        )
        .order_by(BonusPool.id.desc())
        .limit(1)
    )
    return r.scalars().first()


async def list_pools(
    db: AsyncSession,
    project_id: Optional[int] = None,
    period: Optional[str] = None,
    status: Optional[PoolStatus] = None,
) -> List[BonusPool]:
    """預設不列出已刪除的獎金池；指定 status=deleted 時才列出"""
    q = select(BonusPool).order_by(BonusPool.id)
    if project_id is not None:
        q = q.where(BonusPool.project_id == project_id)
    if period:
        q = q.where(BonusPool.period == period.strip())
    if status is not None:
        q = q.where(BonusPool.status == status.value)
    else:
        q = q.where(BonusPool.status != PoolStatus.DELETED.value)
    r = await db.execute(q)
    return list(r.scalars().all())


async def create_pool(db: AsyncSession, data: BonusPoolCreate, created_by: Optional[str] = None) -> BonusPool:
    project = await db.get(Project, data.project_id)
    if project is None:
        raise BonusNotFoundError(f"項目不存在: {data.project_id}")
    if await find_active_pool(db, data.project_id, data.period) is not None:
        raise BonusConflictError(f"項目 {data.project_id} 期間 {data.period} 的獎金池已存在")
    pool = BonusPool(
        project_id=data.project_id,
        period=data.period,
        total_amount=data.total_amount,
        profit_ratio=data.profit_ratio,
        description=data.description,
        status=PoolStatus.PENDING.value,
        calculation_state=CalculationState.IDLE.value,
        created_by=created_by,
    )
    db.add(pool)
    await db.flush()
    await db.refresh(pool)
    logger.info("bonus pool created id=%s project_id=%s period=%s", pool.id, pool.project_id, pool.period)
    return pool


async def update_pool(
    db: AsyncSession, pool_id: int, data: BonusPoolUpdate, updated_by: Optional[str] = None
) -> BonusPool:
    """編輯 pending 獎金池；總額變更時既有 calculated 分配轉 rejected，須重新計算才能審批"""
    pool = await get_pool(db, pool_id)
    require_pending_pool(pool, "編輯")
    update_data = data.model_dump(exclude_unset=True)
    amount_changed = (
        "total_amount" in update_data and Decimal(update_data["total_amount"]) != Decimal(pool.total_amount)
    )
    if amount_changed and pool.calculation_state == CalculationState.CALCULATING.value:
        raise BonusConflictError(f"獎金池 {pool_id} 正在計算中，無法修改總額")
    for k, v in update_data.items():
        setattr(pool, k, v)
    pool.updated_by = updated_by
    pool.updated_at = datetime.utcnow()
    if amount_changed:
        count = await _set_allocation_status(
            db, pool_id, AllocationStatus.REJECTED, [AllocationStatus.CALCULATED], remark="總額變更，須重新計算"
        )
        if count:
            logger.info("bonus pool %s total_amount changed; %s allocation(s) invalidated", pool_id, count)
    await db.flush()
    await db.refresh(pool)
    return pool


async def _set_allocation_status(
    db: AsyncSession,
    pool_id: int,
    status: AllocationStatus,
    from_statuses: Iterable[AllocationStatus],
    **extra: Any,
) -> int:
    r = await db.execute(
        update(BonusAllocation)
        .where(
            BonusAllocation.pool_id == pool_id,
            BonusAllocation.status.in_([s.value for s in from_statuses]),
        )
        .values(status=status.value, updated_at=datetime.utcnow(), **extra)
        .execution_options(synchronize_session="fetch")
    )
    return r.rowcount or 0


async def approve_pool(db: AsyncSession, pool_id: int, approved_by: Optional[str] = None) -> BonusPool:
    """
    審批：pool 與所有 calculated 分配一併轉 approved。已審批則直接回傳（不重複寫入）。
    分配合計超過獎金池總額（容許誤差外）時拒絕；pool 以條件式 UPDATE 轉態，
    期間若已被計算鎖住或狀態已變，回 Conflict。
    """
    pool = await get_pool(db, pool_id)
    if pool.status == PoolStatus.APPROVED.value:
        logger.info("bonus pool %s already approved; skip", pool_id)
        return pool
    require_pending_pool(pool, "審批")
    if pool.calculation_state == CalculationState.CALCULATING.value:
        raise BonusConflictError(f"獎金池 {pool_id} 正在計算中，請稍後再審批")
    calculated = await list_allocations(db, pool_id, statuses=[AllocationStatus.CALCULATED])
    if not calculated:
        raise BonusValidationError(f"獎金池 {pool_id} 尚無已計算的分配結果，請先執行計算")
    allocated = sum((Decimal(a.bonus_amount) for a in calculated), ZERO)
    pool_total = Decimal(pool.total_amount)
    if allocated - pool_total > settings.allocation_drift_tolerance:
        raise BonusValidationError(
            f"獎金池 {pool_id} 分配合計 {allocated} 超過獎金池總額 {pool_total}"
            f"（容許誤差 {settings.allocation_drift_tolerance}），請重新計算"
        )

    now = datetime.utcnow()
    r = await db.execute(
        update(BonusPool)
        .where(
            BonusPool.id == pool_id,
            BonusPool.status == PoolStatus.PENDING.value,
            BonusPool.calculation_state == CalculationState.IDLE.value,
        )
        .values(status=PoolStatus.APPROVED.value, approved_by=approved_by, approved_at=now)
        .execution_options(synchronize_session=False)
    )
    if (r.rowcount or 0) != 1:
        raise BonusConflictError(f"獎金池 {pool_id} 狀態已變更或正在計算中，審批未執行")
    count = await _set_allocation_status(
        db, pool_id, AllocationStatus.APPROVED, [AllocationStatus.CALCULATED], approved_at=now
    )
    await db.flush()
    await db.refresh(pool)
    logger.info("bonus pool %s approved by %s; allocations=%s", pool_id, approved_by, count)
    return pool


async def reject_pool(
    db: AsyncSession, pool_id: int, rejected_by: Optional[str] = None, reason: Optional[str] = None
) -> BonusPool:
    """退回：calculated 分配轉 rejected，pool 維持 pending，可修正資料後重新計算"""
    pool = await get_pool(db, pool_id)
    require_pending_pool(pool, "退回")
    remark = f"退回：{reason}" if reason else "退回"
    count = await _set_allocation_status(
        db, pool_id, AllocationStatus.REJECTED, [AllocationStatus.CALCULATED], remark=remark
    )
    pool.updated_by = rejected_by
    pool.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(pool)
    logger.info("bonus pool %s rejected by %s; allocations=%s reason=%s", pool_id, rejected_by, count, reason)
    return pool


async def distribute_pool(db: AsyncSession, pool_id: int, distributed_by: Optional[str] = None) -> BonusPool:
    pool = await get_pool(db, pool_id)
    if pool.status == PoolStatus.DISTRIBUTED.value:
        return pool
    if pool.status != PoolStatus.APPROVED.value:
        raise BonusValidationError(
            f"獎金池 {pool_id} 狀態為「{pool.status}」，只有「{PoolStatus.APPROVED.value}」狀態的獎金池可以發放"
        )
    await _set_allocation_status(db, pool_id, AllocationStatus.DISTRIBUTED, [AllocationStatus.APPROVED])
    pool.status = PoolStatus.DISTRIBUTED.value
    pool.distributed_at = datetime.utcnow()
    pool.updated_by = distributed_by
    await db.flush()
    await db.refresh(pool)
    logger.info("bonus pool %s distributed by %s", pool_id, distributed_by)
    return pool


async def soft_delete_pool(db: AsyncSession, pool_id: int, deleted_by: Optional[str] = None) -> BonusPool:
    pool = await get_pool(db, pool_id)
    require_pending_pool(pool, "刪除")
    if pool.calculation_state == CalculationState.CALCULATING.value:
        raise BonusConflictError(f"獎金池 {pool_id} 正在計算中，無法刪除")
    now = datetime.utcnow()
    await _set_allocation_status(
        db,
        pool_id,
        AllocationStatus.DELETED,
        [s for s in AllocationStatus if s is not AllocationStatus.DELETED],
    )
    pool.status = PoolStatus.DELETED.value
    pool.deleted_by = deleted_by
    pool.deleted_at = now
    await db.flush()
    await db.refresh(pool)
    logger.info("bonus pool %s soft-deleted by %s", pool_id, deleted_by)
    return pool


# ---------- 計算鎖（單一寫入者） ----------
async def acquire_calculation_lock(db: AsyncSession, pool_id: int) -> bool:
    """compare-and-swap：pending 且 idle 的池 calculation_state → calculating；成功才回傳 True"""
    r = await db.execute(
        update(BonusPool)
        .where(
            BonusPool.id == pool_id,
            BonusPool.status == PoolStatus.PENDING.value,
            BonusPool.calculation_state == CalculationState.IDLE.value,
        )
        .values(calculation_state=CalculationState.CALCULATING.value, calculation_started_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return (r.rowcount or 0) == 1


async def release_calculation_lock(db: AsyncSession, pool_id: int, calculated_at: Optional[datetime] = None) -> None:
    values: Dict[str, Any] = {
        "calculation_state": CalculationState.IDLE.value,
        "calculation_started_at": None,
    }
    if calculated_at is not None:
        values["last_calculated_at"] = calculated_at
    await db.execute(
        update(BonusPool)
        .where(BonusPool.id == pool_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def release_stale_calculation_locks(db: AsyncSession, older_than: datetime) -> int:
    """程序中斷遺留的 calculating 鎖：開始時間早於 older_than 者釋放為 idle"""
    r = await db.execute(
        update(BonusPool)
        .where(
            BonusPool.calculation_state == CalculationState.CALCULATING.value,
            BonusPool.calculation_started_at < older_than,
        )
        .values(calculation_state=CalculationState.IDLE.value, calculation_started_at=None)
        .execution_options(synchronize_session=False)
    )
    count = r.rowcount or 0
    if count:
        logger.warning("released %s stale calculation lock(s) started before %s", count, older_than)
    return count


# ---------- 分配結果 ----------
async def clear_pool_allocations(db: AsyncSession, pool_id: int) -> int:
    """重新計算前清除該池既有分配；已審批 / 已發放的資料不動"""
    r = await db.execute(
        delete(BonusAllocation)
        .where(
            BonusAllocation.pool_id == pool_id,
            BonusAllocation.status.notin_([AllocationStatus.APPROVED.value, AllocationStatus.DISTRIBUTED.value]),
        )
        .execution_options(synchronize_session="fetch")
    )
    return r.rowcount or 0


async def create_allocation(db: AsyncSession, **fields: Any) -> BonusAllocation:
    allocation = BonusAllocation(**fields)
    db.add(allocation)
    await db.flush()
    return allocation


async def get_allocation(db: AsyncSession, allocation_id: int) -> BonusAllocation:
    r = await db.execute(select(BonusAllocation).where(BonusAllocation.id == allocation_id))
    allocation = r.scalar_one_or_none()
    if allocation is None:
        raise BonusNotFoundError(f"分配結果不存在: {allocation_id}")
    return allocation


async def list_allocations(
    db: AsyncSession,
    pool_id: int,
    include_deleted: bool = False,
    statuses: Optional[List[AllocationStatus]] = None,
) -> List[BonusAllocation]:
    q = select(BonusAllocation).where(BonusAllocation.pool_id == pool_id).order_by(BonusAllocation.id)
    if statuses:
        q = q.where(BonusAllocation.status.in_([s.value for s in statuses]))
    elif not include_deleted:
        q = q.where(BonusAllocation.status != AllocationStatus.DELETED.value)
    r = await db.execute(q)
    return list(r.scalars().all())


async def _editable_allocation(db: AsyncSession, allocation_id: int, action: str) -> BonusAllocation:
    allocation = await get_allocation(db, allocation_id)
    if allocation.status != AllocationStatus.CALCULATED.value:
        raise BonusValidationError(
            f"分配結果 {allocation_id} 狀態為「{allocation.status}」，只有「{AllocationStatus.CALCULATED.value}」狀態可以{action}"
        )
    pool = await get_pool(db, allocation.pool_id)
    require_pending_pool(pool, f"{action}分配結果")
    return allocation


async def update_allocation(db: AsyncSession, allocation_id: int, data: BonusAllocationUpdate) -> BonusAllocation:
    """人工調整金額/備註：僅限 calculated 且所屬池為 pending"""
    allocation = await _editable_allocation(db, allocation_id, "修改")
    update_data = data.model_dump(exclude_unset=True)
    if "bonus_amount" in update_data and update_data["bonus_amount"] is not None:
        update_data["bonus_amount"] = round_money(update_data["bonus_amount"])
    for k, v in update_data.items():
        setattr(allocation, k, v)
    allocation.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(allocation)
    return allocation


async def delete_allocation(db: AsyncSession, allocation_id: int) -> BonusAllocation:
    allocation = await _editable_allocation(db, allocation_id, "刪除")
    allocation.status = AllocationStatus.DELETED.value
    allocation.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(allocation)
    return allocation


async def get_project_bonus_details(db: AsyncSession, project_id: int, period: str) -> Optional[Dict[str, Any]]:
    """項目某期間的獎金池、分配明細與摘要；無獎金池回傳 None"""
    pool = await find_active_pool(db, project_id, period)
    if pool is None:
        return None
    allocations = await list_allocations(db, pool.id)
    summary = summarize_allocations(allocations)
    summary["total_amount"] = pool.total_amount
    return {"pool": pool, "allocations": allocations, "summary": summary}
