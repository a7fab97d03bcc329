"""
獎金池狀態流轉測試：建立、審批（冪等）、退回後重算、發放、軟刪除、分配結果人工調整、計算鎖與逾時清理。
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from hrbonus.bonus import persistence
from hrbonus.bonus.calculator import BonusAllocationCalculator
from hrbonus.bonus.errors import BonusConflictError, BonusNotFoundError, BonusValidationError
from hrbonus.models import AllocationStatus, CalculationState, PoolStatus
from hrbonus.schemas import BonusAllocationUpdate, BonusPoolCreate, BonusPoolUpdate
from hrbonus.services.calculation_lock_job import run_lock_sweep

from conftest import seed_employee, seed_member, seed_project


async def _calculated_pool(db, total_amount: Decimal = Decimal("60000")):
    project = await seed_project(db)
    a = await seed_employee(db, "E001", "王小明")
    b = await seed_employee(db, "E002", "李小華")
    await seed_member(db, project, a.id, role_id="project_manager")
    await seed_member(db, project, b.id, role_id="developer")
    pool = await persistence.create_pool(
        db, BonusPoolCreate(project_id=project.id, period="2025-q2", total_amount=total_amount), created_by="hr"
    )
    await db.commit()
    await BonusAllocationCalculator(db).calculate(pool.id)
    return pool


async def test_create_pool_normalizes_period_and_defaults(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        pool = await persistence.create_pool(
            db, BonusPoolCreate(project_id=project.id, period="2025-q2", total_amount=Decimal("1000"))
        )
        assert pool.period == "2025-Q2"
        assert pool.status == PoolStatus.PENDING.value
        assert pool.calculation_state == CalculationState.IDLE.value


async def test_create_pool_missing_project(async_session):
    async with async_session() as db:
        with pytest.raises(BonusNotFoundError):
            await persistence.create_pool(
                db, BonusPoolCreate(project_id=404, period="2025-06", total_amount=Decimal("1000"))
            )


async def test_create_duplicate_active_pool_conflict(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        data = BonusPoolCreate(project_id=project.id, period="2025-06", total_amount=Decimal("1000"))
        await persistence.create_pool(db, data)
        with pytest.raises(BonusConflictError):
            await persistence.create_pool(db, data)


async def test_approve_requires_calculation(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        pool = await persistence.create_pool(
            db, BonusPoolCreate(project_id=project.id, period="2025-06", total_amount=Decimal("1000"))
        )
        with pytest.raises(BonusValidationError):
            await persistence.approve_pool(db, pool.id)


async def test_approve_cascades_and_is_idempotent(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        approved = await persistence.approve_pool(db, pool.id, approved_by="boss")
        await db.commit()
        assert approved.status == PoolStatus.APPROVED.value
        assert approved.approved_by == "boss"
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.APPROVED.value}
        assert all(a.approved_at is not None for a in allocations)

        first_approved_at = approved.approved_at
        again = await persistence.approve_pool(db, pool.id, approved_by="someone-else")
        assert again.status == PoolStatus.APPROVED.value
        assert again.approved_at == first_approved_at
        assert again.approved_by == "boss"


async def test_non_pending_pool_cannot_be_edited_or_deleted(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        await persistence.approve_pool(db, pool.id)
        await db.commit()

        with pytest.raises(BonusValidationError) as exc:
            await persistence.update_pool(db, pool.id, BonusPoolUpdate(total_amount=Decimal("1")))
        assert "approved" in str(exc.value)
        assert "pending" in str(exc.value)

        with pytest.raises(BonusValidationError) as exc:
            await persistence.soft_delete_pool(db, pool.id)
        assert "approved" in str(exc.value)


async def test_update_pending_pool(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        updated = await persistence.update_pool(
            db, pool.id, BonusPoolUpdate(total_amount=Decimal("70000"), description="調整"), updated_by="hr"
        )
        assert updated.total_amount == Decimal("70000")
        assert updated.description == "調整"
        assert updated.updated_by == "hr"


async def test_reject_then_recalculate(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        rejected = await persistence.reject_pool(db, pool.id, rejected_by="boss", reason="金額有誤")
        await db.commit()
        assert rejected.status == PoolStatus.PENDING.value
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.REJECTED.value}
        assert all(a.remark == "退回：金額有誤" for a in allocations)

        with pytest.raises(BonusValidationError):
            await persistence.approve_pool(db, pool.id)

        result = await BonusAllocationCalculator(db).calculate(pool.id)
        assert result["member_count"] == 2
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.CALCULATED.value}


async def test_distribute_flow(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        with pytest.raises(BonusValidationError):
            await persistence.distribute_pool(db, pool.id)

        await persistence.approve_pool(db, pool.id)
        distributed = await persistence.distribute_pool(db, pool.id, distributed_by="finance")
        await db.commit()
        assert distributed.status == PoolStatus.DISTRIBUTED.value
        assert distributed.distributed_at is not None
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.DISTRIBUTED.value}

        again = await persistence.distribute_pool(db, pool.id)
        assert again.distributed_at == distributed.distributed_at

        with pytest.raises(BonusValidationError):
            await BonusAllocationCalculator(db).calculate(pool.id)


async def test_soft_delete_keeps_rows(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        deleted = await persistence.soft_delete_pool(db, pool.id, deleted_by="hr")
        await db.commit()
        assert deleted.status == PoolStatus.DELETED.value
        assert deleted.deleted_at is not None

        assert await persistence.list_allocations(db, pool.id) == []
        kept = await persistence.list_allocations(db, pool.id, include_deleted=True)
        assert len(kept) == 2
        assert {a.status for a in kept} == {AllocationStatus.DELETED.value}

        assert await persistence.list_pools(db, project_id=pool.project_id) == []
        assert [p.id for p in await persistence.list_pools(db, status=PoolStatus.DELETED)] == [pool.id]

        # 刪除後同項目同期間可重新建立
        again = await persistence.create_pool(
            db, BonusPoolCreate(project_id=pool.project_id, period=pool.period, total_amount=Decimal("1"))
        )
        assert again.id != pool.id


async def test_delete_while_calculating_conflict(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        pool = await persistence.create_pool(
            db, BonusPoolCreate(project_id=project.id, period="2025-06", total_amount=Decimal("1000"))
        )
        assert await persistence.acquire_calculation_lock(db, pool.id) is True
        await db.commit()
        await db.refresh(pool)
        with pytest.raises(BonusConflictError):
            await persistence.soft_delete_pool(db, pool.id)


async def test_allocation_manual_adjustment(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        allocations = await persistence.list_allocations(db, pool.id)
        target = allocations[0]

        updated = await persistence.update_allocation(
            db, target.id, BonusAllocationUpdate(bonus_amount=Decimal("1234.567"), remark="主管調整")
        )
        assert updated.bonus_amount == Decimal("1234.57")
        assert updated.remark == "主管調整"

        removed = await persistence.delete_allocation(db, allocations[1].id)
        assert removed.status == AllocationStatus.DELETED.value
        assert [a.id for a in await persistence.list_allocations(db, pool.id)] == [target.id]

        await persistence.approve_pool(db, pool.id)
        with pytest.raises(BonusValidationError):
            await persistence.update_allocation(db, target.id, BonusAllocationUpdate(bonus_amount=Decimal("1")))


async def test_get_allocation_not_found(async_session):
    async with async_session() as db:
        with pytest.raises(BonusNotFoundError):
            await persistence.get_allocation(db, 12345)


async def test_calculation_lock_single_writer(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        pool = await persistence.create_pool(
            db, BonusPoolCreate(project_id=project.id, period="2025-06", total_amount=Decimal("1000"))
        )
        assert await persistence.acquire_calculation_lock(db, pool.id) is True
        assert await persistence.acquire_calculation_lock(db, pool.id) is False
        await persistence.release_calculation_lock(db, pool.id)
        assert await persistence.acquire_calculation_lock(db, pool.id) is True


async def test_stale_lock_sweep(async_session):
    """逾時的計算鎖由排程釋放；剛取得的鎖不受影響"""
    async with async_session() as db:
        project = await seed_project(db)
        stale = await persistence.create_pool(
            db, BonusPoolCreate(project_id=project.id, period="2025-05", total_amount=Decimal("1000"))
        )
        fresh = await persistence.create_pool(
            db, BonusPoolCreate(project_id=project.id, period="2025-06", total_amount=Decimal("1000"))
        )
        now = datetime.utcnow()
        stale.calculation_state = CalculationState.CALCULATING.value
        stale.calculation_started_at = now - timedelta(hours=2)
        fresh.calculation_state = CalculationState.CALCULATING.value
        fresh.calculation_started_at = now
        await db.commit()
        stale_id, fresh_id = stale.id, fresh.id

    released = await run_lock_sweep(session_factory=async_session, now=now)
    assert released == 1

    async with async_session() as db:
        assert (await persistence.get_pool(db, stale_id)).calculation_state == CalculationState.IDLE.value
        assert (await persistence.get_pool(db, fresh_id)).calculation_state == CalculationState.CALCULATING.value


async def test_project_bonus_details(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db, total_amount=Decimal("60000"))
        details = await persistence.get_project_bonus_details(db, pool.project_id, "2025-Q2")
        assert details["pool"].id == pool.id
        assert len(details["allocations"]) == 2
        assert details["summary"]["member_count"] == 2
        assert details["summary"]["total_amount"] == Decimal("60000")
        assert details["summary"]["total_allocated"] == Decimal("60000.00")

        assert await persistence.get_project_bonus_details(db, pool.project_id, "2024-Q1") is None


async def test_total_amount_change_invalidates_calculated_rows(async_session):
    """總額變更後舊分配轉 rejected，須重新計算才能審批"""
    async with async_session() as db:
        pool = await _calculated_pool(db, total_amount=Decimal("150000"))
        await persistence.update_pool(db, pool.id, BonusPoolUpdate(total_amount=Decimal("1000")))
        await db.commit()

        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.REJECTED.value}
        with pytest.raises(BonusValidationError):
            await persistence.approve_pool(db, pool.id)

        result = await BonusAllocationCalculator(db).calculate(pool.id)
        assert result["total_allocated"] == Decimal("1000.00")
        approved = await persistence.approve_pool(db, pool.id)
        assert approved.status == PoolStatus.APPROVED.value


async def test_same_total_amount_keeps_calculated_rows(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db)
        await persistence.update_pool(db, pool.id, BonusPoolUpdate(total_amount=Decimal("60000"), description="備註"))
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.CALCULATED.value}


async def test_approve_rejects_allocations_over_pool_total(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db, total_amount=Decimal("60000"))
        target = (await persistence.list_allocations(db, pool.id))[0]
        await persistence.update_allocation(db, target.id, BonusAllocationUpdate(bonus_amount=Decimal("999999")))
        await db.commit()

        with pytest.raises(BonusValidationError) as exc:
            await persistence.approve_pool(db, pool.id)
        # 38181.82 改為 999999.00，另一人 21818.18
        assert "1021817.18" in str(exc.value)
        assert "60000.00" in str(exc.value)

        await db.refresh(pool)
        assert pool.status == PoolStatus.PENDING.value
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.CALCULATED.value}


async def test_approve_allows_rounding_within_tolerance(async_session):
    async with async_session() as db:
        pool = await _calculated_pool(db, total_amount=Decimal("60000"))
        target = (await persistence.list_allocations(db, pool.id))[0]
        await persistence.update_allocation(
            db, target.id, BonusAllocationUpdate(bonus_amount=Decimal(target.bonus_amount) + Decimal("0.50"))
        )
        approved = await persistence.approve_pool(db, pool.id)
        assert approved.status == PoolStatus.APPROVED.value


async def test_lock_refused_on_approved_pool(async_session):
    """已審批的池無法取得計算鎖，已審批分配不會被清除或覆寫"""
    async with async_session() as db:
        pool = await _calculated_pool(db)
        await persistence.approve_pool(db, pool.id)
        await db.commit()

        assert await persistence.acquire_calculation_lock(db, pool.id) is False
        assert await persistence.clear_pool_allocations(db, pool.id) == 0
        allocations = await persistence.list_allocations(db, pool.id)
        assert len(allocations) == 2
        assert {a.status for a in allocations} == {AllocationStatus.APPROVED.value}


async def test_approve_conflicts_when_lock_taken_after_load(async_session):
    """載入後計算鎖被取得（記憶體中的物件仍是 idle）：審批以條件式更新判斷，回 Conflict 且不轉態"""
    async with async_session() as db:
        pool = await _calculated_pool(db)
        assert await persistence.acquire_calculation_lock(db, pool.id) is True
        assert pool.calculation_state == CalculationState.IDLE.value

        with pytest.raises(BonusConflictError):
            await persistence.approve_pool(db, pool.id)

        await db.refresh(pool)
        assert pool.status == PoolStatus.PENDING.value
        assert pool.calculation_state == CalculationState.CALCULATING.value
        allocations = await persistence.list_allocations(db, pool.id)
        assert {a.status for a in allocations} == {AllocationStatus.CALCULATED.value}
