"""項目獎金池 API：建立、編輯、計算分配、審批 / 退回 / 發放、軟刪除、分配明細與 Excel 匯出。
回應一律為 {success, message, data}；BonusError 由 main 的 exception handler 轉為 400/404/409/500。"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
import io
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.database import get_db
from hrbonus import crud, schemas
from hrbonus.models import PoolStatus
from hrbonus.bonus import persistence
from hrbonus.bonus.allocation_export import build_allocation_excel
from hrbonus.bonus.calculator import BonusAllocationCalculator
from hrbonus.utils.http_headers import build_content_disposition

router = APIRouter(prefix="/api/bonus-pools", tags=["bonus-pools"])
allocation_router = APIRouter(prefix="/api/bonus-allocations", tags=["bonus-pools"])


def _pool_data(pool) -> dict:
    return schemas.BonusPoolRead.model_validate(pool).model_dump(mode="json")


def _allocations_data(allocations) -> List[dict]:
    return [schemas.BonusAllocationRead.model_validate(a).model_dump(mode="json") for a in allocations]


def calculation_result_data(result: dict) -> dict:
    """計算結果轉 API 回應（allocations 為 ORM 物件，先轉 schema）"""
    payload = dict(result)
    payload["allocations"] = [schemas.BonusAllocationRead.model_validate(a) for a in result["allocations"]]
    return schemas.CalculationResult(**payload).model_dump(mode="json")


@router.get("", response_model=schemas.ApiResponse)
async def list_bonus_pools(
    project_id: Optional[int] = Query(None),
    period: Optional[str] = Query(None),
    status: Optional[PoolStatus] = Query(None, description="不傳則列出未刪除的獎金池"),
    db: AsyncSession = Depends(get_db),
):
    pools = await persistence.list_pools(db, project_id=project_id, period=period, status=status)
    return schemas.ApiResponse(message="獲取獎金池列表成功", data=[_pool_data(p) for p in pools])


@router.post("", response_model=schemas.ApiResponse, status_code=201)
async def create_bonus_pool(
    data: schemas.BonusPoolCreate,
    created_by: Optional[str] = Query(None, description="建立者（由上游驗證後帶入）"),
    db: AsyncSession = Depends(get_db),
):
    pool = await persistence.create_pool(db, data, created_by=created_by)
    await db.commit()
    return schemas.ApiResponse(message="項目獎金池建立成功", data=_pool_data(pool))


@router.get("/{pool_id}", response_model=schemas.ApiResponse)
async def get_bonus_pool(pool_id: int, db: AsyncSession = Depends(get_db)):
    pool = await persistence.get_pool(db, pool_id)
    data = _pool_data(pool)
    project = await crud.get_project(db, pool.project_id)
    data["project_name"] = project.name if project else None
    data["project_code"] = project.code if project else None
    return schemas.ApiResponse(message="獲取獎金池詳情成功", data=data)


@router.put("/{pool_id}", response_model=schemas.ApiResponse)
async def update_bonus_pool(
    pool_id: int,
    data: schemas.BonusPoolUpdate,
    updated_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    pool = await persistence.update_pool(db, pool_id, data, updated_by=updated_by)
    await db.commit()
    return schemas.ApiResponse(message="獎金池編輯成功", data=_pool_data(pool))


@router.delete("/{pool_id}", response_model=schemas.ApiResponse)
async def delete_bonus_pool(
    pool_id: int,
    deleted_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    pool = await persistence.soft_delete_pool(db, pool_id, deleted_by=deleted_by)
    await db.commit()
    return schemas.ApiResponse(message="獎金池刪除成功", data=_pool_data(pool))


@router.post("/{pool_id}/calculate", response_model=schemas.ApiResponse)
async def calculate_bonus_pool(pool_id: int, db: AsyncSession = Depends(get_db)):
    """計算分配：同一獎金池計算中再次呼叫回 409"""
    result = await BonusAllocationCalculator(db).calculate(pool_id)
    return schemas.ApiResponse(message="項目獎金計算完成", data=calculation_result_data(result))


@router.post("/{pool_id}/approve", response_model=schemas.ApiResponse)
async def approve_bonus_pool(
    pool_id: int,
    approved_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    pool = await persistence.approve_pool(db, pool_id, approved_by=approved_by)
    await db.commit()
    return schemas.ApiResponse(message="項目獎金分配審批完成", data=_pool_data(pool))


@router.post("/{pool_id}/reject", response_model=schemas.ApiResponse)
async def reject_bonus_pool(
    pool_id: int,
    body: schemas.BonusPoolReject,
    rejected_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    pool = await persistence.reject_pool(db, pool_id, rejected_by=rejected_by, reason=body.reason)
    await db.commit()
    return schemas.ApiResponse(message="項目獎金分配已退回", data=_pool_data(pool))


@router.post("/{pool_id}/distribute", response_model=schemas.ApiResponse)
async def distribute_bonus_pool(
    pool_id: int,
    distributed_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    pool = await persistence.distribute_pool(db, pool_id, distributed_by=distributed_by)
    await db.commit()
    return schemas.ApiResponse(message="項目獎金已發放", data=_pool_data(pool))


@router.get("/{pool_id}/allocations", response_model=schemas.ApiResponse)
async def list_pool_allocations(
    pool_id: int,
    include_deleted: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    await persistence.get_pool(db, pool_id)
    allocations = await persistence.list_allocations(db, pool_id, include_deleted=include_deleted)
    summary = persistence.summarize_allocations(allocations)
    return schemas.ApiResponse(
        data={
            "allocations": _allocations_data(allocations),
            "summary": jsonable_encoder(summary),
        }
    )


@router.get("/{pool_id}/export")
async def export_pool_allocations(pool_id: int, db: AsyncSession = Depends(get_db)):
    """匯出分配明細 Excel"""
    pool = await persistence.get_pool(db, pool_id)
    allocations = await persistence.list_allocations(db, pool_id)
    employees = {}
    for a in allocations:
        emp = await crud.get_employee(db, a.employee_id)
        if emp is not None:
            employees[a.employee_id] = emp
    content = build_allocation_excel(pool, allocations, employees)
    headers = {
        "Content-Disposition": build_content_disposition(
            f"bonus_allocations_{pool.project_id}_{pool.period}.xlsx",
            f"項目獎金分配_{pool.project_id}_{pool.period}.xlsx",
        )
    }
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )


# ---------- 單筆分配結果 ----------
@allocation_router.get("/{allocation_id}", response_model=schemas.ApiResponse)
async def get_bonus_allocation(allocation_id: int, db: AsyncSession = Depends(get_db)):
    allocation = await persistence.get_allocation(db, allocation_id)
    return schemas.ApiResponse(data=_allocations_data([allocation])[0])


@allocation_router.patch("/{allocation_id}", response_model=schemas.ApiResponse)
async def update_bonus_allocation(
    allocation_id: int,
    data: schemas.BonusAllocationUpdate,
    db: AsyncSession = Depends(get_db),
):
    allocation = await persistence.update_allocation(db, allocation_id, data)
    await db.commit()
    return schemas.ApiResponse(message="分配結果已更新", data=_allocations_data([allocation])[0])


@allocation_router.delete("/{allocation_id}", response_model=schemas.ApiResponse)
async def delete_bonus_allocation(allocation_id: int, db: AsyncSession = Depends(get_db)):
    allocation = await persistence.delete_allocation(db, allocation_id)
    await db.commit()
    return schemas.ApiResponse(message="分配結果已刪除", data=_allocations_data([allocation])[0])
