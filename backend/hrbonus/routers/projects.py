"""項目 API：項目 CRUD、成員管理、項目角色權重設定、項目期間獎金明細。"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.database import get_db
from hrbonus import crud, schemas
from hrbonus.crud import DuplicateRecordError
from hrbonus.bonus import persistence
from hrbonus.bonus.role_weights import (
    get_default_role_weights,
    get_project_role_weight_config,
    resolve_role_weights,
    set_project_role_weights,
)

router = APIRouter(prefix="/api/projects", tags=["projects"])


async def _get_project_or_404(db: AsyncSession, project_id: int):
    project = await crud.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="項目不存在")
    return project


# ---------- 項目 ----------
@router.get("", response_model=List[schemas.ProjectRead])
async def list_projects(
    status: Optional[str] = Query(None, description="active / closed，不傳則全部"),
    db: AsyncSession = Depends(get_db),
):
    return await crud.list_projects(db, status=status)


@router.get("/{project_id}", response_model=schemas.ProjectRead)
async def get_project(project_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_project_or_404(db, project_id)


@router.post("", response_model=schemas.ProjectRead, status_code=201)
async def create_project(data: schemas.ProjectCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await crud.create_project(db, data)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{project_id}", response_model=schemas.ProjectRead)
async def update_project(project_id: int, data: schemas.ProjectUpdate, db: AsyncSession = Depends(get_db)):
    project = await _get_project_or_404(db, project_id)
    return await crud.update_project(db, project, data)


# ---------- 項目成員 ----------
@router.get("/{project_id}/members", response_model=List[schemas.ProjectMemberRead])
async def list_members(project_id: int, db: AsyncSession = Depends(get_db)):
    await _get_project_or_404(db, project_id)
    return await crud.list_project_members(db, project_id)


@router.post("/{project_id}/members", response_model=schemas.ProjectMemberRead, status_code=201)
async def add_member(project_id: int, data: schemas.ProjectMemberCreate, db: AsyncSession = Depends(get_db)):
    await _get_project_or_404(db, project_id)
    if not await crud.get_employee(db, data.employee_id):
        raise HTTPException(status_code=404, detail="員工不存在")
    try:
        return await crud.add_project_member(db, project_id, data)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{project_id}/members/{member_id}", response_model=schemas.ProjectMemberRead)
async def update_member(
    project_id: int,
    member_id: int,
    data: schemas.ProjectMemberUpdate,
    db: AsyncSession = Depends(get_db),
):
    member = await crud.get_project_member(db, member_id)
    if not member or member.project_id != project_id:
        raise HTTPException(status_code=404, detail="項目成員不存在")
    return await crud.update_project_member(db, member, data)


@router.delete("/{project_id}/members/{member_id}", status_code=204)
async def delete_member(project_id: int, member_id: int, db: AsyncSession = Depends(get_db)):
    member = await crud.get_project_member(db, member_id)
    if not member or member.project_id != project_id:
        raise HTTPException(status_code=404, detail="項目成員不存在")
    await crud.delete_project_member(db, member)


# ---------- 角色權重 ----------
@router.get("/{project_id}/role-weights", response_model=schemas.ApiResponse)
async def get_role_weights(project_id: int, db: AsyncSession = Depends(get_db)):
    """回傳生效權重（預設表合併項目覆寫）與是否有專屬設定"""
    await _get_project_or_404(db, project_id)
    config = await get_project_role_weight_config(db, project_id)
    effective = await resolve_role_weights(db, project_id)
    return schemas.ApiResponse(
        data={
            "project_id": project_id,
            "custom": config is not None,
            "weights": {k: float(v) for k, v in effective.items()},
            "overrides": dict(config.weights) if config else {},
            "defaults": {k: float(v) for k, v in get_default_role_weights().items()},
            "updated_by": config.updated_by if config else None,
            "updated_at": config.updated_at.isoformat() if config and config.updated_at else None,
        }
    )


@router.put("/{project_id}/role-weights", response_model=schemas.ApiResponse)
async def update_role_weights(
    project_id: int,
    body: schemas.RoleWeightsUpdate,
    updated_by: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    await _get_project_or_404(db, project_id)
    config = await set_project_role_weights(db, project_id, body.weights, updated_by=updated_by)
    await db.commit()
    return schemas.ApiResponse(
        message="項目角色權重配置已更新",
        data={
            "project_id": project_id,
            "weights": dict(config.weights),
            "total_weight": float(config.total_weight) if config.total_weight is not None else None,
        },
    )


# ---------- 期間獎金明細 ----------
@router.get("/{project_id}/periods/{period}/bonus", response_model=schemas.ApiResponse)
async def get_project_period_bonus(project_id: int, period: str, db: AsyncSession = Depends(get_db)):
    await _get_project_or_404(db, project_id)
    try:
        period = schemas.validate_period(period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    details = await persistence.get_project_bonus_details(db, project_id, period)
    if details is None:
        return schemas.ApiResponse(message=f"項目 {project_id} 期間 {period} 尚無獎金池", data=None)
    return schemas.ApiResponse(
        data={
            "pool": schemas.BonusPoolRead.model_validate(details["pool"]).model_dump(mode="json"),
            "allocations": [
                schemas.BonusAllocationRead.model_validate(a).model_dump(mode="json") for a in details["allocations"]
            ],
            "summary": jsonable_encoder(details["summary"]),
        }
    )
