"""角色 CRUD API 與系統預設角色權重表"""
from typing import Dict, List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.database import get_db
from hrbonus import crud, schemas
from hrbonus.crud import DuplicateRecordError
from hrbonus.bonus.role_weights import get_default_role_weights

router = APIRouter(prefix="/api/roles", tags=["roles"])


@router.get("", response_model=List[schemas.RoleRead])
async def list_roles(db: AsyncSession = Depends(get_db)):
    return await crud.list_roles(db)


@router.get("/default-weights", response_model=Dict[str, float])
async def default_role_weights():
    """系統預設角色權重（項目未覆寫時使用）"""
    return {k: float(v) for k, v in get_default_role_weights().items()}


@router.get("/{role_id}", response_model=schemas.RoleRead)
async def get_role(role_id: int, db: AsyncSession = Depends(get_db)):
    role = await crud.get_role(db, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="角色不存在")
    return role


@router.post("", response_model=schemas.RoleRead, status_code=201)
async def create_role(data: schemas.RoleCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await crud.create_role(db, data)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{role_id}", response_model=schemas.RoleRead)
async def update_role(role_id: int, data: schemas.RoleUpdate, db: AsyncSession = Depends(get_db)):
    role = await crud.get_role(db, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="角色不存在")
    return await crud.update_role(db, role, data)


@router.delete("/{role_id}", status_code=204)
async def delete_role(role_id: int, db: AsyncSession = Depends(get_db)):
    role = await crud.get_role(db, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="角色不存在")
    await crud.delete_role(db, role)
