"""部門 CRUD API"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.database import get_db
from hrbonus import crud, schemas
from hrbonus.crud import DuplicateRecordError

router = APIRouter(prefix="/api/departments", tags=["departments"])


@router.get("", response_model=List[schemas.DepartmentRead])
async def list_departments(db: AsyncSession = Depends(get_db)):
    return await crud.list_departments(db)


@router.get("/{department_id}", response_model=schemas.DepartmentRead)
async def get_department(department_id: int, db: AsyncSession = Depends(get_db)):
    dept = await crud.get_department(db, department_id)
    if not dept:
        raise HTTPException(status_code=404, detail="部門不存在")
    return dept


@router.post("", response_model=schemas.DepartmentRead, status_code=201)
async def create_department(data: schemas.DepartmentCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await crud.create_department(db, data)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{department_id}", response_model=schemas.DepartmentRead)
async def update_department(
    department_id: int,
    data: schemas.DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
):
    dept = await crud.get_department(db, department_id)
    if not dept:
        raise HTTPException(status_code=404, detail="部門不存在")
    return await crud.update_department(db, dept, data)


@router.delete("/{department_id}", status_code=204)
async def delete_department(department_id: int, db: AsyncSession = Depends(get_db)):
    dept = await crud.get_department(db, department_id)
    if not dept:
        raise HTTPException(status_code=404, detail="部門不存在")
    await crud.delete_department(db, dept)
