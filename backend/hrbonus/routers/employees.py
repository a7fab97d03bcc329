"""員工 CRUD API；employee_no 唯一。"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.database import get_db
from hrbonus import crud, schemas
from hrbonus.crud import DuplicateRecordError

router = APIRouter(prefix="/api/employees", tags=["employees"])


@router.get("", response_model=List[schemas.EmployeeRead])
async def list_employees(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    search: Optional[str] = Query(None, description="搜尋姓名或員工編號（部分符合）"),
    department_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await crud.list_employees(db, skip=skip, limit=limit, search=search, department_id=department_id)


@router.get("/{employee_id}", response_model=schemas.EmployeeRead)
async def get_employee(employee_id: int, db: AsyncSession = Depends(get_db)):
    emp = await crud.get_employee(db, employee_id)
    if not emp:
        raise HTTPException(status_code=404, detail="員工不存在")
    return emp


@router.post("", response_model=schemas.EmployeeRead, status_code=201)
async def create_employee(data: schemas.EmployeeCreate, db: AsyncSession = Depends(get_db)):
    if data.department_id is not None and not await crud.get_department(db, data.department_id):
        raise HTTPException(status_code=404, detail="部門不存在")
    try:
        return await crud.create_employee(db, data)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{employee_id}", response_model=schemas.EmployeeRead)
async def update_employee(
    employee_id: int,
    data: schemas.EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
):
    emp = await crud.get_employee(db, employee_id)
    if not emp:
        raise HTTPException(status_code=404, detail="員工不存在")
    return await crud.update_employee(db, emp, data)


@router.delete("/{employee_id}", status_code=204)
async def delete_employee(employee_id: int, db: AsyncSession = Depends(get_db)):
    emp = await crud.get_employee(db, employee_id)
    if not emp:
        raise HTTPException(status_code=404, detail="員工不存在")
    await crud.delete_employee(db, emp)
