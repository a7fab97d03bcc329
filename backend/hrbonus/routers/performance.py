"""績效評估 API：同一員工同一期間僅一筆；final_score 換算獎金績效係數。"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.database import get_db
from hrbonus import crud, schemas
from hrbonus.crud import DuplicateRecordError
from hrbonus.bonus.performance import resolve_performance_coefficient

router = APIRouter(prefix="/api/performance-assessments", tags=["performance"])


@router.get("", response_model=List[schemas.PerformanceAssessmentRead])
async def list_assessments(
    employee_id: Optional[int] = Query(None),
    period: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await crud.list_assessments(db, employee_id=employee_id, period=period)


@router.get("/coefficient")
async def get_performance_coefficient(
    employee_id: int = Query(...),
    period: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """查詢員工某期間用於獎金計算的績效係數（無評估時為 1.0）"""
    try:
        period = schemas.validate_period(period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    coeff = await resolve_performance_coefficient(db, employee_id, period)
    return {"employee_id": employee_id, "period": period, "coefficient": float(coeff)}


@router.get("/{assessment_id}", response_model=schemas.PerformanceAssessmentRead)
async def get_assessment(assessment_id: int, db: AsyncSession = Depends(get_db)):
    assessment = await crud.get_assessment_by_id(db, assessment_id)
    if not assessment:
        raise HTTPException(status_code=404, detail="績效評估不存在")
    return assessment


@router.post("", response_model=schemas.PerformanceAssessmentRead, status_code=201)
async def create_assessment(data: schemas.PerformanceAssessmentCreate, db: AsyncSession = Depends(get_db)):
    if not await crud.get_employee(db, data.employee_id):
        raise HTTPException(status_code=404, detail="員工不存在")
    try:
        return await crud.create_assessment(db, data)
    except DuplicateRecordError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{assessment_id}", response_model=schemas.PerformanceAssessmentRead)
async def update_assessment(
    assessment_id: int,
    data: schemas.PerformanceAssessmentUpdate,
    db: AsyncSession = Depends(get_db),
):
    assessment = await crud.get_assessment_by_id(db, assessment_id)
    if not assessment:
        raise HTTPException(status_code=404, detail="績效評估不存在")
    return await crud.update_assessment(db, assessment, data)


@router.delete("/{assessment_id}", status_code=204)
async def delete_assessment(assessment_id: int, db: AsyncSession = Depends(get_db)):
    assessment = await crud.get_assessment_by_id(db, assessment_id)
    if not assessment:
        raise HTTPException(status_code=404, detail="績效評估不存在")
    await crud.delete_assessment(db, assessment)
