"""CRUD 操作 - 部門、員工、角色、項目與成員、績效評估"""
from enum import Enum
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.models import (
    Department, Employee, Role, Project, ProjectMember, PerformanceAssessment,
)
from hrbonus.schemas import (
    DepartmentCreate, DepartmentUpdate,
    EmployeeCreate, EmployeeUpdate,
    RoleCreate, RoleUpdate,
    ProjectCreate, ProjectUpdate, ProjectMemberCreate, ProjectMemberUpdate,
    PerformanceAssessmentCreate, PerformanceAssessmentUpdate,
)


class DuplicateRecordError(ValueError):
    """唯一鍵重複（編號、代碼、同項目同員工、同員工同期間）"""
    pass


async def _apply_update(db: AsyncSession, obj, data) -> None:
    update_data = data.model_dump(exclude_unset=True)
    for k, v in update_data.items():
        if isinstance(v, Enum):
            v = v.value
        setattr(obj, k, v)
    await db.flush()
    await db.refresh(obj)


# ---------- 部門 ----------
async def get_department(db: AsyncSession, department_id: int) -> Optional[Department]:
    return await db.get(Department, department_id)


async def list_departments(db: AsyncSession) -> List[Department]:
    r = await db.execute(select(Department).order_by(Department.id))
    return list(r.scalars().all())


async def create_department(db: AsyncSession, data: DepartmentCreate) -> Department:
    r = await db.execute(select(Department).where(Department.name == data.name.strip()))
    if r.scalars().first():
        raise DuplicateRecordError(f"部門名稱已存在: {data.name}")
    dept = Department(name=data.name.strip(), code=data.code, description=data.description)
    db.add(dept)
    await db.flush()
    await db.refresh(dept)
    return dept


async def update_department(db: AsyncSession, dept: Department, data: DepartmentUpdate) -> Department:
    await _apply_update(db, dept, data)
    return dept


async def delete_department(db: AsyncSession, dept: Department) -> None:
    await db.delete(dept)


# ---------- 員工 ----------
async def get_employee(db: AsyncSession, employee_id: int) -> Optional[Employee]:
    return await db.get(Employee, employee_id)


async def list_employees(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    department_id: Optional[int] = None,
) -> List[Employee]:
    q = select(Employee).order_by(Employee.id)
    if search and search.strip():
        s = f"%{search.strip()}%"
        q = q.where(Employee.name.ilike(s) | Employee.employee_no.ilike(s))
    if department_id is not None:
        q = q.where(Employee.department_id == department_id)
    q = q.offset(skip).limit(limit)
    r = await db.execute(q)
    return list(r.scalars().all())


async def create_employee(db: AsyncSession, data: EmployeeCreate) -> Employee:
    r = await db.execute(select(Employee).where(Employee.employee_no == data.employee_no.strip()))
    if r.scalars().first():
        raise DuplicateRecordError(f"員工編號已存在: {data.employee_no}")
    raw = data.model_dump()
    raw["employee_no"] = raw["employee_no"].strip()
    emp = Employee(**raw)
    db.add(emp)
    await db.flush()
    await db.refresh(emp)
    return emp


async def update_employee(db: AsyncSession, emp: Employee, data: EmployeeUpdate) -> Employee:
    await _apply_update(db, emp, data)
    return emp


async def delete_employee(db: AsyncSession, emp: Employee) -> None:
    await db.delete(emp)


# ---------- 角色 ----------
async def get_role(db: AsyncSession, role_id: int) -> Optional[Role]:
    return await db.get(Role, role_id)


async def list_roles(db: AsyncSession) -> List[Role]:
    r = await db.execute(select(Role).order_by(Role.code))
    return list(r.scalars().all())


async def create_role(db: AsyncSession, data: RoleCreate) -> Role:
    r = await db.execute(select(Role).where(Role.code == data.code))
    if r.scalars().first():
        raise DuplicateRecordError(f"角色代碼已存在: {data.code}")
    role = Role(**data.model_dump())
    db.add(role)
    await db.flush()
    await db.refresh(role)
    return role


async def update_role(db: AsyncSession, role: Role, data: RoleUpdate) -> Role:
    await _apply_update(db, role, data)
    return role


async def delete_role(db: AsyncSession, role: Role) -> None:
    await db.delete(role)


# ---------- 項目 ----------
async def get_project(db: AsyncSession, project_id: int) -> Optional[Project]:
    return await db.get(Project, project_id)


async def list_projects(db: AsyncSession, status: Optional[str] = None) -> List[Project]:
    q = select(Project).order_by(Project.id)
    if status:
        q = q.where(Project.status == status.strip())
    r = await db.execute(q)
    return list(r.scalars().all())


async def create_project(db: AsyncSession, data: ProjectCreate) -> Project:
    r = await db.execute(select(Project).where(Project.code == data.code.strip()))
    if r.scalars().first():
        raise DuplicateRecordError(f"項目代碼已存在: {data.code}")
    raw = data.model_dump()
    raw["code"] = raw["code"].strip()
    project = Project(**raw)
    db.add(project)
    await db.flush()
    await db.refresh(project)
    return project


async def update_project(db: AsyncSession, project: Project, data: ProjectUpdate) -> Project:
    await _apply_update(db, project, data)
    return project


# ---------- 項目成員 ----------
async def get_project_member(db: AsyncSession, member_id: int) -> Optional[ProjectMember]:
    return await db.get(ProjectMember, member_id)


async def list_project_members(db: AsyncSession, project_id: int) -> List[ProjectMember]:
    r = await db.execute(
        select(ProjectMember).where(ProjectMember.project_id == project_id).order_by(ProjectMember.id)
    )
    return list(r.scalars().all())


async def add_project_member(db: AsyncSession, project_id: int, data: ProjectMemberCreate) -> ProjectMember:
    r = await db.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.employee_id == data.employee_id,
        )
    )
    if r.scalars().first():
        raise DuplicateRecordError(f"員工 {data.employee_id} 已是項目 {project_id} 成員")
    member = ProjectMember(
        project_id=project_id,
        employee_id=data.employee_id,
        role_id=(data.role_id or "").strip() or None,
        status=data.status.value,
        participation_ratio=data.participation_ratio,
    )
    db.add(member)
    await db.flush()
    await db.refresh(member)
    return member


async def update_project_member(db: AsyncSession, member: ProjectMember, data: ProjectMemberUpdate) -> ProjectMember:
    await _apply_update(db, member, data)
    return member


async def delete_project_member(db: AsyncSession, member: ProjectMember) -> None:
    await db.delete(member)


# ---------- 績效評估 ----------
async def get_assessment_by_id(db: AsyncSession, assessment_id: int) -> Optional[PerformanceAssessment]:
    return await db.get(PerformanceAssessment, assessment_id)


async def list_assessments(
    db: AsyncSession,
    employee_id: Optional[int] = None,
    period: Optional[str] = None,
) -> List[PerformanceAssessment]:
    q = select(PerformanceAssessment).order_by(PerformanceAssessment.employee_id, PerformanceAssessment.period)
    if employee_id is not None:
        q = q.where(PerformanceAssessment.employee_id == employee_id)
    if period:
        q = q.where(PerformanceAssessment.period == period.strip().upper())
    r = await db.execute(q)
    return list(r.scalars().all())


async def create_assessment(db: AsyncSession, data: PerformanceAssessmentCreate) -> PerformanceAssessment:
    r = await db.execute(
        select(PerformanceAssessment).where(
            PerformanceAssessment.employee_id == data.employee_id,
            PerformanceAssessment.period == data.period,
        )
    )
    if r.scalars().first():
        raise DuplicateRecordError(f"員工 {data.employee_id} 期間 {data.period} 已有績效評估")
    assessment = PerformanceAssessment(**data.model_dump())
    db.add(assessment)
    await db.flush()
    await db.refresh(assessment)
    return assessment


async def update_assessment(
    db: AsyncSession, assessment: PerformanceAssessment, data: PerformanceAssessmentUpdate
) -> PerformanceAssessment:
    await _apply_update(db, assessment, data)
    return assessment


async def delete_assessment(db: AsyncSession, assessment: PerformanceAssessment) -> None:
    await db.delete(assessment)
