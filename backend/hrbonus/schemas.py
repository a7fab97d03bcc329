"""API 請求/回應結構 - Pydantic"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import re
from pydantic import BaseModel, Field, ConfigDict, field_validator

from hrbonus.models import EMPLOYEE_STATUSES, MemberStatus


# 期間格式：2025-06（月）、2025-Q2（季）、2025-H1（半年）、2025（年）
PERIOD_PATTERN = re.compile(r"^\d{4}(-(0[1-9]|1[0-2]|Q[1-4]|H[12]))?$")


def validate_period(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().upper()
    if not PERIOD_PATTERN.match(v):
        raise ValueError("期間格式錯誤（例：2025-06、2025-Q2、2025-H1、2025）")
    return v


class ApiResponse(BaseModel):
    """統一回應：{success, message, data}"""
    success: bool = True
    message: str = ""
    data: Any = None


# ---------- 部門 ----------
class DepartmentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="部門名稱")
    code: Optional[str] = Field(None, max_length=30)
    description: Optional[str] = None


class DepartmentCreate(DepartmentBase):
    pass


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=30)
    description: Optional[str] = None


class DepartmentRead(DepartmentBase):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 員工 ----------
class EmployeeBase(BaseModel):
    employee_no: str = Field(..., min_length=1, max_length=30, description="員工編號")
    name: str = Field(..., min_length=1, max_length=50, description="姓名")
    department_id: Optional[int] = None
    position: Optional[str] = None
    status: str = Field("active", description="active / inactive")

    @field_validator("status")
    @classmethod
    def check_status(cls, v: str) -> str:
        v = (v or "active").strip().lower()
        if v not in EMPLOYEE_STATUSES:
            raise ValueError("員工狀態無效")
        return v


class EmployeeCreate(EmployeeBase):
    pass


class EmployeeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    department_id: Optional[int] = None
    position: Optional[str] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in EMPLOYEE_STATUSES:
            raise ValueError("員工狀態無效")
        return v


class EmployeeRead(EmployeeBase):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 角色 ----------
class RoleBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, description="角色代碼，如 developer")
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().lower()


class RoleCreate(RoleBase):
    pass


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class RoleRead(RoleBase):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 項目與成員 ----------
class ProjectBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=200)
    manager_employee_id: Optional[int] = None
    status: str = "active"


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    manager_employee_id: Optional[int] = None
    status: Optional[str] = None


class ProjectRead(ProjectBase):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ProjectMemberBase(BaseModel):
    employee_id: int
    role_id: Optional[str] = Field(None, max_length=50, description="角色代碼；空值於計算時指派 default")
    status: MemberStatus = MemberStatus.PENDING
    participation_ratio: Optional[Decimal] = Field(None, ge=0, le=1, description="參與比例 0~1，空值視為 1.0")


class ProjectMemberCreate(ProjectMemberBase):
    pass


class ProjectMemberUpdate(BaseModel):
    role_id: Optional[str] = Field(None, max_length=50)
    status: Optional[MemberStatus] = None
    participation_ratio: Optional[Decimal] = Field(None, ge=0, le=1)


class ProjectMemberRead(BaseModel):
    id: int
    project_id: int
    employee_id: Optional[int] = None
    role_id: Optional[str] = None
    status: str
    participation_ratio: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class RoleWeightsUpdate(BaseModel):
    weights: Dict[str, Decimal] = Field(..., description="{role_code: weight}，權重須為正數")


# ---------- 績效評估 ----------
class PerformanceAssessmentBase(BaseModel):
    employee_id: int
    period: str = Field(..., description="期間，如 2025-06 / 2025-Q2")
    final_score: Decimal = Field(..., ge=0, le=100)
    evaluation_date: Optional[date] = None

    @field_validator("period")
    @classmethod
    def check_period(cls, v: str) -> str:
        return validate_period(v)


class PerformanceAssessmentCreate(PerformanceAssessmentBase):
    pass


class PerformanceAssessmentUpdate(BaseModel):
    final_score: Optional[Decimal] = Field(None, ge=0, le=100)
    evaluation_date: Optional[date] = None


class PerformanceAssessmentRead(BaseModel):
    id: int
    employee_id: int
    period: str
    final_score: Optional[Decimal] = None
    evaluation_date: Optional[date] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 獎金池與分配 ----------
class BonusPoolCreate(BaseModel):
    project_id: int
    period: str
    total_amount: Decimal = Field(..., ge=0, description="獎金總額")
    profit_ratio: Optional[Decimal] = Field(None, ge=0, le=1)
    description: Optional[str] = None

    @field_validator("period")
    @classmethod
    def check_period(cls, v: str) -> str:
        return validate_period(v)


class BonusPoolUpdate(BaseModel):
    total_amount: Optional[Decimal] = Field(None, ge=0)
    profit_ratio: Optional[Decimal] = Field(None, ge=0, le=1)
    description: Optional[str] = None

    @field_validator("total_amount")
    @classmethod
    def total_amount_not_null(cls, v: Optional[Decimal]) -> Decimal:
        # 不傳表示不修改；明確傳 null 不允許
        if v is None:
            raise ValueError("獎金總額不可為空")
        return v


class BonusPoolRead(BaseModel):
    id: int
    project_id: int
    period: str
    total_amount: Decimal
    profit_ratio: Optional[Decimal] = None
    description: Optional[str] = None
    status: str
    calculation_state: str
    last_calculated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    distributed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BonusPoolReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=400)


class BonusAllocationUpdate(BaseModel):
    bonus_amount: Optional[Decimal] = Field(None, ge=0)
    remark: Optional[str] = Field(None, max_length=500)


class BonusAllocationRead(BaseModel):
    id: int
    pool_id: int
    project_id: int
    member_id: int
    employee_id: int
    role_id: str
    role_weight: Decimal
    performance_coeff: Decimal
    participation_ratio: Decimal
    calculated_weight: Decimal
    bonus_amount: Decimal
    default_role_assigned: bool
    status: str
    remark: Optional[str] = None
    calculated_at: datetime
    approved_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class CalculationSummary(BaseModel):
    valid_member_count: int
    total_weight: Decimal
    average_bonus: Decimal
    max_bonus: Decimal
    min_bonus: Decimal
    default_role_count: int = 0
    skipped_member_count: int = 0
    drift: Decimal = Decimal("0")
    drift_exceeded: bool = False


class CalculationResult(BaseModel):
    pool_id: int
    project_id: int
    period: str
    total_amount: Decimal
    total_allocated: Decimal
    member_count: int
    allocations: List[BonusAllocationRead]
    summary: CalculationSummary
    warnings: List[str] = []
