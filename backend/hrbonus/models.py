"""資料庫模型 - 部門、員工、項目成員、績效評估、項目獎金池與分配結果。
狀態欄位以字串落表，取值一律由下方 Enum 定義（封閉集合，不接受自由文字）。"""
import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import String, Date, Text, Numeric, ForeignKey, DateTime, Boolean, UniqueConstraint, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from hrbonus.database import Base


class MemberStatus(str, enum.Enum):
    """項目成員狀態"""
    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    REMOVED = "removed"


class PoolStatus(str, enum.Enum):
    """獎金池狀態"""
    PENDING = "pending"
    APPROVED = "approved"
    DISTRIBUTED = "distributed"
    DELETED = "deleted"


class CalculationState(str, enum.Enum):
    """獎金池計算鎖：idle → calculating → idle"""
    IDLE = "idle"
    CALCULATING = "calculating"


class AllocationStatus(str, enum.Enum):
    """分配結果狀態"""
    CALCULATED = "calculated"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISTRIBUTED = "distributed"
    DELETED = "deleted"


EMPLOYEE_STATUSES = ("active", "inactive")


class Department(Base):
    """部門"""
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, comment="部門名稱")
    code: Mapped[Optional[str]] = mapped_column(String(30), unique=True, comment="部門代碼")
    description: Mapped[Optional[str]] = mapped_column(String(500), comment="說明")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employees: Mapped[List["Employee"]] = relationship("Employee", back_populates="department")


class Employee(Base):
    """員工基本資料。id 永久不變，分配結果以 employee_id 關聯。"""
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    employee_no: Mapped[str] = mapped_column(String(30), unique=True, index=True, comment="員工編號")
    name: Mapped[str] = mapped_column(String(50), comment="姓名")
    department_id: Mapped[Optional[int]] = mapped_column(ForeignKey("departments.id", ondelete="SET NULL"), index=True)
    position: Mapped[Optional[str]] = mapped_column(String(50), comment="職位")
    status: Mapped[str] = mapped_column(String(20), default="active", comment="active / inactive")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    department: Mapped[Optional["Department"]] = relationship("Department", back_populates="employees")
    assessments: Mapped[List["PerformanceAssessment"]] = relationship(
        "PerformanceAssessment", back_populates="employee", cascade="all, delete-orphan"
    )


class Role(Base):
    """項目角色目錄（code 即成員 role_id，如 developer / tester）"""
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, comment="角色代碼")
    name: Mapped[str] = mapped_column(String(100), comment="角色名稱")
    description: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Project(Base):
    """項目"""
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(30), unique=True, index=True, comment="項目代碼")
    name: Mapped[str] = mapped_column(String(200), comment="項目名稱")
    manager_employee_id: Mapped[Optional[int]] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"))
    status: Mapped[str] = mapped_column(String(20), default="active", comment="active / closed")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members: Mapped[List["ProjectMember"]] = relationship(
        "ProjectMember", back_populates="project", cascade="all, delete-orphan", order_by="ProjectMember.id"
    )


class ProjectMember(Base):
    """項目成員：role_id 可空（計算時指派 default 並標記）；participation_ratio 空表示全程參與 1.0"""
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "employee_id", name="uq_project_member"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    # 不設 FK：員工被刪除時成員紀錄保留，由計算時略過並記錄警告
    employee_id: Mapped[Optional[int]] = mapped_column(index=True)
    role_id: Mapped[Optional[str]] = mapped_column(String(50), comment="角色代碼，對應 roles.code")
    status: Mapped[str] = mapped_column(String(20), default=MemberStatus.PENDING.value, comment="見 MemberStatus")
    participation_ratio: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), comment="參與比例 0~1")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project: Mapped["Project"] = relationship("Project", back_populates="members")


class ProjectRoleWeight(Base):
    """項目專屬角色權重（覆蓋預設表，逐鍵合併）"""
    __tablename__ = "project_role_weights"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), unique=True, index=True)
    weights: Mapped[dict] = mapped_column(JSON, comment="{role_code: weight}")
    total_weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    updated_by: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PerformanceAssessment(Base):
    """績效評估：一員工一期間一筆，final_score 0~100"""
    __tablename__ = "performance_assessments"
    __table_args__ = (UniqueConstraint("employee_id", "period", name="uq_assessment_employee_period"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), index=True)
    period: Mapped[str] = mapped_column(String(20), index=True, comment="期間，如 2025-Q1 / 2025-06")
    final_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), comment="最終分數 0~100")
    evaluation_date: Mapped[Optional[date]] = mapped_column(Date, comment="評估日期")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    employee: Mapped["Employee"] = relationship("Employee", back_populates="assessments")


class BonusPool(Base):
    """項目獎金池：total_amount 僅 pending 時可改；calculation_state 為單一寫入者鎖"""
    __tablename__ = "bonus_pools"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True)
    period: Mapped[str] = mapped_column(String(20), index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), comment="獎金總額")
    profit_ratio: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4), comment="利潤提成比例")
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=PoolStatus.PENDING.value, index=True)
    calculation_state: Mapped[str] = mapped_column(String(20), default=CalculationState.IDLE.value)
    calculation_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_by: Mapped[Optional[str]] = mapped_column(String(50))
    updated_by: Mapped[Optional[str]] = mapped_column(String(50))
    approved_by: Mapped[Optional[str]] = mapped_column(String(50))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    distributed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(50))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    allocations: Mapped[List["BonusAllocation"]] = relationship(
        "BonusAllocation", back_populates="pool", cascade="all, delete-orphan", order_by="BonusAllocation.id"
    )


class BonusAllocation(Base):
    """分配結果：由計算器產生，一合格成員一筆；approved 後不可修改"""
    __tablename__ = "bonus_allocations"
    __table_args__ = (UniqueConstraint("pool_id", "member_id", name="uq_allocation_pool_member"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    pool_id: Mapped[int] = mapped_column(ForeignKey("bonus_pools.id", ondelete="CASCADE"), index=True)
    project_id: Mapped[int] = mapped_column(index=True)
    member_id: Mapped[int] = mapped_column(index=True)
    employee_id: Mapped[int] = mapped_column(index=True)
    role_id: Mapped[str] = mapped_column(String(50))
    role_weight: Mapped[Decimal] = mapped_column(Numeric(10, 4))
    performance_coeff: Mapped[Decimal] = mapped_column(Numeric(10, 4))
    participation_ratio: Mapped[Decimal] = mapped_column(Numeric(5, 4))
    calculated_weight: Mapped[Decimal] = mapped_column(Numeric(14, 6))
    bonus_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    default_role_assigned: Mapped[bool] = mapped_column(Boolean, default=False, comment="未設角色，計算時指派 default")
    status: Mapped[str] = mapped_column(String(20), default=AllocationStatus.CALCULATED.value, index=True)
    remark: Mapped[Optional[str]] = mapped_column(String(500))
    calculated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pool: Mapped["BonusPool"] = relationship("BonusPool", back_populates="allocations")
