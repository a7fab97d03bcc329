"""initial schema - departments, employees, roles, projects, members, role weights, assessments, bonus pools/allocations

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False, comment="部門名稱"),
        sa.Column("code", sa.String(30), nullable=True, comment="部門代碼"),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("employee_no", sa.String(30), nullable=False, comment="員工編號"),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("position", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_employees_employee_no"), "employees", ["employee_no"], unique=True)
    op.create_index(op.f("ix_employees_department_id"), "employees", ["department_id"], unique=False)

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(50), nullable=False, comment="角色代碼"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_roles_code"), "roles", ["code"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(30), nullable=False, comment="項目代碼"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("manager_employee_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["manager_employee_id"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_projects_code"), "projects", ["code"], unique=True)

    op.create_table(
        "project_members",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=True),
        sa.Column("role_id", sa.String(50), nullable=True, comment="角色代碼，對應 roles.code"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("participation_ratio", sa.Numeric(5, 4), nullable=True, comment="參與比例 0~1"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "employee_id", name="uq_project_member"),
    )
    op.create_index(op.f("ix_project_members_project_id"), "project_members", ["project_id"], unique=False)
    op.create_index(op.f("ix_project_members_employee_id"), "project_members", ["employee_id"], unique=False)

    op.create_table(
        "project_role_weights",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("weights", sa.JSON(), nullable=False, comment="{role_code: weight}"),
        sa.Column("total_weight", sa.Numeric(12, 4), nullable=True),
        sa.Column("updated_by", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_project_role_weights_project_id"), "project_role_weights", ["project_id"], unique=True)

    op.create_table(
        "performance_assessments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(20), nullable=False),
        sa.Column("final_score", sa.Numeric(6, 2), nullable=True, comment="最終分數 0~100"),
        sa.Column("evaluation_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "period", name="uq_assessment_employee_period"),
    )
    op.create_index(op.f("ix_performance_assessments_employee_id"), "performance_assessments", ["employee_id"], unique=False)
    op.create_index(op.f("ix_performance_assessments_period"), "performance_assessments", ["period"], unique=False)

    op.create_table(
        "bonus_pools",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(20), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, comment="獎金總額"),
        sa.Column("profit_ratio", sa.Numeric(6, 4), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("calculation_state", sa.String(20), nullable=False, server_default="idle"),
        sa.Column("calculation_started_at", sa.DateTime(), nullable=True),
        sa.Column("last_calculated_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.String(50), nullable=True),
        sa.Column("updated_by", sa.String(50), nullable=True),
        sa.Column("approved_by", sa.String(50), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("distributed_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by", sa.String(50), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_bonus_pools_project_id"), "bonus_pools", ["project_id"], unique=False)
    op.create_index(op.f("ix_bonus_pools_period"), "bonus_pools", ["period"], unique=False)
    op.create_index(op.f("ix_bonus_pools_status"), "bonus_pools", ["status"], unique=False)

    op.create_table(
        "bonus_allocations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pool_id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.String(50), nullable=False),
        sa.Column("role_weight", sa.Numeric(10, 4), nullable=False),
        sa.Column("performance_coeff", sa.Numeric(10, 4), nullable=False),
        sa.Column("participation_ratio", sa.Numeric(5, 4), nullable=False),
        sa.Column("calculated_weight", sa.Numeric(14, 6), nullable=False),
        sa.Column("bonus_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("default_role_assigned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="calculated"),
        sa.Column("remark", sa.String(500), nullable=True),
        sa.Column("calculated_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["pool_id"], ["bonus_pools.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pool_id", "member_id", name="uq_allocation_pool_member"),
    )
    op.create_index(op.f("ix_bonus_allocations_pool_id"), "bonus_allocations", ["pool_id"], unique=False)
    op.create_index(op.f("ix_bonus_allocations_project_id"), "bonus_allocations", ["project_id"], unique=False)
    op.create_index(op.f("ix_bonus_allocations_member_id"), "bonus_allocations", ["member_id"], unique=False)
    op.create_index(op.f("ix_bonus_allocations_employee_id"), "bonus_allocations", ["employee_id"], unique=False)
    op.create_index(op.f("ix_bonus_allocations_status"), "bonus_allocations", ["status"], unique=False)


def downgrade() -> None:
    op.drop_table("bonus_allocations")
    op.drop_table("bonus_pools")
    op.drop_table("performance_assessments")
    op.drop_table("project_role_weights")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_table("roles")
    op.drop_table("employees")
    op.drop_table("departments")
