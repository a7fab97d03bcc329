"""
成員資格篩選測試：狀態白名單、缺 employee_id、狀態統計與錯誤訊息。
"""
import pytest

from hrbonus.bonus.eligibility import (
    filter_eligible,
    is_eligible_status,
    parse_member_status,
    select_eligible,
)
from hrbonus.models import MemberStatus, ProjectMember

from conftest import seed_employee, seed_member, seed_project


@pytest.mark.parametrize(
    "status,eligible",
    [
        (MemberStatus.APPROVED, True),
        (MemberStatus.ACTIVE, True),
        (MemberStatus.CONFIRMED, True),
        (MemberStatus.PENDING, False),
        (MemberStatus.REJECTED, False),
        (MemberStatus.REMOVED, False),
    ],
)
def test_every_status_is_classified(status, eligible):
    assert is_eligible_status(status) is eligible


def test_parse_member_status():
    assert parse_member_status(" Active ") is MemberStatus.ACTIVE
    assert parse_member_status("on_leave") is None
    assert parse_member_status(None) is None


def test_filter_eligible_counts_and_reasons():
    members = [
        ProjectMember(id=1, project_id=1, employee_id=10, status="active"),
        ProjectMember(id=2, project_id=1, employee_id=11, status="confirmed"),
        ProjectMember(id=3, project_id=1, employee_id=12, status="pending"),
        ProjectMember(id=4, project_id=1, employee_id=None, status="approved"),
        ProjectMember(id=5, project_id=1, employee_id=13, status="on_leave"),
    ]
    result = filter_eligible(members)
    assert [m.id for m in result.eligible] == [1, 2]
    assert result.total_members == 5
    assert result.status_counts == {"active": 1, "confirmed": 1, "pending": 1, "approved": 1, "on_leave": 1}
    assert result.rejected == {"status:pending": 1, "missing_employee_id": 1, "status:on_leave": 1}


def test_describe_rejection_includes_histogram():
    members = [
        ProjectMember(id=1, project_id=7, employee_id=10, status="pending"),
        ProjectMember(id=2, project_id=7, employee_id=11, status="pending"),
        ProjectMember(id=3, project_id=7, employee_id=12, status="rejected"),
    ]
    message = filter_eligible(members).describe_rejection(7)
    assert "項目 7" in message
    assert '"pending": 2' in message
    assert '"rejected": 1' in message


def test_describe_rejection_empty_project():
    message = filter_eligible([]).describe_rejection(3)
    assert "暫無成員" in message


async def test_select_eligible_from_db(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        other = await seed_project(db, code="P002", name="其他項目")
        e1 = await seed_employee(db, "E001", "甲")
        e2 = await seed_employee(db, "E002", "乙")
        await seed_member(db, project, e1.id, status="approved")
        await seed_member(db, project, e2.id, status="removed")
        await seed_member(db, other, e2.id, status="active")
        result = await select_eligible(db, project.id)
    assert [m.employee_id for m in result.eligible] == [e1.id]
    assert result.status_counts == {"approved": 1, "removed": 1}
