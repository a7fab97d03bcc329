"""項目成員資格篩選：必須有 employee_id，且狀態為 approved / active / confirmed。"""
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.crud import list_project_members
from hrbonus.models import MemberStatus, ProjectMember

logger = logging.getLogger(__name__)

MISSING_EMPLOYEE_REASON = "missing_employee_id"


def parse_member_status(raw: Optional[str]) -> Optional[MemberStatus]:
    """字串轉 MemberStatus；空值或不在列舉內回傳 None"""
    if raw is None:
        return None
    try:
        return MemberStatus(str(raw).strip().lower())
    except ValueError:
        return None


def is_eligible_status(status: MemberStatus) -> bool:
    if status is MemberStatus.APPROVED:
        return True
    if status is MemberStatus.ACTIVE:
        return True
    if status is MemberStatus.CONFIRMED:
        return True
    if status is MemberStatus.PENDING:
        return False
    if status is MemberStatus.REJECTED:
        return False
    if status is MemberStatus.REMOVED:
        return False
    raise ValueError(f"未處理的成員狀態: {status!r}")


@dataclass
class EligibilityResult:
    eligible: List[ProjectMember] = field(default_factory=list)
    # 全體成員原始狀態統計（含合格者）
    status_counts: Dict[str, int] = field(default_factory=dict)
    # 不合格原因統計：missing_employee_id / status:<原始值>
    rejected: Dict[str, int] = field(default_factory=dict)

    @property
    def total_members(self) -> int:
        return sum(self.status_counts.values())

    def describe_rejection(self, project_id: int) -> str:
        if self.total_members == 0:
            return f"項目 {project_id} 暫無成員，請先新增項目成員"
        return (
            f"項目 {project_id} 暫無符合條件的成員（共 {self.total_members} 名）。"
            f"現有成員狀態統計: {json.dumps(self.status_counts, ensure_ascii=False, sort_keys=True)}；"
            f"不合格原因: {json.dumps(self.rejected, ensure_ascii=False, sort_keys=True)}。"
            f"成員狀態須為 'approved'、'active' 或 'confirmed'，且須綁定員工"
        )


def filter_eligible(members: List[ProjectMember]) -> EligibilityResult:
    status_counts: Counter = Counter()
    rejected: Counter = Counter()
    eligible: List[ProjectMember] = []
    for m in members:
        raw_status = m.status if m.status is not None else "null"
        status_counts[str(raw_status)] += 1
        if m.employee_id is None:
            rejected[MISSING_EMPLOYEE_REASON] += 1
            logger.warning("member %s has no employee_id", m.id)
            continue
        status = parse_member_status(m.status)
        if status is None or not is_eligible_status(status):
            rejected[f"status:{raw_status}"] += 1
            continue
        eligible.append(m)
    return EligibilityResult(eligible=eligible, status_counts=dict(status_counts), rejected=dict(rejected))


async def select_eligible(db: AsyncSession, project_id: int) -> EligibilityResult:
    members = await list_project_members(db, project_id)
    result = filter_eligible(members)
    logger.info(
        "project %s members=%s eligible=%s status_counts=%s",
        project_id,
        result.total_members,
        len(result.eligible),
        result.status_counts,
    )
    return result
