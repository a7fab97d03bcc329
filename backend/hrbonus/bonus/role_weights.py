"""
角色權重：預設表來自 config/default_role_weights.yaml（無檔案或內容無法解析時用內建表），
項目可設專屬權重，計算時逐鍵覆蓋預設表。查詢失敗一律退回預設表，不拋錯。
"""
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrbonus.config import settings, BASE_DIR
from hrbonus.models import ProjectRoleWeight
from hrbonus.bonus.errors import BonusValidationError
from hrbonus.bonus.numbers import to_finite_decimal

logger = logging.getLogger(__name__)

DEFAULT_ROLE_KEY = "default"

_BUILTIN_DEFAULT_WEIGHTS = {
    "project_manager": "3.5",
    "tech_lead": "3.0",
    "team_lead": "2.8",
    "senior_dev": "2.5",
    "developer": "2.0",
    "junior_dev": "1.5",
    "intern_dev": "1.0",
    "test_lead": "2.5",
    "tester": "1.8",
    "junior_tester": "1.3",
    "product_mgr": "2.5",
    "ux_designer": "2.0",
    "ui_designer": "1.8",
    "devops": "2.2",
    "dba": "2.0",
    "analyst": "1.8",
    "consultant": "2.0",
    DEFAULT_ROLE_KEY: "1.5",
}

_default_cache: Optional[Dict[str, Decimal]] = None


def _valid_weights(raw: Any) -> Dict[str, Decimal]:
    """只保留可解析為有限正數的權重；其餘記錄後捨棄"""
    out: Dict[str, Decimal] = {}
    if not isinstance(raw, dict):
        return out
    for role, weight in raw.items():
        d = to_finite_decimal(weight)
        if d is None or d <= 0:
            logger.warning("ignore invalid role weight role=%s weight=%r", role, weight)
            continue
        out[str(role)] = d
    return out


def _load_default_weights() -> Dict[str, Decimal]:
    path = Path(settings.default_role_weights_path)
    if not path.is_absolute():
        path = BASE_DIR / path
    weights: Dict[str, Decimal] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("read role weight file failed; use builtin table. path=%s error=%s", path, e)
            data = {}
        if isinstance(data, dict):
            weights = _valid_weights(data.get("weights"))
        else:
            logger.warning("role weight file is not a mapping; use builtin table. path=%s", path)
    if not weights:
        weights = _valid_weights(_BUILTIN_DEFAULT_WEIGHTS)
    if DEFAULT_ROLE_KEY not in weights:
        weights[DEFAULT_ROLE_KEY] = Decimal(_BUILTIN_DEFAULT_WEIGHTS[DEFAULT_ROLE_KEY])
    return weights


def get_default_role_weights() -> Dict[str, Decimal]:
    """預設角色權重表（回傳副本，呼叫端可自由修改）"""
    global _default_cache
    if _default_cache is None:
        _default_cache = _load_default_weights()
    return dict(_default_cache)


async def get_project_role_weight_config(db: AsyncSession, project_id: int) -> Optional[ProjectRoleWeight]:
    r = await db.execute(select(ProjectRoleWeight).where(ProjectRoleWeight.project_id == project_id))
    return r.scalar_one_or_none()


async def resolve_role_weights(db: AsyncSession, project_id: Optional[int]) -> Dict[str, Decimal]:
    """
    取得項目角色權重：有專屬設定且至少一筆有效時，合併覆蓋預設表；否則回傳預設表。
    永不為空、必含 default 鍵；讀取失敗視同無專屬設定。
    """
    defaults = get_default_role_weights()
    if project_id is None:
        return defaults
    try:
        config = await get_project_role_weight_config(db, project_id)
    except SQLAlchemyError:
        logger.exception("load project role weights failed; use defaults. project_id=%s", project_id)
        return defaults
    if config is None:
        return defaults
    overrides = _valid_weights(config.weights)
    if not overrides:
        logger.info("project %s has no valid role weight override; use defaults", project_id)
        return defaults
    defaults.update(overrides)
    return defaults


async def set_project_role_weights(
    db: AsyncSession,
    project_id: int,
    weights: Dict[str, Any],
    updated_by: Optional[str] = None,
) -> ProjectRoleWeight:
    """設定項目專屬角色權重（upsert）。每個權重須為有限正數，否則整筆拒絕。"""
    if not weights:
        raise BonusValidationError("角色權重設定不可為空")
    parsed: Dict[str, Decimal] = {}
    for role, weight in weights.items():
        d = to_finite_decimal(weight)
        if d is None or d <= 0:
            raise BonusValidationError(f"角色 {role} 的權重須為正數（目前 {weight!r}）")
        parsed[str(role).strip()] = d
    total = sum(parsed.values(), Decimal("0"))
    stored = {role: float(w) for role, w in parsed.items()}

    config = await get_project_role_weight_config(db, project_id)
    if config is None:
        config = ProjectRoleWeight(project_id=project_id, weights=stored, total_weight=total, updated_by=updated_by)
        db.add(config)
    else:
        config.weights = stored
        config.total_weight = total
        config.updated_by = updated_by
        config.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(config)
    logger.info("project role weights saved project_id=%s roles=%s", project_id, sorted(parsed))
    return config
