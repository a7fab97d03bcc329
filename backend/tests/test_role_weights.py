"""
角色權重測試：預設表、YAML 讀取失敗退回內建表、項目覆寫合併、無效覆寫忽略、查詢失敗退回預設、設定驗證。
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from hrbonus.config import settings
from hrbonus.bonus.errors import BonusValidationError
from hrbonus.bonus.role_weights import (
    DEFAULT_ROLE_KEY,
    _load_default_weights,
    get_default_role_weights,
    resolve_role_weights,
    set_project_role_weights,
)
from hrbonus.models import ProjectRoleWeight

from conftest import seed_project


def test_default_table_always_has_default_key():
    weights = get_default_role_weights()
    assert weights[DEFAULT_ROLE_KEY] == Decimal("1.5")
    assert weights["project_manager"] == Decimal("3.5")
    assert weights["developer"] == Decimal("2.0")
    assert all(w > 0 for w in weights.values())


def test_default_table_returns_copy():
    weights = get_default_role_weights()
    weights["developer"] = Decimal("99")
    assert get_default_role_weights()["developer"] == Decimal("2.0")


async def test_resolve_without_override_uses_defaults(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        weights = await resolve_role_weights(db, project.id)
    assert weights == get_default_role_weights()


async def test_resolve_none_project_uses_defaults(async_session):
    async with async_session() as db:
        weights = await resolve_role_weights(db, None)
    assert weights == get_default_role_weights()


async def test_override_merged_over_defaults(async_session):
    """覆寫鍵取代預設值，新鍵加入，未覆寫鍵沿用預設"""
    async with async_session() as db:
        project = await seed_project(db)
        db.add(ProjectRoleWeight(project_id=project.id, weights={"developer": 2.4, "architect": 3.2}))
        await db.flush()
        weights = await resolve_role_weights(db, project.id)
    assert weights["developer"] == Decimal("2.4")
    assert weights["architect"] == Decimal("3.2")
    assert weights["tech_lead"] == Decimal("3.0")
    assert weights[DEFAULT_ROLE_KEY] == Decimal("1.5")


async def test_invalid_override_entries_ignored(async_session):
    """負數、0、非數值的覆寫項目被捨棄；全部無效時等同預設表"""
    async with async_session() as db:
        project = await seed_project(db)
        db.add(ProjectRoleWeight(project_id=project.id, weights={"developer": -1, "tester": "abc", "dba": 0}))
        await db.flush()
        weights = await resolve_role_weights(db, project.id)
    assert weights == get_default_role_weights()


async def test_set_project_role_weights_upsert(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        config = await set_project_role_weights(db, project.id, {"developer": "2.2", "tester": 1.9}, updated_by="hr")
        assert config.total_weight == Decimal("4.1")
        config = await set_project_role_weights(db, project.id, {"developer": 2.6}, updated_by="hr2")
        assert config.weights == {"developer": 2.6}
        assert config.updated_by == "hr2"
        weights = await resolve_role_weights(db, project.id)
    assert weights["developer"] == Decimal("2.6")
    assert weights["tester"] == Decimal("1.8")


@pytest.mark.parametrize("bad", [0, -2, "NaN", "Infinity", "abc", None])
async def test_set_project_role_weights_rejects_non_positive(async_session, bad):
    async with async_session() as db:
        project = await seed_project(db)
        with pytest.raises(BonusValidationError) as exc:
            await set_project_role_weights(db, project.id, {"developer": 2.0, "tester": bad})
    assert "tester" in str(exc.value)


async def test_set_project_role_weights_rejects_empty(async_session):
    async with async_session() as db:
        project = await seed_project(db)
        with pytest.raises(BonusValidationError):
            await set_project_role_weights(db, project.id, {})


@pytest.mark.parametrize(
    "content",
    [
        "weights: [developer: 2.0\n",
        "- developer\n- tester\n",
        "just a string\n",
        "weights:\n  developer: abc\n",
    ],
)
def test_unreadable_yaml_falls_back_to_builtin(tmp_path, monkeypatch, content):
    """YAML 語法錯誤、頂層非 mapping、無有效權重：一律使用內建表"""
    path = tmp_path / "weights.yaml"
    path.write_text(content, encoding="utf-8")
    monkeypatch.setattr(settings, "default_role_weights_path", path)
    weights = _load_default_weights()
    assert weights["developer"] == Decimal("2.0")
    assert weights[DEFAULT_ROLE_KEY] == Decimal("1.5")


def test_yaml_without_default_key_gets_builtin_default(tmp_path, monkeypatch):
    path = tmp_path / "weights.yaml"
    path.write_text("weights:\n  developer: 2.7\n", encoding="utf-8")
    monkeypatch.setattr(settings, "default_role_weights_path", path)
    weights = _load_default_weights()
    assert weights == {"developer": Decimal("2.7"), DEFAULT_ROLE_KEY: Decimal("1.5")}


async def test_query_failure_falls_back_to_defaults(async_session, monkeypatch):
    async with async_session() as db:
        project = await seed_project(db)
        db.add(ProjectRoleWeight(project_id=project.id, weights={"developer": 2.4}))
        await db.flush()

        async def failing_execute(*args, **kwargs):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(db, "execute", failing_execute)
        weights = await resolve_role_weights(db, project.id)
    assert weights == get_default_role_weights()
