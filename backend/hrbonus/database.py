"""
資料庫連線與 Session（Async SQLAlchemy）
- 應用程式一律走 async driver：PostgreSQL 用 asyncpg、SQLite 用 aiosqlite
- Alembic 走同步 driver，URL 由 to_sync_url 推導，兩邊共用同一份 database_url
- SQLite 相對路徑以 backend/ 為基準，不受工作目錄影響
- 正式環境不在啟動時 create_all（交給 Alembic）
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from hrbonus.config import settings, BASE_DIR

_ASYNC_PREFIXES = (
    ("postgres://", "postgresql+asyncpg://"),
    ("postgresql+psycopg2://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
    ("sqlite:///", "sqlite+aiosqlite:///"),
)

_SYNC_PREFIXES = (
    ("postgresql+asyncpg://", "postgresql+psycopg2://"),
    ("postgres://", "postgresql+psycopg2://"),
    ("postgresql://", "postgresql+psycopg2://"),
    ("sqlite+aiosqlite:///", "sqlite:///"),
)


def _swap_prefix(url: str, table) -> str:
    for old, new in table:
        if url.startswith(old):
            return new + url[len(old):]
    return url


def _absolute_sqlite(url: str) -> str:
    """sqlite:///./x.db → 以 BASE_DIR 為基準的絕對路徑；記憶體資料庫與絕對路徑不動"""
    for scheme in ("sqlite+aiosqlite:///", "sqlite:///"):
        if url.startswith(scheme + "./"):
            rel = url[len(scheme) + 2:].strip()
            return scheme + (BASE_DIR / rel).resolve().as_posix()
    return url


def to_async_url(url: str) -> str:
    """應用程式使用的 async URL（Render 等環境常給 postgres:// 或 postgresql://）"""
    return _absolute_sqlite(_swap_prefix(str(url or "").strip(), _ASYNC_PREFIXES))


def to_sync_url(url: str) -> str:
    """Alembic 使用的同步 URL"""
    return _absolute_sqlite(_swap_prefix(str(url or "").strip(), _SYNC_PREFIXES))


db_url = to_async_url(settings.database_url)

engine = create_async_engine(
    db_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """請求範圍的 session：正常結束 commit、例外 rollback"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    # 本機 SQLite 開發（DEBUG）才 create_all；其餘環境由 alembic upgrade head 建表
    if settings.debug and db_url.startswith("sqlite"):
        from hrbonus import models  # noqa: F401  註冊所有資料表

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
