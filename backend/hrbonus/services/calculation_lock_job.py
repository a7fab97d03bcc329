"""計算鎖清理排程：程序中斷時遺留的 calculating 狀態，逾時後釋放為 idle，避免獎金池永久無法計算。"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from hrbonus.config import settings
from hrbonus.database import AsyncSessionLocal
from hrbonus.bonus.persistence import release_stale_calculation_locks


async def run_lock_sweep(
    session_factory: Optional[async_sessionmaker] = None,
    now: Optional[datetime] = None,
) -> int:
    """釋放逾時的計算鎖，回傳釋放筆數。session_factory 預設為應用程式的 AsyncSessionLocal。"""
    factory = session_factory or AsyncSessionLocal
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=settings.calculation_lock_timeout_minutes)
    async with factory() as db:
        released = await release_stale_calculation_locks(db, cutoff)
        await db.commit()
    return released
