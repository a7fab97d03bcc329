"""獎金模擬系統 - 項目獎金分配 API"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from hrbonus.config import settings
from hrbonus.database import init_db
from hrbonus.bonus.errors import BonusError
from hrbonus.routers import (
    bonus_pools,
    departments,
    employees,
    performance,
    projects,
    roles,
)
from hrbonus.services.calculation_lock_job import run_lock_sweep

logger = logging.getLogger(__name__)
_scheduler: AsyncIOScheduler | None = None


async def _lock_sweep_job():
    try:
        await run_lock_sweep()
    except Exception:
        logger.exception("計算鎖清理排程執行失敗")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    global _scheduler
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _lock_sweep_job,
        "interval",
        minutes=max(1, settings.lock_sweep_interval_minutes),
        id="bonus_calculation_lock_sweep",
        replace_existing=True,
    )
    _scheduler.start()
    yield
    if _scheduler:
        _scheduler.shutdown(wait=False)


app = FastAPI(
    title=settings.app_name,
    description="Project bonus allocation",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(departments.router)
app.include_router(employees.router)
app.include_router(roles.router)
app.include_router(projects.router)
app.include_router(performance.router)
app.include_router(bonus_pools.router)
app.include_router(bonus_pools.allocation_router)


@app.exception_handler(BonusError)
async def bonus_error_handler(request, exc: BonusError):
    if exc.status_code >= 500:
        logger.error("bonus request failed: %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("unhandled error: %s %s", request.method, request.url.path)
    detail = str(exc) if exc else "Internal Server Error"
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": detail},
    )


@app.get("/")
def home():
    return {"message": "項目獎金分配系統運行中"}
