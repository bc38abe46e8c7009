from fastapi import APIRouter

from scheduler.service import get_scheduler

router = APIRouter(prefix="", tags=["Status"])


@router.get("/status")
async def status():
    try:
        scheduler = get_scheduler()
    except RuntimeError:
        return {"status": "ok", "scheduler": "not initialized", "refresh_jobs": 0}

    jobs = await scheduler.list_jobs(owner_type="pool_server", enabled_only=True) if scheduler.started else []
    return {
        "status": "ok",
        "scheduler": "running" if scheduler.started else "stopped",
        "refresh_jobs": len(jobs),
    }
