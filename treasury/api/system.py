"""System API: health check and scheduler status."""

from fastapi import APIRouter

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler")
def scheduler_status():
    """Current scheduler state with job details."""
    from treasury.engine.scheduler import get_scheduler_status
    return get_scheduler_status()
