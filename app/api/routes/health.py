"""
Health check endpoint for deployment monitoring.
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Request
from sqlalchemy import text

from app.db.session import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check(request: Request):
    """
    Health check endpoint for deployment monitoring.

    Reports database connectivity and whether the reconciliation worker
    is running in this process.
    """
    status = "healthy"

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        db_status = "connected"
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        db_status = "error"
        status = "degraded"

    container = getattr(request.app.state, "container", None)
    worker_running = bool(container and container.reconciliation.is_running)

    return {
        "status": status,
        "timestamp": datetime.utcnow().isoformat(),
        "database": db_status,
        "reconciliation_worker": "running" if worker_running else "stopped",
        "version": "1.0.0",
    }
