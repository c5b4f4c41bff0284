"""Health check endpoints for HR Desk.

Kubernetes-compatible probes:
- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (database, Redis and file storage)
"""

import os
from datetime import datetime, timezone
from typing import Dict, Any

import psutil
import redis
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from hrdesk.api.deps import get_db
from hrdesk.core.config import get_settings

router = APIRouter(tags=["health"])
settings = get_settings()

VERSION = "1.0.0"

# Thresholds
DISK_WARNING_PERCENT = 85
DISK_CRITICAL_PERCENT = 95


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy", "dialect": db.get_bind().dialect.name}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


def check_redis() -> Dict[str, Any]:
    """Check connectivity of the Redis instance backing the notification queue."""
    try:
        r = redis.from_url(settings.redis_url, socket_connect_timeout=2, socket_timeout=2)
        r.ping()
        info = r.info("server")
        r.close()
        return {"status": "healthy", "version": info.get("redis_version", "unknown")}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


def check_storage(root: str = None) -> Dict[str, Any]:
    """Check that the storage root is writable and has room for uploads."""
    root = root or settings.storage_root
    try:
        os.makedirs(root, exist_ok=True)
        if not os.access(root, os.W_OK):
            return {"status": "unhealthy", "error": f"{root} is not writable"}

        disk = psutil.disk_usage(root)
        state = "healthy"
        if disk.percent >= DISK_CRITICAL_PERCENT:
            state = "critical"
        elif disk.percent >= DISK_WARNING_PERCENT:
            state = "warning"

        return {
            "status": state,
            "free_gb": round(disk.free / (1024**3), 2),
            "percent_used": disk.percent,
        }
    except Exception as e:
        return {"status": "unknown", "error": str(e)}


@router.get("/health")
def health_check():
    """Returns 200 if the application is running."""
    return {"status": "healthy", "version": VERSION, "timestamp": _now()}


@router.get("/health/live")
def liveness_probe():
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "alive", "timestamp": _now()})


@router.get("/health/ready")
def readiness_probe(db: Session = Depends(get_db)):
    """
    Readiness probe.

    Database and Redis must be reachable; a full or read-only storage root
    also takes the instance out of rotation since fulfillment uploads
    would fail.
    """
    checks = {
        "database": check_database(db),
        "redis": check_redis(),
        "storage": check_storage(),
    }

    failed = [name for name, check in checks.items() if check["status"] in ("unhealthy", "critical")]
    if failed:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks, "failed": failed, "timestamp": _now()},
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "ready", "checks": checks, "timestamp": _now()},
    )
