# replenisher/routers/health_routers.py
"""
Health endpoint reporting database, snapshot store, engine and worker state.
"""

from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .. import __version__
from ..database import async_db
from ..dependencies import SnapshotStoreDep, ReplenishmentWorkerDep

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Dict[str, Any])
async def health_check(
    snapshot_store: SnapshotStoreDep, worker: ReplenishmentWorkerDep
):
    """
    Aggregate component health. Responds 503 when any component is unhealthy.
    """
    database = await async_db.health_check()
    snapshots = await snapshot_store.health_check()
    worker_health = worker.get_health()

    healthy = (
        database["status"] == "healthy"
        and snapshots["status"] == "healthy"
        and worker_health["healthy"]
    )
    body = {
        "status": "healthy" if healthy else "degraded",
        "version": __version__,
        "database": database,
        "snapshot_store": snapshots,
        "worker": worker_health,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
