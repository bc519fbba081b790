# routes/sync_status.py

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from crud import sync as crud_sync
from database import get_mirror_db, get_mirror_engine
from schemas import MirroredSourceStatus, SyncRun
from services import sync_tracker, wip_query_service

router = APIRouter(
    prefix="/api/sync-status",
    tags=["Sync Status"],
    responses={404: {"description": "Not found"}},
)


@router.get("/mirror", response_model=MirroredSourceStatus)
def get_mirror_status(mirror_engine: Optional[Engine] = Depends(get_mirror_engine)):
    """Freshness of the EHI mirror, as reported alongside WIP data."""
    return wip_query_service.get_mirror_status(mirror_engine)


@router.get("/runs", response_model=List[SyncRun])
def get_recent_runs(
    limit: int = Query(20, ge=1, le=200),
    db: Optional[Session] = Depends(get_mirror_db),
):
    if db is None:
        raise HTTPException(status_code=503, detail="EHI mirror database is not configured.")
    return crud_sync.get_recent_runs(db, limit=limit)


@router.get("/{task_id}")
def get_status(task_id: str) -> Dict[str, Any]:
    """
    Pollable endpoint to get the status of a background sync task.
    """
    task = sync_tracker.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task
