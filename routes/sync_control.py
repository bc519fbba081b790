# routes/sync_control.py

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from config import settings
from crud import sync as crud_sync
from database import get_mirror_db
from services import mirror_sync_runner, sync_tracker

router = APIRouter(prefix="/api/sync-control", tags=["Sync Control"])


@router.get("/status")
def get_all_task_status() -> Dict[str, Any]:
    sync_tracker.clear_finished(older_than_seconds=3600)
    return {"tasks": sync_tracker.list_tasks()}


@router.post("/mirror")
def trigger_mirror_sync(
    background_tasks: BackgroundTasks,
    db: Optional[Session] = Depends(get_mirror_db),
) -> Dict[str, Any]:
    if db is None:
        raise HTTPException(status_code=503, detail="EHI mirror database is not configured.")
    if not settings.ehi_sql_configured:
        raise HTTPException(status_code=503, detail="EHI SQL Server credentials are not configured.")

    holder = crud_sync.claim_lease(db, settings.sync_lease_minutes)
    if holder:
        raise HTTPException(status_code=409, detail=f"Mirror sync run {holder.id} is already running.")

    task_id = sync_tracker.add_task("EHI mirror sync")
    background_tasks.add_task(mirror_sync_runner.run_mirror_sync_task, task_id)
    return {"status": "ok", "message": "EHI mirror sync started.", "task_id": task_id}
