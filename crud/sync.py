# crud/sync.py

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from utils import as_utc, now_utc

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


def start_run(db: Session, sync_type: str = "full") -> models.SyncRun:
    run = models.SyncRun(sync_type=sync_type, started_at=now_utc(), status=STATUS_RUNNING)
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def finish_run(
    db: Session,
    run_id: int,
    status: str,
    orders: int = 0,
    items: int = 0,
    units: int = 0,
    errors: Optional[str] = None,
) -> Optional[models.SyncRun]:
    run = db.get(models.SyncRun, run_id)
    if not run:
        return None
    run.finished_at = now_utc()
    run.status = status
    run.orders_synced = orders
    run.items_synced = items
    run.units_synced = units
    run.errors = errors
    db.commit()
    return run


def get_running_runs(db: Session) -> List[models.SyncRun]:
    return (
        db.query(models.SyncRun)
        .filter(models.SyncRun.status == STATUS_RUNNING)
        .order_by(models.SyncRun.started_at.desc())
        .all()
    )


def claim_lease(db: Session, lease_minutes: int, now: Optional[datetime] = None) -> Optional[models.SyncRun]:
    """
    Returns the run holding the lease, if any. Running rows older than the lease
    belong to a killed process: they are closed as 'error' so they stop blocking.
    """
    now = now or now_utc()
    cutoff = now - timedelta(minutes=lease_minutes)
    holder = None
    for run in get_running_runs(db):
        if as_utc(run.started_at) > cutoff:
            holder = holder or run
            continue
        run.status = STATUS_ERROR
        run.finished_at = now
        run.errors = "abandoned: still 'running' after the sync lease expired"
    db.commit()
    return holder


def get_last_successful_run(db: Session) -> Optional[models.SyncRun]:
    return (
        db.query(models.SyncRun)
        .filter(models.SyncRun.status == STATUS_SUCCESS)
        .order_by(models.SyncRun.finished_at.desc())
        .first()
    )


def get_recent_runs(db: Session, limit: int = 20) -> List[models.SyncRun]:
    return db.query(models.SyncRun).order_by(models.SyncRun.started_at.desc()).limit(limit).all()
