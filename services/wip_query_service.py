# services/wip_query_service.py
"""
Merges live EMPL data with the EHI mirror into one WIP view.

Both sources are queried concurrently with their own timeout. A source that is
not configured, fails or times out contributes nothing; the other source is
still returned and the failure shows up in syncStatus.
"""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Settings, settings as default_settings
from crud import sync as crud_sync
from crud import wip as crud_wip
from database import make_session_factory
from exceptions import SourceQueryFailure
from schemas import (
    Company,
    MirroredSourceStatus,
    SyncStatus,
    WIPFilters,
    WIPRecord,
    WIPResponse,
    WIPSummary,
)
from utils import as_utc, get_logger, now_utc
from .open_ops_reconciler import normalize_ops

logger = get_logger("wip_query")

Fetcher = Callable[[Engine, WIPFilters], List[WIPRecord]]


def build_summary(records: List[WIPRecord]) -> WIPSummary:
    summary = WIPSummary()
    orders: Dict[str, set] = {c.value: set() for c in Company}
    for r in records:
        summary.total_pcs += r.total_pcs
        summary.on_loom += r.on_loom
        summary.in_bazar += r.bazar_pcs
        summary.in_finishing += r.finishing_pcs
        summary.in_fg_godown += r.fg_godown_pcs
        summary.packed += r.packed_pcs
        summary.dispatched += r.dispatched_pcs
        summary.untracked += r.untracked_pcs
        orders[r.company.value].add(normalize_ops(r.ops_no))
        summary.by_company[r.company.value].pcs += r.total_pcs
    for company, ops in orders.items():
        summary.by_company[company].orders = len(ops)
    summary.total_orders = sum(len(ops) for ops in orders.values())
    return summary


def get_mirror_status(
    mirror_engine: Optional[Engine],
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> MirroredSourceStatus:
    """synced if the last successful run finished within the staleness window."""
    cfg = cfg or default_settings
    if mirror_engine is None:
        return MirroredSourceStatus(status="error")
    db: Session = make_session_factory(mirror_engine)()
    try:
        run = crud_sync.get_last_successful_run(db)
    except SQLAlchemyError as e:
        logger.error("[WIP] Could not read sync_run from the mirror: %s", e)
        return MirroredSourceStatus(status="error")
    finally:
        db.close()

    if run is None or run.finished_at is None:
        return MirroredSourceStatus(status="error")
    finished = as_utc(run.finished_at)
    now = as_utc(now) if now else now_utc()
    window = timedelta(hours=cfg.sync_stale_after_hours)
    return MirroredSourceStatus(
        status="synced" if now - finished <= window else "stale",
        last_synced_at=finished,
    )


def find_shared_ops(live: List[WIPRecord], mirror: List[WIPRecord]) -> List[str]:
    """OPS numbers present in both companies; each company owns its own range."""
    live_ops = {normalize_ops(r.ops_no): r.ops_no for r in live}
    shared = {live_ops[key] for key in (normalize_ops(r.ops_no) for r in mirror) if key in live_ops}
    return sorted(shared)


def _run_source(
    pool: ThreadPoolExecutor,
    company: Company,
    engine: Optional[Engine],
    fetch: Fetcher,
    filters: WIPFilters,
):
    if engine is None:
        logger.warning("[WIP] %s source is not configured, returning no rows for it", company.value)
        return None
    return pool.submit(fetch, engine, filters)


def _collect(company: Company, future, deadline: float, timeout: float) -> Tuple[List[WIPRecord], bool]:
    """Returns (records, ok). Never raises: a failed source is logged and empty."""
    if future is None:
        return [], False
    try:
        return future.result(timeout=max(0.0, deadline - time.monotonic())), True
    except FutureTimeout:
        failure = SourceQueryFailure(company.value, f"timed out after {timeout}s")
    except Exception as e:
        failure = SourceQueryFailure(company.value, str(e))
    logger.error("[WIP] %s", failure)
    return [], False


def get_wip(
    filters: WIPFilters,
    live_engine: Optional[Engine],
    mirror_engine: Optional[Engine],
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
    fetch_live: Fetcher = crud_wip.fetch_live_wip,
    fetch_mirror: Fetcher = crud_wip.fetch_mirror_wip,
) -> WIPResponse:
    cfg = cfg or default_settings
    timeout = cfg.source_query_timeout_seconds
    want_live = filters.includes(Company.EMPL)
    want_mirror = filters.includes(Company.EHI)

    # No context manager: a timed-out query must not block the response.
    # One deadline shared by both sources, counted from submission.
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="wip-source")
    try:
        live_future = _run_source(pool, Company.EMPL, live_engine, fetch_live, filters) if want_live else None
        mirror_future = _run_source(pool, Company.EHI, mirror_engine, fetch_mirror, filters) if want_mirror else None
        deadline = time.monotonic() + timeout
        live, live_ok = _collect(Company.EMPL, live_future, deadline, timeout) if want_live else ([], True)
        mirror, _ = _collect(Company.EHI, mirror_future, deadline, timeout) if want_mirror else ([], True)
    finally:
        pool.shutdown(wait=False)

    warnings: List[str] = []
    shared = find_shared_ops(live, mirror)
    if shared:
        logger.error("[WIP] OPS numbers present in both EMPL and EHI: %s", ", ".join(shared))
        warnings.append(f"OPS numbers present in both EMPL and EHI: {', '.join(shared)}")

    records = live + mirror
    return WIPResponse(
        data=records,
        summary=build_summary(records),
        sync_status=SyncStatus(
            live_source="live" if live_ok and live_engine is not None else "error",
            mirrored_source=get_mirror_status(mirror_engine, cfg, now),
        ),
        warnings=warnings,
    )
