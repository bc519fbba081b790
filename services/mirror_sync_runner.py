# services/mirror_sync_runner.py
"""
Full-refresh replication of open EHI orders into the mirror database.

Process names are refreshed first and committed on their own. Everything else
(delete + orders + items + carpets) happens in a single transaction, so readers
see either the previous mirror or the new one, never a mix. The sync_run row is
written through a second session and survives a rollback of the main one.
"""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from config import Settings, settings as default_settings
from crud import mirror as crud_mirror
from crud import sync as crud_sync
from database import get_mirror_sync_session_factory
from ehi_service import EhiService
from exceptions import ConfigurationMissing, SyncAlreadyRunning, SyncTransactionFailure
from schemas import SyncResult
from utils import chunked, get_logger, now_utc
from . import sync_tracker
from .stage_classifier import WipStage, classify_process, is_known_process, parse_process_code

logger = get_logger("mirror_sync")


def _refresh_process_names(db: Session, ehi: EhiService) -> int:
    count = crud_mirror.replace_process_names(db, ehi.get_process_names())
    db.commit()
    logger.info("[MIRROR-SYNC] Synced %d process names", count)
    return count


def _unit_row(unit: Dict[str, Any], item_id: Optional[int], synced_at) -> Dict[str, Any]:
    code = unit.get("process_code")
    stage: WipStage = classify_process(code)
    return {
        "stock_no": unit.get("stock_no"),
        "t_stock_no": str(unit.get("t_stock_no") or ""),
        "order_item_id": item_id,
        "raw_process_code": parse_process_code(code),
        "process_name": str(unit.get("process_name") or ""),
        "wip_stage": stage.value,
        "is_packed": bool(unit.get("is_packed")),
        "synced_at": synced_at,
    }


def _replace_mirror(db: Session, ehi: EhiService, cfg: Settings, task_id: Optional[str]) -> Dict[str, int]:
    synced_at = now_utc()

    crud_mirror.clear_mirror(db)

    orders = ehi.get_open_orders()
    order_id_map = crud_mirror.insert_orders(db, orders, synced_at)
    logger.info("[MIRROR-SYNC] Synced %d open orders", len(order_id_map))
    sync_tracker.step(task_id, 0, note=f"Synced {len(order_id_map)} orders, fetching items...")

    source_order_ids = list(order_id_map.keys())
    item_key_map: Dict[tuple, int] = {}
    items_synced = 0
    for batch in chunked(source_order_ids, cfg.ehi_batch_size):
        key_map, inserted = crud_mirror.insert_order_items(db, ehi.get_order_items(batch), order_id_map, synced_at)
        item_key_map.update(key_map)
        items_synced += inserted
    if items_synced != len(item_key_map):
        logger.warning("[MIRROR-SYNC] %d order items share a natural key with a later item",
                       items_synced - len(item_key_map))
    logger.info("[MIRROR-SYNC] Synced %d order items", items_synced)

    units_synced = 0
    orphan_units = 0
    fallback_units = 0
    done_orders = 0
    for batch in chunked(source_order_ids, cfg.ehi_batch_size):
        for unit_rows in ehi.iter_units(batch, cfg.ehi_unit_fetch_size):
            rows = []
            for unit in unit_rows:
                item_id = item_key_map.get((unit.get("order_id"), unit.get("item_finished_id")))
                if item_id is None:
                    orphan_units += 1
                if not is_known_process(unit.get("process_code")):
                    fallback_units += 1
                rows.append(_unit_row(unit, item_id, synced_at))
            for chunk in chunked(rows, cfg.mirror_insert_batch_size):
                units_synced += crud_mirror.insert_units(db, chunk)

        done_orders += len(batch)
        logger.info("[MIRROR-SYNC] ... %d carpets synced (orders %d/%d)",
                    units_synced, done_orders, len(source_order_ids))
        sync_tracker.step(task_id, units_synced, note=f"{units_synced} carpets, orders {done_orders}/{len(source_order_ids)}")

    if orphan_units:
        logger.warning("[MIRROR-SYNC] %d carpets did not match an order item", orphan_units)
    if fallback_units:
        logger.warning("[MIRROR-SYNC] %d carpets had an unknown process code and were counted as on_loom",
                       fallback_units)

    db.commit()
    return {
        "orders": len(order_id_map),
        "items": items_synced,
        "units": units_synced,
        "orphans": orphan_units,
        "fallbacks": fallback_units,
    }


def run_mirror_sync(
    db_factory: Optional[sessionmaker] = None,
    ehi: Optional[EhiService] = None,
    cfg: Optional[Settings] = None,
    task_id: Optional[str] = None,
) -> SyncResult:
    """
    Replace the mirror with the current open orders from EHI.

    Raises ConfigurationMissing, SyncAlreadyRunning or SyncTransactionFailure.
    """
    cfg = cfg or default_settings
    db_factory = db_factory or get_mirror_sync_session_factory()
    if db_factory is None:
        raise ConfigurationMissing("EHI mirror database", ["EHI_DATABASE_URL"])
    owns_ehi = ehi is None
    if ehi is None:
        ehi = EhiService.from_settings(cfg)

    log_db: Session = db_factory()
    db: Session = db_factory()
    try:
        holder = crud_sync.claim_lease(log_db, cfg.sync_lease_minutes)
        if holder:
            raise SyncAlreadyRunning(holder.id, holder.started_at)

        run = crud_sync.start_run(log_db)
        run_id = run.id
        logger.info("[MIRROR-SYNC] Run %d started", run_id)
        sync_tracker.step(task_id, 0, note="Fetching process names...")
        t0 = time.monotonic()

        try:
            _refresh_process_names(db, ehi)
            counts = _replace_mirror(db, ehi, cfg, task_id)
        except Exception as e:
            db.rollback()
            logger.error("[MIRROR-SYNC] Run %d failed, transaction rolled back, previous mirror kept: %s", run_id, e)
            crud_sync.finish_run(log_db, run_id, crud_sync.STATUS_ERROR, errors=str(e))
            sync_tracker.finish_task(task_id, ok=False, note=f"Rolled back: {e}")
            raise SyncTransactionFailure(run_id, str(e)) from e

        crud_sync.finish_run(
            log_db, run_id, crud_sync.STATUS_SUCCESS,
            orders=counts["orders"], items=counts["items"], units=counts["units"],
        )
        elapsed = round(time.monotonic() - t0, 1)
        logger.info("[MIRROR-SYNC] Run %d complete in %ss: %d orders, %d items, %d carpets",
                    run_id, elapsed, counts["orders"], counts["items"], counts["units"])
        sync_tracker.finish_task(task_id, ok=True, note=f"Completed. {counts['units']} carpets in {elapsed}s")
        return SyncResult(
            run_id=run_id,
            orders_synced=counts["orders"],
            items_synced=counts["items"],
            units_synced=counts["units"],
            orphan_units=counts["orphans"],
            fallback_units=counts["fallbacks"],
            elapsed_seconds=elapsed,
        )
    except SyncAlreadyRunning as e:
        logger.warning("[MIRROR-SYNC] Skipped: %s", e)
        sync_tracker.finish_task(task_id, ok=False, note=str(e))
        raise
    finally:
        db.close()
        log_db.close()
        if owns_ehi:
            ehi.close()


def run_mirror_sync_task(task_id: str) -> None:
    """BackgroundTasks entry point; failures are already recorded on the run."""
    try:
        run_mirror_sync(task_id=task_id)
    except ConfigurationMissing as e:
        logger.error("[MIRROR-SYNC] %s", e)
        sync_tracker.finish_task(task_id, ok=False, note=str(e))
    except (SyncAlreadyRunning, SyncTransactionFailure) as e:
        logger.info("[MIRROR-SYNC] Background run ended without a new mirror: %s", e)
    except Exception as e:
        logger.exception("[MIRROR-SYNC] Background run failed: %s", e)
        sync_tracker.finish_task(task_id, ok=False, note=f"Failed: {e}")
