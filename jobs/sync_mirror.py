# jobs/sync_mirror.py
"""
Scheduled EHI -> mirror sync.

    python -m jobs.sync_mirror              full refresh
    python -m jobs.sync_mirror --init       create the mirror tables and exit
    python -m jobs.sync_mirror --discover   print EHI status/process distributions only

Exits 1 on any failure so the scheduler can alert.
"""
import argparse
import sys
from typing import List, Optional

from config import settings
from database import get_mirror_engine, init_mirror_schema
from ehi_service import EhiService
from exceptions import WIPTrackerError
from services.mirror_sync_runner import run_mirror_sync
from services.stage_classifier import classify_process
from utils import get_logger

logger = get_logger("sync_job")


def run_discovery(ehi: EhiService) -> None:
    found = ehi.discover()
    print("--- Process names ---")
    for row in found["process_names"]:
        print(f"  {row['id']:>3}  {row['name']}")
    print("--- Order status distribution ---")
    for row in found["status_distribution"]:
        print(f"  status={row['status']!r}: {row['cnt']} orders")
    print("--- Sample open orders ---")
    for row in found["sample_open_orders"]:
        print(f"  {row['order_no']}  buyer={row['buyer_code']}  ordered={row['order_date']}  ex-factory={row['dispatch_date']}")
    print("--- Carpets per process (open orders) ---")
    for row in found["process_distribution"]:
        stage = classify_process(row["process_code"]).value
        print(f"  {row['process_code']!s:>4}  {row['process_name'] or '?':<24} {row['cnt']:>8}  -> {stage}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replicate open EHI orders into the mirror database.")
    parser.add_argument("--init", action="store_true", help="create the mirror tables and exit")
    parser.add_argument("--discover", action="store_true", help="print EHI distributions and exit")
    args = parser.parse_args(argv)

    try:
        if args.discover:
            ehi = EhiService.from_settings(settings)
            try:
                run_discovery(ehi)
            finally:
                ehi.close()
            return 0

        if args.init:
            engine = get_mirror_engine()
            if engine is None:
                logger.error("[MIRROR-SYNC] EHI_DATABASE_URL is not set, cannot create tables")
                return 1
            init_mirror_schema(engine)
            logger.info("[MIRROR-SYNC] Mirror tables ready, run without --init for a full sync")
            return 0

        result = run_mirror_sync()
        print(f"--- Mirror sync complete: {result.orders_synced} orders, {result.items_synced} items, "
              f"{result.units_synced} carpets in {result.elapsed_seconds}s ---")
        return 0
    except WIPTrackerError as e:
        logger.error("[MIRROR-SYNC] %s", e)
        return 1
    except Exception as e:
        logger.exception("[MIRROR-SYNC] Unexpected failure: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
