# jobs/upload_open_ops.py
"""
Load an "Order Status" export and store its OPS numbers as the open-ops document.

    python -m jobs.upload_open_ops "/path/to/Order Status.xlsx"
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from crud import open_ops as crud_open_ops
from database import get_mirror_engine, get_mirror_session_factory, init_mirror_schema
from exceptions import WIPTrackerError
from services.open_ops_parser import load_open_ops_from_excel
from utils import get_logger

logger = get_logger("open_ops_job")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Upload the open OPS numbers from an Order Status export.")
    parser.add_argument("path", help="Excel file (.xlsx)")
    parser.add_argument("--uploaded-by", default="Script")
    args = parser.parse_args(argv)

    factory = get_mirror_session_factory()
    if factory is None:
        logger.error("[OPEN-OPS] EHI_DATABASE_URL is not set")
        return 1

    path = Path(args.path).resolve()
    print(f"Parsing: {path}")
    try:
        ops_set = load_open_ops_from_excel(str(path))
    except WIPTrackerError as e:
        logger.error("[OPEN-OPS] %s", e)
        return 1

    init_mirror_schema(get_mirror_engine())
    db = factory()
    try:
        doc = crud_open_ops.replace_open_ops(db, ops_set, file_name=path.name, uploaded_by=args.uploaded_by)
    finally:
        db.close()
    print(f"Stored {len(doc.ops_numbers)} OPS numbers (max sequence {doc.max_sequence}) from {doc.file_name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
