# services/open_ops_parser.py
"""
Reads the "Order Status" Excel export and pulls out the open OPS numbers.

The export has merged header rows, so the sheet is read without a header and
the OPS column is located by scanning for the first cell that looks like an
OPS number.
"""
import re
from typing import IO, List, Optional, Union

import pandas as pd

from config import settings
from exceptions import OpenOpsParseError
from schemas import OpenOpsSet
from utils import get_logger
from .open_ops_reconciler import build_open_ops_set

logger = get_logger("open_ops")


def _cell(val) -> str:
    if val is None or (not isinstance(val, str) and pd.isna(val)):
        return ""
    return str(val).strip()


def find_ops_column(frame: pd.DataFrame, pattern: re.Pattern):
    for row_idx in range(len(frame.index)):
        for col_idx, col in enumerate(frame.columns):
            if pattern.search(_cell(frame.iat[row_idx, col_idx])):
                logger.info("[OPEN-OPS] OPS column found at index %s (row %d)", col, row_idx)
                return col
    return None


def extract_ops_numbers(frame: pd.DataFrame, column_pattern: Optional[str] = None) -> List[str]:
    """Unique, trimmed, sorted OPS numbers from the first column holding one."""
    pattern = re.compile(column_pattern or settings.ops_column_pattern)
    col = find_ops_column(frame, pattern)
    if col is None:
        raise OpenOpsParseError("Could not find an OPS column", f"no cell matches {pattern.pattern}")
    values = {_cell(v) for v in frame[col].tolist()}
    return sorted(v for v in values if pattern.search(v))


def load_open_ops_from_excel(
    source: Union[str, IO[bytes]],
    column_pattern: Optional[str] = None,
) -> OpenOpsSet:
    try:
        frame = pd.read_excel(source, header=None, dtype=str, engine="openpyxl")
    except Exception as e:
        raise OpenOpsParseError("Could not read the spreadsheet", str(e)) from e

    numbers = extract_ops_numbers(frame, column_pattern)
    if not numbers:
        raise OpenOpsParseError("No OPS numbers found in the spreadsheet")
    ops_set = build_open_ops_set(numbers)
    logger.info("[OPEN-OPS] %d unique OPS numbers (%s to %s), max sequence %d",
                len(ops_set.ops_numbers), ops_set.ops_numbers[0], ops_set.ops_numbers[-1], ops_set.max_sequence)
    return ops_set
