# services/stage_classifier.py
"""
Maps EHI process codes (PROCESS_NAME_MASTER ids) to canonical WIP stages.

EHI process codes:
 1=WEAVING, 2=WASHING, 3=FINISHING, 4=KNOTTING, 5=DYEING, 6=STRETCHING,
 7=PACKING, 8=BINDING, 9=PURCHASE, 10=STORE, 11=YARN OPENING, 12=WARPING WOOL,
 13=WARPING COTTON, 14=CLIPPING, 15=LATX & THI PCK, 16=MENDING, 17=FOLDING,
 18=TABLE TUFT, 19=REPAIRING, 20=FINISHING-1, 21=AQL, 22=MOVE TO WAREHOUSE,
 23=TUMPLING, 24=EDGE BINDING, 25=SAMPLING PACKED, 26=FARGSTARK RED,
 27=PACKING-RT, 28=CUTTING, 29=OVERLOCKING, 30=FRINGING, 31=DUBBLE NIDDLE,
 32=SPINNING, 33=STITCHING, 34=TUSCEL, 35=PRE PILE CUTTING,
 36=MOVE TO FINISHING, 37=MOVE TO EMPL

"Bazar" is not an EHI process: it is the off-loom receive event, so the
classifier never returns it. "Dispatched" is only assigned for orders the
live source marks closed/invoiced.
"""
from enum import Enum
from typing import Any, Optional


class WipStage(str, Enum):
    ON_LOOM = "on_loom"
    BAZAR = "bazar"
    FINISHING = "finishing"
    FG_GODOWN = "fg_godown"
    PACKED = "packed"
    DISPATCHED = "dispatched"


WEAVING_CODE = 1
PACKED_CODES = frozenset({7, 25, 27})
FG_GODOWN_CODES = frozenset({21, 22})
MIN_PROCESS_CODE = 1
MAX_PROCESS_CODE = 37


def parse_process_code(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def is_known_process(raw: Any) -> bool:
    code = parse_process_code(raw)
    return code is not None and MIN_PROCESS_CODE <= code <= MAX_PROCESS_CODE


def classify_process(raw: Any) -> WipStage:
    """
    Return the WIP stage for a raw process code. Never raises.

    Codes outside 1..37 (and unparseable values) fall back to ON_LOOM.
    That fallback can misclassify a unit and is pending product-owner review.
    """
    code = parse_process_code(raw)
    if code == WEAVING_CODE:
        return WipStage.ON_LOOM
    if code in PACKED_CODES:
        return WipStage.PACKED
    if code in FG_GODOWN_CODES:
        return WipStage.FG_GODOWN
    if code is not None and MIN_PROCESS_CODE < code <= MAX_PROCESS_CODE:
        return WipStage.FINISHING
    return WipStage.ON_LOOM
