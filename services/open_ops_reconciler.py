# services/open_ops_reconciler.py
"""
Decides which WIP orders are still open.

No single system is authoritative: EMPL, EHI and the manually exported
"Order Status" sheet all disagree at times. An order group is open when its
OPS number is in the last export, or when its sequence number is newer than
anything in that export (created after it was taken). Everything else is
treated as closed and only shown in the "all" view. Showing a closed order is
preferred to hiding an open one.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from config import settings
from schemas import STAGE_FIELDS, OpenOpsSet, WIPGroup, WIPRecord

_SEQUENCE_RE = re.compile(settings.ops_sequence_pattern)


def normalize_ops(ops_no: str) -> str:
    return (ops_no or "").strip().lower()


def extract_sequence(ops_no: str, pattern: Optional[re.Pattern] = None) -> Optional[int]:
    """EM-25-1131 -> 1131; also handles 'EM-25-139 B' and 'EM-25-770-B'."""
    match = (pattern or _SEQUENCE_RE).search(ops_no or "")
    return int(match.group(1)) if match else None


def build_open_ops_set(ops_numbers: Iterable[str], max_sequence: Optional[int] = None) -> OpenOpsSet:
    """Dedupe and sort the OPS numbers; derive max_sequence when not given."""
    numbers = sorted({str(n).strip() for n in ops_numbers if str(n or "").strip()})
    if max_sequence is None:
        sequences = [s for s in (extract_sequence(n) for n in numbers) if s is not None]
        max_sequence = max(sequences, default=0)
    return OpenOpsSet(ops_numbers=numbers, max_sequence=max_sequence)


def group_by_order(records: Iterable[WIPRecord]) -> List[WIPGroup]:
    """
    Group line items by (company, OPS number), preserving first-seen order.

    OPS numbers that differ only by case or surrounding whitespace fall into
    the same group; the first one seen supplies the group's OPS number, buyer
    code and buyer name.
    """
    groups: Dict[Tuple[str, str], WIPGroup] = {}
    for record in records:
        key = (record.company.value, normalize_ops(record.ops_no))
        group = groups.get(key)
        if group is None:
            groups[key] = WIPGroup(
                company=record.company,
                ops_no=record.ops_no,
                buyer_code=record.buyer_code,
                buyer_name=record.buyer_name,
                item_count=1,
                total_pcs=record.total_pcs,
                items=[record],
                **{name: getattr(record, name) for name in STAGE_FIELDS},
            )
            continue
        # Bypass validation: the sum of valid records stays valid.
        group.item_count += 1
        group.total_pcs += record.total_pcs
        for name in STAGE_FIELDS:
            setattr(group, name, getattr(group, name) + getattr(record, name))
        group.items.append(record)
    return list(groups.values())


def is_open(ops_no: str, open_ops: OpenOpsSet, open_set: Optional[set] = None) -> bool:
    if open_set is None:
        open_set = {normalize_ops(n) for n in open_ops.ops_numbers}
    if normalize_ops(ops_no) in open_set:
        return True
    seq = extract_sequence(ops_no)
    return seq is not None and seq > open_ops.max_sequence


@dataclass
class Reconciliation:
    visible: List[WIPGroup] = field(default_factory=list)
    hidden_count: int = 0
    open_ops_loaded: bool = False


def reconcile(groups: List[WIPGroup], open_ops: Optional[OpenOpsSet], show_all: bool = False) -> Reconciliation:
    """
    Flag each group open/closed. Closed groups are dropped unless show_all.
    Without an open-ops document nothing can be judged closed, so every group
    is open.
    """
    if open_ops is None:
        for group in groups:
            group.is_open = True
        return Reconciliation(visible=list(groups), hidden_count=0, open_ops_loaded=False)

    open_set = {normalize_ops(n) for n in open_ops.ops_numbers}
    visible: List[WIPGroup] = []
    hidden = 0
    for group in groups:
        group.is_open = is_open(group.ops_no, open_ops, open_set)
        if group.is_open or show_all:
            visible.append(group)
        if not group.is_open:
            hidden += 1
    return Reconciliation(visible=visible, hidden_count=hidden, open_ops_loaded=True)
