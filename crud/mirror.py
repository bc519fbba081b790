# crud/mirror.py
"""
Writers for the EHI mirror tables. None of these commit: the sync runner owns
the transaction boundary.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, insert
from sqlalchemy.orm import Session

import models

NaturalKey = Tuple[int, int]  # (source order id, source finished-item id)


def _as_date(val) -> Optional[date]:
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    try:
        return datetime.fromisoformat(str(val).strip()).date()
    except ValueError:
        return None


def _text(val, default: str = "") -> str:
    if val is None:
        return default
    return str(val).strip()


def replace_process_names(db: Session, rows: Iterable[Dict[str, Any]]) -> int:
    db.execute(delete(models.ProcessName))
    payload = [
        {"id": int(r["id"]), "name": _text(r.get("name")), "short_name": _text(r.get("short_name"))}
        for r in rows
    ]
    if payload:
        db.execute(insert(models.ProcessName), payload)
    return len(payload)


def clear_mirror(db: Session) -> None:
    # Children first, so this works without ON DELETE CASCADE support.
    db.execute(delete(models.MirrorUnit))
    db.execute(delete(models.MirrorOrderItem))
    db.execute(delete(models.MirrorOrder))


def insert_orders(db: Session, rows: Iterable[Dict[str, Any]], synced_at: datetime) -> Dict[int, int]:
    """Insert orders; returns EHI OrderId -> mirror_order.id."""
    created: List[Tuple[int, models.MirrorOrder]] = []
    for r in rows:
        order = models.MirrorOrder(
            source_order_id=int(r["order_id"]),
            order_no=_text(r.get("order_no")),
            buyer_code=_text(r.get("buyer_code")),
            order_date=_as_date(r.get("order_date")),
            dispatch_date=_as_date(r.get("dispatch_date")),
            status=_text(r.get("status"), "0"),
            local_order=_text(r.get("local_order")),
            total_pcs=int(r.get("total_pcs") or 0),
            total_items=int(r.get("item_count") or 0),
            synced_at=synced_at,
        )
        db.add(order)
        created.append((order.source_order_id, order))
    db.flush()
    return {source_id: order.id for source_id, order in created}


def insert_order_items(
    db: Session,
    rows: Iterable[Dict[str, Any]],
    order_id_map: Dict[int, int],
    synced_at: datetime,
) -> Tuple[Dict[NaturalKey, int], int]:
    """
    Insert order items whose order is mirrored. Returns the natural-key map and
    the number of rows inserted. A repeated natural key maps to the later row.
    """
    created: List[Tuple[NaturalKey, models.MirrorOrderItem]] = []
    for r in rows:
        source_order_id = int(r["order_id"])
        mirror_order_id = order_id_map.get(source_order_id)
        if mirror_order_id is None:
            continue
        item = models.MirrorOrderItem(
            order_id=mirror_order_id,
            source_detail_id=r.get("detail_id"),
            source_item_id=r.get("item_finished_id"),
            design=_text(r.get("design")),
            size=_text(r.get("size")),
            color=_text(r.get("color")),
            quality=_text(r.get("quality")),
            ordered_qty=int(r.get("ordered_qty") or 0),
            article_no=_text(r.get("article_no")),
            synced_at=synced_at,
        )
        db.add(item)
        created.append(((source_order_id, r.get("item_finished_id")), item))
    db.flush()

    key_map: Dict[NaturalKey, int] = {}
    for key, item in created:
        key_map[key] = item.id
    return key_map, len(created)


def insert_units(db: Session, rows: List[Dict[str, Any]]) -> int:
    """Bulk insert already-resolved mirror_unit rows."""
    if not rows:
        return 0
    db.execute(insert(models.MirrorUnit), rows)
    return len(rows)
