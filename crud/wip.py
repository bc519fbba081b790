# crud/wip.py
"""
Per-source WIP queries. Each returns one WIPRecord per order line item with
stage counts computed in SQL by grouped conditional counting.
"""
from typing import Any, List, Mapping

from sqlalchemy import and_, case, func, literal, not_, null, or_, select
from sqlalchemy.engine import Engine

import models
from live_models import CLOSED_ORDER_STATUSES, empl_order_items, empl_orders, empl_units
from schemas import STAGE_FIELDS, Company, WIPFilters, WIPRecord
from services.stage_classifier import WipStage
from utils import get_logger

logger = get_logger("wip")


def _count_where(condition, id_column):
    return func.count(case((condition, id_column)))


def _search_clause(search: str, *columns):
    # % and _ in the search text match themselves.
    return or_(*[col.icontains(search.strip(), autoescape=True) for col in columns])


def build_live_query(filters: WIPFilters):
    o, i, u = empl_orders.c, empl_order_items.c, empl_units.c
    dispatched = o.status.in_(CLOSED_ORDER_STATUSES)
    in_pipeline = or_(o.status.is_(None), not_(dispatched))

    query = (
        select(
            o.ops_no.label("ops_no"),
            o.buyer_code.label("buyer_code"),
            o.buyer_name.label("buyer_name"),
            i.id.label("item_id"),
            i.design.label("design"),
            i.size.label("size"),
            i.color.label("color"),
            i.quality.label("quality"),
            i.folio_no.label("folio_no"),
            i.contractor.label("contractor"),
            func.coalesce(i.ordered_qty, 0).label("total_pcs"),
            _count_where(and_(u.stage == WipStage.ON_LOOM.value, in_pipeline), u.id).label("on_loom"),
            _count_where(and_(u.stage == WipStage.BAZAR.value, in_pipeline), u.id).label("bazar_pcs"),
            _count_where(and_(u.stage == WipStage.FINISHING.value, in_pipeline), u.id).label("finishing_pcs"),
            _count_where(and_(u.stage == WipStage.FG_GODOWN.value, in_pipeline), u.id).label("fg_godown_pcs"),
            _count_where(and_(u.stage == WipStage.PACKED.value, in_pipeline), u.id).label("packed_pcs"),
            _count_where(and_(u.id.isnot(None), dispatched), u.id).label("dispatched_pcs"),
        )
        .select_from(
            empl_order_items
            .join(empl_orders, i.order_id == o.id)
            .outerjoin(empl_units, u.order_item_id == i.id)
        )
        .group_by(o.id, o.ops_no, o.buyer_code, o.buyer_name, o.status,
                  i.id, i.design, i.size, i.color, i.quality, i.ordered_qty,
                  i.folio_no, i.contractor)
        .order_by(o.ops_no, i.id)
    )
    if filters.buyer:
        query = query.where(o.buyer_code == filters.buyer)
    if filters.search and filters.search.strip():
        query = query.where(_search_clause(filters.search, o.ops_no, o.buyer_code, o.buyer_name, i.design))
    return query


def build_mirror_query(filters: WIPFilters):
    mo, mi, mu = models.MirrorOrder, models.MirrorOrderItem, models.MirrorUnit

    query = (
        select(
            mo.order_no.label("ops_no"),
            mo.buyer_code.label("buyer_code"),
            literal("").label("buyer_name"),
            mi.id.label("item_id"),
            mi.design.label("design"),
            mi.size.label("size"),
            mi.color.label("color"),
            mi.quality.label("quality"),
            null().label("folio_no"),
            null().label("contractor"),
            func.coalesce(mi.ordered_qty, 0).label("total_pcs"),
            _count_where(mu.wip_stage == WipStage.ON_LOOM.value, mu.id).label("on_loom"),
            literal(0).label("bazar_pcs"),
            _count_where(mu.wip_stage == WipStage.FINISHING.value, mu.id).label("finishing_pcs"),
            _count_where(mu.wip_stage == WipStage.FG_GODOWN.value, mu.id).label("fg_godown_pcs"),
            _count_where(mu.wip_stage == WipStage.PACKED.value, mu.id).label("packed_pcs"),
            literal(0).label("dispatched_pcs"),
        )
        .select_from(mi)
        .join(mo, mi.order_id == mo.id)
        .outerjoin(mu, mu.order_item_id == mi.id)
        .group_by(mo.id, mo.order_no, mo.buyer_code,
                  mi.id, mi.design, mi.size, mi.color, mi.quality, mi.ordered_qty)
        .order_by(mo.order_no, mi.id)
    )
    if filters.buyer:
        query = query.where(mo.buyer_code == filters.buyer)
    if filters.search and filters.search.strip():
        query = query.where(_search_clause(filters.search, mo.order_no, mo.buyer_code, mi.design))
    return query


def to_record(company: Company, row: Mapping[str, Any]) -> WIPRecord:
    """
    Normalize one result row. Negative counts are clamped to 0; if the tracked
    stages exceed the ordered quantity the ordered quantity is raised to match.
    """
    counts = {name: max(int(row[name] or 0), 0) for name in STAGE_FIELDS}
    total = max(int(row["total_pcs"] or 0), 0)
    tracked = sum(counts.values())
    if tracked > total:
        logger.warning("[WIP] %s %s item %s: %d pcs tracked but %d ordered, using tracked count",
                       company.value, row["ops_no"], row["item_id"], tracked, total)
        total = tracked
    return WIPRecord(
        company=company,
        ops_no=str(row["ops_no"] or "").strip(),
        buyer_code=row["buyer_code"] or "",
        buyer_name=row["buyer_name"] or "",
        design=row["design"] or "",
        size=row["size"] or "",
        color=row["color"] or "",
        quality=row["quality"] or "",
        folio_no=row.get("folio_no") or None,
        contractor=row.get("contractor") or None,
        total_pcs=total,
        **counts,
    )


def _fetch(engine: Engine, company: Company, query) -> List[WIPRecord]:
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
    return [to_record(company, row) for row in rows]


def fetch_live_wip(engine: Engine, filters: WIPFilters) -> List[WIPRecord]:
    return _fetch(engine, Company.EMPL, build_live_query(filters))


def fetch_mirror_wip(engine: Engine, filters: WIPFilters) -> List[WIPRecord]:
    return _fetch(engine, Company.EHI, build_mirror_query(filters))
