# routes/wip.py

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crud import open_ops as crud_open_ops
from database import get_live_engine, get_mirror_db, get_mirror_engine
from schemas import CompanyScope, GroupedWIPResponse, WIPFilters, WIPResponse
from services import open_ops_reconciler, wip_query_service
from utils import get_logger

logger = get_logger("wip")

router = APIRouter(
    prefix="/api/wip",
    tags=["WIP"],
    responses={404: {"description": "Not found"}},
)


def get_filters(
    company: CompanyScope = Query(CompanyScope.ALL),
    buyer: Optional[str] = Query(None, description="Exact buyer code"),
    search: Optional[str] = Query(None, description="Substring of OPS number, buyer or design"),
) -> WIPFilters:
    return WIPFilters(company=company, buyer=buyer or None, search=search or None)


@router.get("", response_model=WIPResponse)
def get_wip(
    filters: WIPFilters = Depends(get_filters),
    live_engine: Optional[Engine] = Depends(get_live_engine),
    mirror_engine: Optional[Engine] = Depends(get_mirror_engine),
):
    """
    One row per order line item from both companies. A source that is down
    contributes no rows; syncStatus says which.
    """
    return wip_query_service.get_wip(filters, live_engine, mirror_engine)


@router.get("/orders", response_model=GroupedWIPResponse)
def get_wip_orders(
    view: Literal["open", "all"] = Query("open"),
    filters: WIPFilters = Depends(get_filters),
    live_engine: Optional[Engine] = Depends(get_live_engine),
    mirror_engine: Optional[Engine] = Depends(get_mirror_engine),
    db: Optional[Session] = Depends(get_mirror_db),
):
    """Order-level view. 'open' hides orders the open-ops document marks closed."""
    result = wip_query_service.get_wip(filters, live_engine, mirror_engine)

    open_ops = None
    if db is not None:
        try:
            open_ops = crud_open_ops.get_open_ops(db)
        except SQLAlchemyError as e:
            logger.error("[WIP] Could not load the open-ops document, showing every order: %s", e)

    groups = open_ops_reconciler.group_by_order(result.data)
    outcome = open_ops_reconciler.reconcile(groups, open_ops, show_all=(view == "all"))
    visible_items = [item for group in outcome.visible for item in group.items]

    return GroupedWIPResponse(
        view=view,
        data=outcome.visible,
        hidden_count=outcome.hidden_count,
        open_ops_loaded=outcome.open_ops_loaded,
        summary=wip_query_service.build_summary(visible_items),
        sync_status=result.sync_status,
        warnings=result.warnings,
    )
