"""
Pytest configuration and shared fixtures.

SQLite files stand in for the PostgreSQL mirror and the EMPL database;
FakeEhi stands in for the EHI SQL Server.
"""
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pytest
from sqlalchemy import create_engine

from config import Settings
from database import init_mirror_schema, make_session_factory
from live_models import empl_order_items, empl_orders, empl_units, live_metadata


class FakeEhi:
    """In-memory EHI client. `fail_on` names the call that should raise."""

    def __init__(
        self,
        process_names: Optional[List[Dict[str, Any]]] = None,
        orders: Optional[List[Dict[str, Any]]] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        units: Optional[List[Dict[str, Any]]] = None,
        fail_on: Optional[str] = None,
    ):
        self.process_names = process_names or []
        self.orders = orders or []
        self.items = items or []
        self.units = units or []
        self.fail_on = fail_on
        self.closed = False

    def _maybe_fail(self, name: str) -> None:
        if self.fail_on == name:
            raise RuntimeError(f"EHI connection lost during {name}")

    def get_process_names(self) -> List[Dict[str, Any]]:
        self._maybe_fail("process_names")
        return list(self.process_names)

    def get_open_orders(self) -> List[Dict[str, Any]]:
        self._maybe_fail("orders")
        return list(self.orders)

    def get_order_items(self, order_ids: Sequence[int]) -> List[Dict[str, Any]]:
        self._maybe_fail("items")
        wanted = set(order_ids)
        return [dict(i) for i in self.items if i["order_id"] in wanted]

    def iter_units(self, order_ids: Sequence[int], fetch_size: int) -> Iterator[List[Dict[str, Any]]]:
        wanted = set(order_ids)
        rows = [dict(u) for u in self.units if u["order_id"] in wanted]
        for start in range(0, len(rows), fetch_size):
            if start > 0 and self.fail_on == "units":
                raise RuntimeError("EHI connection lost while streaming carpets")
            yield rows[start:start + fetch_size]

    def close(self) -> None:
        self.closed = True


def _unit(stock_no: int, order_id: int, item_id: int, code: Any) -> Dict[str, Any]:
    return {
        "stock_no": stock_no,
        "t_stock_no": f"T{stock_no}",
        "order_id": order_id,
        "item_finished_id": item_id,
        "process_code": code,
        "process_name": "",
        "is_packed": 1 if code == 7 else 0,
    }


@pytest.fixture
def ehi_data() -> Dict[str, List[Dict[str, Any]]]:
    """Two open EHI orders: EM-25-1148 (4 pcs) and EM-25-1150 (3 pcs)."""
    return {
        "process_names": [
            {"id": 1, "name": "WEAVING", "short_name": "WV"},
            {"id": 3, "name": "FINISHING", "short_name": "FN"},
            {"id": 7, "name": "PACKING", "short_name": "PK"},
            {"id": 21, "name": "AQL", "short_name": ""},
        ],
        "orders": [
            {"order_id": 101, "order_no": "EM-25-1148", "buyer_code": "BC01", "order_date": date(2025, 11, 3),
             "dispatch_date": date(2026, 2, 1), "status": "0", "local_order": "L-77", "item_count": 1,
             "total_pcs": 4},
            {"order_id": 102, "order_no": "EM-25-1150", "buyer_code": "BC02", "order_date": "2025-11-05",
             "dispatch_date": None, "status": "0", "local_order": None, "item_count": 1, "total_pcs": 3},
        ],
        "items": [
            {"detail_id": 1, "order_id": 101, "item_finished_id": 501, "ordered_qty": 4, "article_no": "A-1",
             "design": "Aria", "size": "5x8", "color": "Ivory", "quality": "Wool"},
            {"detail_id": 2, "order_id": 102, "item_finished_id": 502, "ordered_qty": 3, "article_no": "A-2",
             "design": "Lotus", "size": "8x10", "color": "Rust", "quality": "Jute"},
        ],
        "units": [
            _unit(1, 101, 501, 7),
            _unit(2, 101, 501, 7),
            _unit(3, 101, 501, 1),
            _unit(4, 101, 501, 999),
            _unit(5, 102, 502, 3),
            _unit(6, 102, 502, 21),
            _unit(7, 102, 999, 1),  # no matching order item
        ],
    }


@pytest.fixture
def fake_ehi(ehi_data) -> FakeEhi:
    return FakeEhi(**ehi_data)


@pytest.fixture
def cfg() -> Settings:
    return Settings(
        _env_file=None,
        empl_database_url=None,
        ehi_database_url=None,
        ehi_batch_size=2,
        ehi_unit_fetch_size=3,
        mirror_insert_batch_size=2,
        sync_lease_minutes=90,
        sync_stale_after_hours=2.0,
        source_query_timeout_seconds=5.0,
    )


@pytest.fixture
def mirror_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'mirror.db'}", connect_args={"check_same_thread": False})
    init_mirror_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def mirror_factory(mirror_engine):
    return make_session_factory(mirror_engine)


@pytest.fixture
def live_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empl.db'}", connect_args={"check_same_thread": False})
    live_metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def live_data(live_engine):
    """
    EM-25-0001 open, 5 ordered, 4 tracked across stages.
    EM-25-0002 invoiced, both units dispatched.
    EM-25-0003 status NULL, still in the pipeline.
    """
    with live_engine.begin() as conn:
        conn.execute(empl_orders.insert(), [
            {"id": 1, "ops_no": "EM-25-0001", "buyer_code": "B1", "buyer_name": "Buyer One", "status": "open"},
            {"id": 2, "ops_no": "EM-25-0002", "buyer_code": "B2", "buyer_name": "Buyer Two", "status": "invoiced"},
            {"id": 3, "ops_no": "EM-25-0003", "buyer_code": "B1", "buyer_name": "Buyer One", "status": None},
        ])
        conn.execute(empl_order_items.insert(), [
            {"id": 10, "order_id": 1, "design": "Rose", "size": "4x6", "color": "Blue", "quality": "Wool",
             "ordered_qty": 5},
            {"id": 20, "order_id": 2, "design": "Lotus", "size": "5x8", "color": "Red", "quality": "Silk",
             "ordered_qty": 2},
            {"id": 30, "order_id": 3, "design": "Iris", "size": "6x9", "color": "Grey", "quality": "Jute",
             "ordered_qty": 3},
        ])
        conn.execute(empl_units.insert(), [
            {"id": 1, "order_item_id": 10, "stage": "on_loom"},
            {"id": 2, "order_item_id": 10, "stage": "bazar"},
            {"id": 3, "order_item_id": 10, "stage": "finishing"},
            {"id": 4, "order_item_id": 10, "stage": "fg_godown"},
            {"id": 5, "order_item_id": 20, "stage": "packed"},
            {"id": 6, "order_item_id": 20, "stage": "packed"},
            {"id": 7, "order_item_id": 30, "stage": "packed"},
        ])
    return live_engine
