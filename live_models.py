# live_models.py
"""
Read-only table definitions for the EMPL production database.

These tables are owned by the EMPL ERP; this service never creates or writes
them outside of tests.
"""
from sqlalchemy import Column, Date, ForeignKey, Integer, MetaData, String, Table

live_metadata = MetaData()

# Orders whose status is in this set are shipped; their units count as dispatched.
CLOSED_ORDER_STATUSES = ("closed", "invoiced")

empl_orders = Table(
    "empl_orders",
    live_metadata,
    Column("id", Integer, primary_key=True),
    Column("ops_no", String(100), nullable=False),
    Column("buyer_code", String(50)),
    Column("buyer_name", String(255)),
    Column("status", String(20)),
    Column("order_date", Date),
    Column("ship_date", Date),
)

empl_order_items = Table(
    "empl_order_items",
    live_metadata,
    Column("id", Integer, primary_key=True),
    Column("order_id", Integer, ForeignKey("empl_orders.id"), nullable=False),
    Column("design", String(200)),
    Column("size", String(100)),
    Column("color", String(200)),
    Column("quality", String(200)),
    Column("ordered_qty", Integer),
    Column("folio_no", String(50)),
    Column("contractor", String(200)),
)

# stage: on_loom | bazar | finishing | fg_godown | packed
empl_units = Table(
    "empl_units",
    live_metadata,
    Column("id", Integer, primary_key=True),
    Column("order_item_id", Integer, ForeignKey("empl_order_items.id"), nullable=False),
    Column("stage", String(30)),
)
