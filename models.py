# models.py

from sqlalchemy import (Column, Integer, String, Date, DateTime, Text, BOOLEAN, JSON,
                        ForeignKey, Index)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class MirrorOrder(Base):
    """One open EHI order (OrderMaster row with Status = '0')."""
    __tablename__ = "mirror_order"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source_order_id = Column(Integer, nullable=False, index=True)  # OrderMaster.OrderId
    order_no = Column(String(100), index=True)  # CustomerOrderNo, e.g. "EM-25-1148"
    buyer_code = Column(String(50), index=True)
    order_date = Column(Date)
    dispatch_date = Column(Date)  # ex-factory date
    status = Column(String(20))  # '0' = open, '1' = closed
    local_order = Column(String(200))
    total_pcs = Column(Integer, default=0, nullable=False)
    total_items = Column(Integer, default=0, nullable=False)
    synced_at = Column(DateTime(timezone=True), server_default=func.now())

    items = relationship("MirrorOrderItem", back_populates="order", cascade="all, delete-orphan",
                         passive_deletes=True)


class MirrorOrderItem(Base):
    __tablename__ = "mirror_order_item"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("mirror_order.id", ondelete="CASCADE"), nullable=False, index=True)
    source_detail_id = Column(Integer)  # OrderDetail.OrderDetailId
    source_item_id = Column(Integer)  # OrderDetail.Item_Finished_Id
    design = Column(String(200))
    size = Column(String(100))
    color = Column(String(200))
    quality = Column(String(200))
    ordered_qty = Column(Integer, default=0, nullable=False)
    article_no = Column(String(100))
    synced_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("MirrorOrder", back_populates="items")
    units = relationship("MirrorUnit", back_populates="order_item", passive_deletes=True)


class MirrorUnit(Base):
    """
    One physical carpet (CarpetNumber row). Linked to its item through the
    (OrderId, Item_Finished_Id) natural key resolved at sync time; NULL when the
    key did not resolve.
    """
    __tablename__ = "mirror_unit"
    id = Column(Integer, primary_key=True, autoincrement=True)
    stock_no = Column(Integer, index=True)
    t_stock_no = Column(String(100))
    order_item_id = Column(Integer, ForeignKey("mirror_order_item.id", ondelete="CASCADE"), nullable=True)
    raw_process_code = Column(Integer)  # CurrentProStatus
    process_name = Column(String(200))
    wip_stage = Column(String(30), nullable=False)
    is_packed = Column(BOOLEAN, default=False, nullable=False)
    synced_at = Column(DateTime(timezone=True), server_default=func.now())

    order_item = relationship("MirrorOrderItem", back_populates="units")

    __table_args__ = (
        Index("idx_mirror_unit_order_item", "order_item_id"),
        Index("idx_mirror_unit_process", "raw_process_code"),
        Index("idx_mirror_unit_wip_stage", "wip_stage"),
    )


class ProcessName(Base):
    __tablename__ = "process_name"
    id = Column(Integer, primary_key=True, autoincrement=False)  # PROCESS_NAME_ID
    name = Column(String(200))
    short_name = Column(String(50))


class SyncRun(Base):
    __tablename__ = "sync_run"
    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_type = Column(String(50), default="full", nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True))
    orders_synced = Column(Integer, default=0, nullable=False)
    items_synced = Column(Integer, default=0, nullable=False)
    units_synced = Column(Integer, default=0, nullable=False)
    status = Column(String(20), default="running", nullable=False, index=True)
    errors = Column(Text)


class OpenOpsDocument(Base):
    """The latest uploaded 'Order Status' export. Only one row is kept."""
    __tablename__ = "open_ops_document"
    id = Column(Integer, primary_key=True, autoincrement=True)
    ops_numbers = Column(JSON, nullable=False)
    max_sequence = Column(Integer, default=0, nullable=False)
    file_name = Column(String(255))
    uploaded_by = Column(String(100))
    uploaded_at = Column(DateTime(timezone=True), nullable=False)
