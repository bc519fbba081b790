# ehi_service.py
from typing import Any, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import bindparam, create_engine, event, text
from sqlalchemy.engine import Engine, URL

from config import Settings, settings as default_settings
from exceptions import ConfigurationMissing

PROCESS_NAMES_QUERY = text("""
    SELECT PROCESS_NAME_ID AS id, PROCESS_NAME AS name, COALESCE(ShortName, '') AS short_name
    FROM PROCESS_NAME_MASTER
    ORDER BY PROCESS_NAME_ID
""")

OPEN_ORDERS_QUERY = text("""
    SELECT
      om.OrderId AS order_id,
      om.CustomerOrderNo AS order_no,
      ci.CustomerCode AS buyer_code,
      om.OrderDate AS order_date,
      om.DispatchDate AS dispatch_date,
      om.Status AS status,
      om.LocalOrder AS local_order,
      (SELECT COUNT(*) FROM OrderDetail od WHERE od.OrderId = om.OrderId) AS item_count,
      (SELECT COALESCE(SUM(od.QtyRequired), 0) FROM OrderDetail od WHERE od.OrderId = om.OrderId) AS total_pcs
    FROM OrderMaster om
    LEFT JOIN customerinfo ci ON ci.CustomerId = om.CustomerId
    WHERE om.Status = :open_status
    ORDER BY om.CustomerOrderNo
""")

ORDER_ITEMS_QUERY = text("""
    SELECT
      od.OrderDetailId AS detail_id,
      od.OrderId AS order_id,
      od.Item_Finished_Id AS item_finished_id,
      od.QtyRequired AS ordered_qty,
      od.ArticalNo AS article_no,
      COALESCE(d.designName, '') AS design,
      COALESCE(sz.SizeFt, '') AS size,
      COALESCE(col.ColorName, '') AS color,
      COALESCE(q.QualityName, '') AS quality
    FROM OrderDetail od
    LEFT JOIN ITEM_PARAMETER_MASTER ipm ON ipm.ITEM_FINISHED_ID = od.Item_Finished_Id
    LEFT JOIN Design d ON d.designId = ipm.DESIGN_ID
    LEFT JOIN Size sz ON sz.SizeId = ipm.SIZE_ID
    LEFT JOIN Color col ON col.ColorId = ipm.COLOR_ID
    LEFT JOIN Quality q ON q.QualityId = ipm.QUALITY_ID
    WHERE od.OrderId IN :order_ids
    ORDER BY od.OrderId, od.OrderDetailId
""").bindparams(bindparam("order_ids", expanding=True))

UNITS_QUERY = text("""
    SELECT
      cn.StockNo AS stock_no,
      cn.TStockNo AS t_stock_no,
      cn.OrderId AS order_id,
      cn.Item_Finished_Id AS item_finished_id,
      cn.CurrentProStatus AS process_code,
      COALESCE(pnm.PROCESS_NAME, '') AS process_name,
      CASE WHEN cn.PackingID IS NOT NULL THEN 1 ELSE 0 END AS is_packed
    FROM CarpetNumber cn
    LEFT JOIN PROCESS_NAME_MASTER pnm ON pnm.PROCESS_NAME_ID = cn.CurrentProStatus
    WHERE cn.OrderId IN :order_ids
""").bindparams(bindparam("order_ids", expanding=True))

# --- Discovery (read-only, --discover) ---
STATUS_DISTRIBUTION_QUERY = text("""
    SELECT Status AS status, COUNT(*) AS cnt FROM OrderMaster GROUP BY Status
""")

SAMPLE_OPEN_ORDERS_QUERY = text("""
    SELECT TOP 5 om.OrderId AS order_id, om.CustomerOrderNo AS order_no, ci.CustomerCode AS buyer_code,
           om.OrderDate AS order_date, om.DispatchDate AS dispatch_date, om.LocalOrder AS local_order
    FROM OrderMaster om
    LEFT JOIN customerinfo ci ON ci.CustomerId = om.CustomerId
    WHERE om.Status = :open_status
    ORDER BY om.OrderDate DESC
""")

PROCESS_DISTRIBUTION_QUERY = text("""
    SELECT cn.CurrentProStatus AS process_code, pnm.PROCESS_NAME AS process_name, COUNT(*) AS cnt
    FROM CarpetNumber cn
    JOIN OrderMaster om ON om.OrderId = cn.OrderId
    LEFT JOIN PROCESS_NAME_MASTER pnm ON pnm.PROCESS_NAME_ID = cn.CurrentProStatus
    WHERE om.Status = :open_status
    GROUP BY cn.CurrentProStatus, pnm.PROCESS_NAME
    ORDER BY cn.CurrentProStatus
""")

OPEN_STATUS = "0"


def build_ehi_url(cfg: Settings) -> URL:
    missing = [name for name in ("ehi_sql_host", "ehi_sql_user", "ehi_sql_password", "ehi_sql_database")
               if not getattr(cfg, name)]
    if missing:
        raise ConfigurationMissing("EHI SQL Server", [m.upper() for m in missing])
    return URL.create(
        "mssql+pyodbc",
        username=cfg.ehi_sql_user,
        password=cfg.ehi_sql_password,
        host=cfg.ehi_sql_host,
        port=cfg.ehi_sql_port,
        database=cfg.ehi_sql_database,
        query={"driver": cfg.ehi_sql_driver, "Encrypt": "no", "TrustServerCertificate": "yes"},
    )


class EhiService:
    """Read-only client for the EHI SQL Server (EMBH database)."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "EhiService":
        cfg = cfg or default_settings
        engine = create_engine(
            build_ehi_url(cfg),
            connect_args={"timeout": cfg.ehi_sql_connect_timeout_seconds},
            pool_pre_ping=True,
        )
        query_timeout = cfg.ehi_sql_query_timeout_seconds

        @event.listens_for(engine, "connect")
        def _set_query_timeout(dbapi_connection, connection_record):
            dbapi_connection.timeout = query_timeout

        return cls(engine)

    def _fetch_all(self, stmt, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(stmt, params or {}).mappings()]

    def get_process_names(self) -> List[Dict[str, Any]]:
        return self._fetch_all(PROCESS_NAMES_QUERY)

    def get_open_orders(self) -> List[Dict[str, Any]]:
        return self._fetch_all(OPEN_ORDERS_QUERY, {"open_status": OPEN_STATUS})

    def get_order_items(self, order_ids: Sequence[int]) -> List[Dict[str, Any]]:
        if not order_ids:
            return []
        return self._fetch_all(ORDER_ITEMS_QUERY, {"order_ids": list(order_ids)})

    def iter_units(self, order_ids: Sequence[int], fetch_size: int) -> Iterator[List[Dict[str, Any]]]:
        """Stream the carpets of the given orders in lists of at most fetch_size rows."""
        if not order_ids:
            return
        with self.engine.connect() as conn:
            result = conn.execution_options(stream_results=True, max_row_buffer=fetch_size).execute(
                UNITS_QUERY, {"order_ids": list(order_ids)}
            )
            for partition in result.mappings().partitions(fetch_size):
                yield [dict(row) for row in partition]

    def discover(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "process_names": self.get_process_names(),
            "status_distribution": self._fetch_all(STATUS_DISTRIBUTION_QUERY),
            "sample_open_orders": self._fetch_all(SAMPLE_OPEN_ORDERS_QUERY, {"open_status": OPEN_STATUS}),
            "process_distribution": self._fetch_all(PROCESS_DISTRIBUTION_QUERY, {"open_status": OPEN_STATUS}),
        }

    def close(self) -> None:
        self.engine.dispose()
