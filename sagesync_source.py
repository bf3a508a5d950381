from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sagesync_settings import SettingsStrict

logger = structlog.get_logger()

INVENTORY_QUERY = """
    SELECT
        L.ITEMNO        AS ItemNumber,
        I.[DESC]        AS Description,
        L.LOCATION      AS Location,
        L.QTYONHAND     AS QuantityOnHand,
        L.QTYMINREQ     AS MinimumStock,
        L.LASTCOST      AS LastCost
    FROM COPDAT.dbo.ICILOC AS L
    JOIN COPDAT.dbo.ICITEM AS I
        ON L.ITEMNO = I.ITEMNO
    WHERE I.INACTIVE = 0
        AND I.STOCKITEM = 1
    ORDER BY L.ITEMNO, L.LOCATION
"""


class SageInventorySource:
    """Read-only access to Sage300 inventory rows."""

    def __init__(self, engine: Engine, query: str | None = None):
        self.engine = engine
        self.query = query or INVENTORY_QUERY

    @classmethod
    def from_settings(cls, s: SettingsStrict) -> SageInventorySource:
        engine = create_engine(s.SAGE_DB_URL, pool_pre_ping=True)
        return cls(engine, s.SAGE_INVENTORY_QUERY)

    def validate_connection(self) -> bool:
        try:
            with self.engine.connect() as cx:
                cx.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Sage300 connection check failed", error=str(e))
            return False
        logger.info("Sage300 connection OK")
        return True

    def fetch_inventory(self) -> list[dict[str, Any]]:
        logger.info("Fetching inventory rows from Sage300")
        with self.engine.connect() as cx:
            rows = [dict(r) for r in cx.execute(text(self.query)).mappings()]
        logger.info("Fetched inventory rows", count=len(rows))
        return rows
