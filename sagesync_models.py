from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sagesync_errors import RecordSkipped


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _decimal(value: Any) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal(0)
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal(0)


class SourceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_code: str
    location: str
    description: str = ""
    quantity_on_hand: Decimal = Decimal(0)
    minimum_stock: Decimal = Decimal(0)
    last_cost: Decimal = Decimal(0)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> SourceRecord:
        """Build a record from a Sage300 row; raises RecordSkipped on blank keys."""
        item_code = _text(row.get("ItemNumber"))
        location = _text(row.get("Location"))
        if not item_code or not location:
            raise RecordSkipped("Item without a valid code or location")
        return cls(
            item_code=item_code,
            location=location,
            description=_text(row.get("Description")),
            quantity_on_hand=_decimal(row.get("QuantityOnHand")),
            minimum_stock=_decimal(row.get("MinimumStock")),
            last_cost=_decimal(row.get("LastCost")),
        )


class AccessToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    refresh_value: str | None = None
    token_type: str = "Bearer"
    expires_at: datetime
    obtained_at: datetime

    def remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now


class WarehouseCreate(BaseModel):
    code: str
    description: str
    address: str = ""
    state: str = ""
    city: str = ""
    country: str = ""
    zip_code: str = ""
    external_integration: bool = False
    transfer_approval: bool = False
    active: bool = True
    visible_to_all: bool = False


class TargetWarehouse(BaseModel):
    """Warehouse as returned by Fracttal; unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    code: str
    description: str | None = None
    address: str | None = None
    state: str | None = None
    city: str | None = None
    country: str | None = None
    zip_code: str | None = None
    active: bool = True
    external_integration: bool = False


class InventoryPayload(BaseModel):
    stock: float
    unit_cost_stock: float
    min_stock_level: float
    max_stock_level: float
    location: str


class SyncAction(str, Enum):
    UPDATE = "update"
    ASSOCIATE = "associate"
    CREATE = "create"


class ItemExistence(BaseModel):
    exists: bool
    in_warehouse: bool = False
    remote_item: dict[str, Any] | None = None
    association: dict[str, Any] | None = None


class SyncTotals(BaseModel):
    total: int = 0
    processed: int = 0
    skipped: int = 0
    updated: int = 0
    created_or_associated: int = 0
    errors: int = 0


class SyncOutcome(BaseModel):
    """What a pass reports back to the state tracker before it is timestamped."""

    success: bool
    totals: SyncTotals = Field(default_factory=SyncTotals)
    warehouses_touched: list[str] = Field(default_factory=list)
    error: str | None = None


class SyncRunRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    started_at: datetime
    duration_ms: int
    success: bool
    totals: SyncTotals
    warehouses_touched: tuple[str, ...] = ()
    error: str | None = None
