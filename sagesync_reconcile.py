from __future__ import annotations

from typing import Any

import structlog

from sagesync_config import SyncSettings
from sagesync_errors import RemoteNotFoundError
from sagesync_http import FracttalClient, unwrap
from sagesync_models import InventoryPayload, ItemExistence, SourceRecord, SyncAction

logger = structlog.get_logger()


def build_inventory_payload(record: SourceRecord, settings: SyncSettings) -> InventoryPayload:
    """Stock/cost fields sent to Fracttal for a Sage300 row.

    max_stock_level is minimum * multiplier; when there is no minimum the
    configured fallback is used instead.
    """
    minimum = float(record.minimum_stock)
    if minimum > 0:
        max_level = minimum * settings.max_stock_multiplier
    else:
        max_level = settings.max_stock_fallback
    return InventoryPayload(
        stock=float(record.quantity_on_hand),
        unit_cost_stock=float(record.last_cost),
        min_stock_level=minimum,
        max_stock_level=max_level,
        location=record.location,
    )


def _associations(item: dict[str, Any]) -> list[dict[str, Any]]:
    warehouses = item.get("warehouses")
    return [w for w in warehouses if isinstance(w, dict)] if isinstance(warehouses, list) else []


class ItemReconciler:
    def __init__(self, client: FracttalClient, settings: SyncSettings):
        self.client = client
        self.settings = settings

    def check_item(self, item_code: str, warehouse_code: str) -> ItemExistence:
        try:
            envelope = self.client.get_inventory(item_code)
        except RemoteNotFoundError:
            return ItemExistence(exists=False)

        item = unwrap(envelope)
        if item is None:
            return ItemExistence(exists=False)

        association = next(
            (w for w in _associations(item) if w.get("code_warehouse") == warehouse_code),
            None,
        )
        return ItemExistence(
            exists=True,
            in_warehouse=association is not None,
            remote_item=item,
            association=association,
        )

    def classify(self, item_code: str, warehouse_code: str) -> tuple[SyncAction, ItemExistence]:
        status = self.check_item(item_code, warehouse_code)
        if not status.exists:
            action = SyncAction.CREATE
        elif status.in_warehouse:
            action = SyncAction.UPDATE
        else:
            action = SyncAction.ASSOCIATE
        logger.debug("Classified item", item=item_code, warehouse=warehouse_code, action=action.value)
        return action, status

    def apply(self, action: SyncAction, record: SourceRecord, warehouse_code: str) -> dict[str, Any]:
        data = build_inventory_payload(record, self.settings).model_dump()
        if action is SyncAction.UPDATE:
            return self.client.update_inventory(record.item_code, warehouse_code, data)
        if action is SyncAction.ASSOCIATE:
            return self.client.associate_inventory(record.item_code, warehouse_code, data)
        return self.client.create_inventory(
            record.item_code, record.description, warehouse_code, data
        )
