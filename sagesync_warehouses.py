from __future__ import annotations

from typing import Any

import structlog

from sagesync_config import WarehouseCreationSettings
from sagesync_errors import RemoteNotFoundError, WarehouseCreationDisabledError
from sagesync_http import FracttalClient
from sagesync_models import TargetWarehouse, WarehouseCreate

logger = structlog.get_logger()


def build_warehouse_payload(code: str, settings: WarehouseCreationSettings) -> WarehouseCreate:
    payload: dict[str, Any] = {
        "active": True,
        **settings.default_values,
        "code": code,
        "description": settings.description_template.replace("{code}", code),
    }
    return WarehouseCreate.model_validate(payload)


class WarehouseProvisioner:
    def __init__(self, client: FracttalClient, settings: WarehouseCreationSettings):
        self.client = client
        self.settings = settings

    def ensure_warehouse_exists(self, code: str, dry_run: bool = False) -> TargetWarehouse:
        """Return the Fracttal warehouse `code`, creating it when absent and allowed.

        Only a not-found lookup leads to creation; any other failure propagates.
        """
        try:
            existing = self.client.get_warehouse(code)
            logger.debug("Warehouse exists", warehouse=code)
            return TargetWarehouse.model_validate({**existing, "code": existing.get("code") or code})
        except RemoteNotFoundError:
            logger.info("Warehouse not found", warehouse=code)

        if not self.settings.enabled:
            logger.error("Warehouse missing and auto-creation disabled", warehouse=code)
            raise WarehouseCreationDisabledError(code)

        payload = build_warehouse_payload(code, self.settings)
        if dry_run:
            logger.info("DRY RUN - Would create warehouse", payload=payload.model_dump())
            return TargetWarehouse.model_validate(payload.model_dump())

        created = self.client.create_warehouse(payload)
        logger.info("Warehouse created", warehouse=code)
        return TargetWarehouse.model_validate({**payload.model_dump(), **created, "code": code})
