from __future__ import annotations

from typing import Any, Protocol

import structlog

from sagesync_auth import TokenManager
from sagesync_config import ConfigModel, validate_config
from sagesync_errors import (
    AuthenticationError,
    ConnectionUnavailableError,
    RecordSkipped,
)
from sagesync_http import FracttalClient
from sagesync_mapping import LocationMapper
from sagesync_models import (
    SourceRecord,
    SyncAction,
    SyncOutcome,
    SyncRunRecord,
    SyncTotals,
    TargetWarehouse,
)
from sagesync_reconcile import ItemReconciler, build_inventory_payload
from sagesync_state import SyncStateTracker
from sagesync_warehouses import WarehouseProvisioner

logger = structlog.get_logger()


class InventorySource(Protocol):
    def validate_connection(self) -> bool: ...

    def fetch_inventory(self) -> list[dict[str, Any]]: ...


class SyncOrchestrator:
    """Runs one Sage300 -> Fracttal pass: map, provision, classify, apply.

    Records are processed one at a time. A failing record is counted and the
    pass moves on; only config and connectivity checks abort a run.
    """

    def __init__(
        self,
        config: ConfigModel,
        source: InventorySource,
        client: FracttalClient,
        tokens: TokenManager,
        state: SyncStateTracker,
    ):
        self.config = config
        self.source = source
        self.client = client
        self.tokens = tokens
        self.state = state
        self.mapper = LocationMapper(config.location_mapping)
        self.provisioner = WarehouseProvisioner(client, config.warehouse_creation)
        self.reconciler = ItemReconciler(client, config.sync)

    def run_sync_pass(self, dry_run: bool = False) -> SyncRunRecord:
        """Run a full pass and return its record.

        Raises SyncInProgressError if another pass holds the state tracker.
        """
        started_at = self.state.start_sync()
        totals = SyncTotals()
        warehouses: dict[str, TargetWarehouse] = {}

        def outcome(success: bool, error: str | None = None) -> SyncOutcome:
            return SyncOutcome(
                success=success,
                totals=totals,
                warehouses_touched=list(warehouses),
                error=error,
            )

        try:
            self._preflight()
            self._sync_inventory(totals, warehouses, dry_run)
        except Exception as e:
            logger.exception("Sync error")
            return self.state.end_sync(outcome(False, str(e)), started_at)
        except BaseException:
            self.state.end_sync(outcome(False, "interrupted"), started_at)
            raise
        return self.state.end_sync(outcome(True), started_at)

    def _preflight(self) -> None:
        validate_config(self.config)
        logger.info("Configuration validated")

        if not self.source.validate_connection():
            raise ConnectionUnavailableError("Could not connect to Sage300")
        try:
            self.tokens.get_access_token()
        except AuthenticationError as e:
            raise ConnectionUnavailableError(f"Could not authenticate with Fracttal: {e}") from e

    def _sync_inventory(
        self, totals: SyncTotals, warehouses: dict[str, TargetWarehouse], dry_run: bool
    ) -> None:
        rows = self.source.fetch_inventory()
        totals.total = len(rows)
        logger.info("Starting inventory sync", total=totals.total, dry_run=dry_run)
        every = max(self.config.sync.progress_every, 1)

        for row in rows:
            try:
                action = self._sync_record(row, warehouses, dry_run)
            except RecordSkipped as e:
                totals.skipped += 1
                logger.warning(
                    "Skipping record",
                    reason=str(e),
                    item=row.get("ItemNumber"),
                    location=row.get("Location"),
                )
                continue
            except Exception as e:
                totals.errors += 1
                logger.error("Failed to process record", item=row.get("ItemNumber"), error=str(e))
            else:
                if action is SyncAction.UPDATE:
                    totals.updated += 1
                else:
                    totals.created_or_associated += 1

            totals.processed += 1
            if totals.processed % every == 0:
                logger.info("Progress", processed=totals.processed, total=totals.total)

        logger.info(
            "Sync summary",
            total=totals.total,
            processed=totals.processed,
            skipped=totals.skipped,
            updated=totals.updated,
            created_or_associated=totals.created_or_associated,
            errors=totals.errors,
            warehouses=list(warehouses),
        )

    def _sync_record(
        self, row: dict[str, Any], warehouses: dict[str, TargetWarehouse], dry_run: bool
    ) -> SyncAction:
        record = SourceRecord.from_row(row)
        warehouse_code = self.mapper.map_location(
            record.location, record.item_code, record.description
        )
        if warehouse_code is None:
            raise RecordSkipped(f"Location {record.location} not mapped")

        if warehouse_code not in warehouses:
            warehouses[warehouse_code] = self.provisioner.ensure_warehouse_exists(
                warehouse_code, dry_run=dry_run
            )

        action, _ = self.reconciler.classify(record.item_code, warehouse_code)
        if dry_run:
            logger.info(
                "DRY RUN - Would apply",
                action=action.value,
                item=record.item_code,
                warehouse=warehouse_code,
                payload=build_inventory_payload(record, self.config.sync).model_dump(),
            )
        else:
            logger.info("Applying", action=action.value, item=record.item_code, warehouse=warehouse_code)
            self.reconciler.apply(action, record, warehouse_code)
        return action
