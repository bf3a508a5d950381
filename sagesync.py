#!/usr/bin/env python3
"""
Sage300 → Fracttal inventory synchronizer

Features:
- OAuth2 client_credentials with persisted token, refresh and 401 replay
- Config-driven location → warehouse mapping (sagesync.config.json)
- Warehouse auto-provisioning
- Per-item update / associate / create reconciliation
- Dry-run, structured logging

Usage:
  export $(grep -v '^#' .env | xargs)  # or rely on python-dotenv
  python sagesync.py verify
  python sagesync.py sync --dry-run
  python sagesync.py sync
  python sagesync.py map GRAL --item 201001001 --description "CONECTOR TH"
  python sagesync.py token --clear
"""

import json
import logging
import sys

import click
import structlog

from sagesync_auth import TokenManager
from sagesync_config import load_config, validate_config
from sagesync_db import TokenStore
from sagesync_errors import SyncError, SyncInProgressError
from sagesync_http import FracttalClient
from sagesync_mapping import LocationMapper
from sagesync_settings import get_settings, missing_required_keys, require_settings
from sagesync_source import SageInventorySource
from sagesync_state import SyncStateTracker
from sagesync_sync import SyncOrchestrator

# Configure structured logging
logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[logging.StreamHandler()])
logger = structlog.get_logger()


# Simple console for output
def print_msg(msg):
    print(msg)


def print_error(msg):
    print(f"ERROR: {msg}")


def print_success(msg):
    print(f"SUCCESS: {msg}")


# ---------- CLI helpers ----------
def ensure_env():
    """Validate required environment variables"""
    missing = missing_required_keys()
    if missing:
        print_error(f"Missing environment variables: {', '.join(missing)}")
        print_msg("Copy env.example to .env and fill in the values")
        raise click.ClickException("Missing required environment variables")
    try:
        return require_settings()
    except Exception as e:
        print_error(f"Invalid environment configuration: {e}")
        raise click.ClickException("Invalid environment configuration") from e


def build_orchestrator(state: SyncStateTracker | None = None) -> SyncOrchestrator:
    s = ensure_env()
    cfg = load_config(s.CONFIG_PATH)
    tokens = TokenManager.from_settings(s)
    return SyncOrchestrator(
        cfg,
        SageInventorySource.from_settings(s),
        FracttalClient.from_settings(s, tokens),
        tokens,
        state or SyncStateTracker(),
    )


@click.group()
def cli():
    """Sage300 → Fracttal inventory synchronizer"""
    pass


@cli.command()
def verify():
    """Check env, config, Sage300 connection and Fracttal authentication."""
    print_msg("Verifying setup...")

    try:
        s = ensure_env()
        print_success("Environment variables OK")
    except click.ClickException:
        sys.exit(1)

    try:
        cfg = load_config(s.CONFIG_PATH)
        validate_config(cfg)
        print_success("Configuration file OK")
    except SyncError as e:
        print_error(f"Configuration error: {e}")
        sys.exit(1)

    if SageInventorySource.from_settings(s).validate_connection():
        print_success("Sage300 connection OK")
    else:
        print_error("Sage300 connection failed")
        sys.exit(1)

    tokens = TokenManager.from_settings(s)
    try:
        tokens.get_access_token()
        info = tokens.describe()
        print_success(f"Fracttal authentication OK ({info['minutes_left']} min left)")
    except SyncError as e:
        print_error(f"Fracttal auth failed: {e}")
        sys.exit(1)

    client = FracttalClient.from_settings(s, tokens)
    try:
        client.get_warehouse(cfg.default_warehouse.code)
        print_success(f"Default warehouse {cfg.default_warehouse.code} found")
    except SyncError as e:
        print_msg(f"Default warehouse {cfg.default_warehouse.code} not available: {e}")
    finally:
        client.close()
        tokens.close()

    print_success("All checks passed! Ready to sync.")


@cli.command()
@click.option("--dry-run", is_flag=True, help="classify and log; don't write to Fracttal")
@click.option("--verbose", is_flag=True, help="verbose logging")
def sync(dry_run, verbose):
    """Run one Sage300 → Fracttal inventory pass."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    print_msg("Starting inventory sync")
    try:
        orchestrator = build_orchestrator()
    except SyncError as e:
        print_error(f"Setup error: {e}")
        sys.exit(1)

    try:
        record = orchestrator.run_sync_pass(dry_run=dry_run)
    except SyncInProgressError as e:
        print_error(str(e))
        sys.exit(1)
    finally:
        orchestrator.client.close()
        orchestrator.tokens.close()

    t = record.totals
    print_msg("\nSync Summary:")
    print_msg(f"  Total rows: {t.total}")
    print_msg(f"  Processed: {t.processed}")
    print_msg(f"  Skipped: {t.skipped}")
    print_msg(f"  Updated: {t.updated}")
    print_msg(f"  Created/associated: {t.created_or_associated}")
    print_msg(f"  Errors: {t.errors}")
    if record.warehouses_touched:
        print_msg(f"  Warehouses: {', '.join(record.warehouses_touched)}")
    print_msg(f"  Duration: {record.duration_ms} ms")

    if not record.success:
        print_error(f"Sync failed: {record.error}")
        sys.exit(1)
    if dry_run:
        print_msg("DRY RUN - Nothing was written to Fracttal")
    else:
        print_success("Sync completed!")


@cli.command("map")
@click.argument("location")
@click.option("--item", "item_code", default="", help="Sage item number")
@click.option("--description", default="", help="item description")
def map_location(location, item_code, description):
    """Show which Fracttal warehouse a Sage location maps to."""
    try:
        cfg = load_config(get_settings().CONFIG_PATH)
    except SyncError as e:
        raise click.ClickException(str(e)) from e

    code = LocationMapper(cfg.location_mapping).map_location(location, item_code, description)
    if code is None:
        print_error(f"Location {location} is not mapped (items there are skipped)")
        sys.exit(1)
    print_msg(f"{location} -> {code}")


@cli.command()
@click.option("--clear", is_flag=True, help="forget the persisted token")
def token(clear):
    """Show or clear the persisted Fracttal token."""
    s = get_settings()
    store = TokenStore(s.DB_PATH)
    if clear:
        store.clear()
        print_success("Token cleared")
        return

    tok = store.load()
    if tok is None:
        print_msg("No token stored")
        return
    info = {
        "expires_at": tok.expires_at.isoformat(),
        "obtained_at": tok.obtained_at.isoformat(),
        "has_refresh_token": bool(tok.refresh_value),
    }
    print(json.dumps(info, indent=2))


if __name__ == "__main__":
    cli()
