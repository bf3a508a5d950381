#!/usr/bin/env python3
import os
import sys

# Ensure repo root is on sys.path for `import sagesync_*`
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from sagesync_auth import TokenManager  # noqa: E402
from sagesync_errors import SyncError  # noqa: E402
from sagesync_http import FracttalClient  # noqa: E402
from sagesync_settings import require_settings  # noqa: E402


def main() -> None:
    s = require_settings()
    tokens = TokenManager.from_settings(s)
    client = FracttalClient.from_settings(s, tokens)
    try:
        for wh in client.list_warehouses():
            status = "active" if wh.get("active", True) else "inactive"
            print(f"{wh.get('code')} - {wh.get('description')} ({status})")
    except SyncError as e:
        print(f"fail: /warehouses -> {e}")
        sys.exit(1)
    finally:
        client.close()
        tokens.close()


if __name__ == "__main__":
    main()
