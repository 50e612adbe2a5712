#!/usr/bin/env python3
"""Script to purge cached APOD records from the key-value store.

Usage:
  python scripts/clear_cache.py [--force] [--expired-only]
"""

import argparse
import os
import sys
import time
from pathlib import Path

# Add project root to sys.path so we can import backend packages
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from backend.core.apod_service import purge_cache
from backend.core.kv_store import KeyValueStore
from backend.core.settings import StorageKeys


def main():
    parser = argparse.ArgumentParser(description="Purge the Cosmic Lens APOD cache.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")
    parser.add_argument("--expired-only", action="store_true",
                        help="Only remove entries older than the cache TTL (and corrupt ones)")
    args = parser.parse_args()

    load_dotenv(project_root / ".env")

    database_url = os.environ.get("DATABASE_URL", "sqlite:///data/cosmic_lens.sqlite")
    store = KeyValueStore(database_url)
    try:
        cached = store.keys(prefix=StorageKeys.CACHE_PREFIX)
        print(f"Found {len(cached)} cached record(s).")
        if not cached:
            return

        if not args.force:
            scope = "expired" if args.expired_only else "ALL"
            confirm = input(f"  This will delete {scope} cached records. Continue? [y/N]: ")
            if confirm.lower() != "y":
                print("  Skipping cache purge.")
                return

        removed = purge_cache(store, time.time(), expired_only=args.expired_only)
        print(f"Removed {removed} record(s).")
    finally:
        store.dispose()


if __name__ == "__main__":
    main()
