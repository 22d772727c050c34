#!/usr/bin/env python3
"""Dump an ad's raw persisted keys from the configured database."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

from adstudio.config import settings
from adstudio.services.store import AdKeys, KeyValueStore


def main():
    store = KeyValueStore(settings.database_url)
    print(f"🔍 Checking {settings.database_url}\n")

    all_ads = store.get_json(AdKeys.ALL_ADS) or []
    print(f"📋 Global ads index: {all_ads or 'No ads found'}")

    ad_ids = sys.argv[1:] or all_ads
    for ad_id in ad_ids:
        print(f"\n{'=' * 60}\n{ad_id}\n{'=' * 60}")
        keys = store.keys(prefix=f"ad:{ad_id}:")
        if not keys:
            print("  (no keys)")
            continue
        for key in keys:
            value = store.get_json(key)
            print(f"  {key}:")
            print("    " + json.dumps(value, indent=2).replace("\n", "\n    "))

    store.close()


if __name__ == "__main__":
    main()
