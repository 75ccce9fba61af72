#!/usr/bin/env python3
"""
Seed (or update) catalog items from a JSON file, or load the built-in demo
catalog when no file is given. Existing items keep their reservations;
changing an item's quantity moves its available stock by the same amount.

Usage:
    python scripts/seed_catalog.py --file catalog.json
    python scripts/seed_catalog.py            # demo catalog

Each entry: {"id": "...", "name": "...", "price": "12.99" | "price_cents": 1299, "quantity": 5}
"""
import argparse
import json
import os
import sys

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from flash_sale.db import SessionLocal, init_db
from flash_sale.services.admin_service import DEFAULT_CATALOG, load_catalog


def _normalize_entry(entry):
    """Return a dict with keys: id, name, price_cents, quantity"""
    item_id = entry.get("id") or entry.get("sku") or entry.get("productId")
    if not item_id:
        return None
    if entry.get("price_cents") is not None:
        price_cents = int(entry["price_cents"])
    else:
        price_cents = int(round(float(entry.get("price", 0) or 0) * 100))
    quantity = entry.get("quantity", entry.get("stock", entry.get("availableStock", 0)))
    return {
        "id": str(item_id),
        "name": entry.get("name") or entry.get("title") or str(item_id),
        "price_cents": price_cents,
        "quantity": int(quantity or 0),
    }


def read_catalog(path):
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("items") or data.get("products") or []
    entries = [_normalize_entry(e) for e in data]
    return [e for e in entries if e]


def seed(catalog):
    init_db(seed=False)
    count = load_catalog(SessionLocal, catalog)
    print("Seeded items:", count)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="Path to a JSON list of catalog entries")
    args = parser.parse_args()
    if args.file is None:
        seed(DEFAULT_CATALOG)
    elif not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    else:
        seed(read_catalog(args.file))
