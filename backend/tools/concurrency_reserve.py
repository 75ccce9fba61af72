import argparse
import concurrent.futures
import json
import os
from uuid import uuid4

import requests

BASE = os.environ.get("FLASH_SALE_BASE", "http://127.0.0.1:8000")


def reserve_task(i, item_id, qty, actor_id):
    payload = {"userId": actor_id, "productId": item_id, "quantity": qty}
    try:
        r = requests.post(f"{BASE}/api/reservations", json=payload, timeout=20)
        return (i, r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def available(item_id):
    r = requests.get(f"{BASE}/api/products", timeout=10)
    r.raise_for_status()
    for it in r.json():
        if it["id"] == item_id:
            return it["availableQuantity"]
    return None


def run_reserve_concurrent(workers, item_id, qty, same_actor):
    before = available(item_id)
    print(f"Reserve test: workers={workers}, item={item_id}, qty={qty}, available={before}")
    shared = f"load-{uuid4().hex[:8]}"
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [
            ex.submit(reserve_task, i, item_id, qty, shared if same_actor else f"load-{i}-{uuid4().hex[:6]}")
            for i in range(workers)
        ]
        results = [f.result() for f in futures]

    ok = [r for r in results if r[1] == 200]
    rejected = [r for r in results if r[1] == 409]
    other = [r for r in results if r[1] not in (200, 409)]
    after = available(item_id)
    print(f"succeeded={len(ok)} rejected={len(rejected)} other={len(other)}")
    for r in other:
        print("  unexpected:", r)
    if before is not None:
        expected = min(workers, before // qty)
        print(f"expected successes={expected}, available after={after}")
        if len(ok) != expected or (after is not None and after < 0):
            print("OVERSELL OR LOST HOLD DETECTED")
    ids = {json.loads(r[2]).get("id") for r in ok}
    print("Distinct reservation ids:", len(ids))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fire concurrent holds at a running server.")
    parser.add_argument("--item", default="sneaker-limited")
    parser.add_argument("--qty", type=int, default=1)
    parser.add_argument("--workers", type=int, default=16)
    parser.add_argument("--same-actor", action="store_true", help="all requests from one user (merge path)")
    args = parser.parse_args()
    run_reserve_concurrent(args.workers, args.item, args.qty, args.same_actor)
