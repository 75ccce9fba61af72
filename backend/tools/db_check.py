import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
ACTOR = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Items / conservation ===")
cur.execute("SELECT id, name, total_quantity, available_quantity FROM items ORDER BY id")
items = cur.fetchall()
broken = 0
for item_id, name, total, available in items:
    cur.execute(
        "SELECT status, COALESCE(SUM(quantity), 0) FROM reservations WHERE item_id=? GROUP BY status",
        (item_id,),
    )
    held = dict(cur.fetchall())
    active = held.get("ACTIVE", 0)
    completed = held.get("COMPLETED", 0)
    ok = available + active + completed == total and available >= 0
    if not ok:
        broken += 1
    print(
        {
            "id": item_id,
            "name": name,
            "total": total,
            "available": available,
            "active": active,
            "completed": completed,
            "ok": ok,
        }
    )

print("\n=== Duplicate ACTIVE holds ===")
cur.execute(
    "SELECT actor_id, item_id, COUNT(*) FROM reservations WHERE status='ACTIVE' "
    "GROUP BY actor_id, item_id HAVING COUNT(*) > 1"
)
dups = cur.fetchall()
for r in dups:
    print(r)
if not dups:
    print("none")

if ACTOR:
    print(f"\n=== Reservations for actor={ACTOR} ===")
    cur.execute(
        "SELECT id, item_id, quantity, status, created_at, expires_at FROM reservations "
        "WHERE actor_id=? ORDER BY created_at DESC LIMIT 50",
        (ACTOR,),
    )
    for r in cur.fetchall():
        print(r)

conn.close()
sys.exit(1 if broken or dups else 0)
