import os
import re
from contextlib import contextmanager
from typing import Iterator, Optional

from filelock import FileLock, Timeout

from flash_sale.config import settings
from flash_sale.services.errors import LockTimeout

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class RowLocks:
    """
    Per-row exclusive locks backed by lock files, one file per (kind, key). Keys
    must come from a bounded set (item ids): filelock never removes the files.

    These complement SELECT ... FOR UPDATE: on databases that ignore row
    locks (SQLite) they are the only serialization, elsewhere they keep
    waiting callers off the database connection. Locking item A never
    blocks item B.
    """

    def __init__(self, lock_dir: Optional[str] = None, timeout: Optional[float] = None):
        self.lock_dir = os.path.join(lock_dir or settings.LOCK_DIR, "flash_sale_locks")
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        os.makedirs(self.lock_dir, exist_ok=True)

    def _path(self, kind: str, key: str) -> str:
        return os.path.join(self.lock_dir, f"{kind}_{_UNSAFE.sub('_', str(key))}.lock")

    @contextmanager
    def hold(self, kind: str, key: str) -> Iterator[None]:
        lock = FileLock(self._path(kind, key))
        try:
            lock.acquire(timeout=self.timeout)
        except Timeout:
            raise LockTimeout(kind, key, self.timeout) from None
        try:
            yield
        finally:
            lock.release()

    def item(self, item_id: str):
        return self.hold("item", item_id)
