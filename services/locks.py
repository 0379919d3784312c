"""
Per-key mutual exclusion for writers inside this process.
Row locks (SELECT ... FOR UPDATE) cover multi-process deployments on PostgreSQL;
this registry covers SQLite, which ignores FOR UPDATE.
"""
import threading
from contextlib import contextmanager


class KeyedLock:
    """One lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, holders and waiters]

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


locks = KeyedLock()


def package_lock(package_id):
    return locks.hold(("package", package_id))


def bill_lock(bill_id):
    return locks.hold(("bill", bill_id))


def student_lock(student_id):
    return locks.hold(("student", student_id))
