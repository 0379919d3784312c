import threading
import time

from services.locks import KeyedLock
from services.utils import utcnow


def test_lock_entries_are_released_after_use():
    registry = KeyedLock()
    for package_id in range(50):
        with registry.hold(("package", package_id)):
            assert len(registry) == 1
    assert len(registry) == 0


def test_same_key_is_mutually_exclusive():
    registry = KeyedLock()
    inside = []
    overlaps = []

    def worker():
        with registry.hold(("package", 1)):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert len(registry) == 0


def test_error_inside_hold_still_releases_the_key():
    registry = KeyedLock()
    try:
        with registry.hold("bill"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert len(registry) == 0
    with registry.hold("bill"):
        pass


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None
