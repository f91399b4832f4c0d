"""Keyed critical sections for check-then-write operations.

Cart mutations hold the lock of every product they reserve, and order
transitions hold the lock of the order they change. Commands are processed
*inside* the held locks so the unit of work commits before another caller
can read the same state.

Keys are plain tuples such as ("product", "prod-1") or ("order", "ord-1").
"""

from contextlib import contextmanager
from threading import Lock, RLock

from protean.utils.globals import current_domain


def product_key(product_id) -> tuple:
    return ("product", str(product_id))


def order_key(order_id) -> tuple:
    return ("order", str(order_id))


def cart_key(customer_id) -> tuple:
    return ("cart", str(customer_id))


class KeyedLock:
    """A registry of re-entrant locks, one per key.

    Several keys are always acquired in sorted order, so two callers that
    need overlapping key sets cannot deadlock each other. A key's lock is
    dropped from the registry once nobody holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[tuple, RLock] = {}
        self._holders: dict[tuple, int] = {}

    def _checkout(self, key: tuple) -> RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            self._holders[key] = self._holders.get(key, 0) + 1
            return lock

    def _checkin(self, key: tuple) -> None:
        with self._guard:
            remaining = self._holders[key] - 1
            if remaining:
                self._holders[key] = remaining
            else:
                del self._holders[key]
                del self._locks[key]

    @contextmanager
    def hold(self, *keys):
        ordered = sorted(set(keys))
        acquired = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                lock.acquire()
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_locks = KeyedLock()


def get_locks() -> KeyedLock:
    return _locks


def process_exclusively(command, *keys):
    """Process ``command`` synchronously while holding ``keys``."""
    with _locks.hold(*keys):
        return current_domain.process(command, asynchronous=False)
