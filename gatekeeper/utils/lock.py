import asyncio
from collections.abc import Hashable
from weakref import WeakValueDictionary

from gatekeeper.log import get_logger

log = get_logger(__name__)


class KeyedLock:
    """
    Hand out one `asyncio.Lock` per key.

    Locks are held in a `WeakValueDictionary`, so a key's lock is discarded as soon as nobody
    holds or waits on it any more and idle keys do not accumulate.

    Operations on different keys never contend with each other.
    """

    def __init__(self, namespace: str):
        self.namespace = namespace
        self._locks: WeakValueDictionary[Hashable, asyncio.Lock] = WeakValueDictionary()

    def __call__(self, key: Hashable) -> asyncio.Lock:
        """Return the lock for `key`, creating one if it doesn't exist yet."""
        log.trace(f"Getting the lock object for resource {self.namespace!r}:{key!r}")
        return self._locks.setdefault(key, asyncio.Lock())
