import logging
import time
from collections.abc import Generator
from contextlib import contextmanager

from django.core.cache import cache

logger = logging.getLogger(__name__)

#: Must exceed the longest expected synchronization run.
DEFAULT_LOCK_DURATION = 60 * 60 * 4


@contextmanager
def cache_lock(
    lock_id: str,
    owner: str,
    lock_duration: int = DEFAULT_LOCK_DURATION,
) -> Generator[bool, None, None]:
    """
    Acquire a cache-backed lock for the duration of the block.

    Uses ``cache.add``, which only writes when the key is absent, so at most
    one holder exists per ``lock_id`` across every process sharing the cache.

    Yields:
        bool: True if the lock was acquired, False if someone else holds it.
    """
    acquired = False
    expires_at = time.monotonic() + lock_duration
    try:
        acquired = cache.add(lock_id, owner, lock_duration)
        if not acquired:
            logger.debug("Lock %s is held by %s", lock_id, cache.get(lock_id))
        yield acquired
    finally:
        # An expired lock may already belong to another holder
        if acquired and time.monotonic() < expires_at:
            cache.delete(lock_id)
