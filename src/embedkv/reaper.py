"""Background removal of expired keys.

Reads already treat expired keys as absent; the reaper only reclaims memory
held by keys nobody touches again.
"""

import random

from embedkv.observability import emit_counter, get_logger
from embedkv.scheduling import PeriodicTask
from embedkv.store import EntryStore, reap_if_expired

logger = get_logger(__name__)


class ExpiryReaper:
    """Periodically samples keys with a TTL and removes expired ones.

    Each candidate is removed under its own key lock after re-checking the
    expiry, so a key rewritten or deleted meanwhile is left alone.
    """

    def __init__(
        self,
        store: EntryStore,
        interval: float = 1.0,
        sample_size: int = 20,
        repeat_threshold: float = 0.25,
        max_rounds: int = 16,
    ) -> None:
        """Initialize reaper.

        Args:
            store: Store to sweep
            interval: Seconds between sweeps
            sample_size: Keys examined per round
            repeat_threshold: Run another round while more than this
                fraction of a sample was expired
            max_rounds: Upper bound on rounds per sweep
        """
        self.store = store
        self.sample_size = sample_size
        self.repeat_threshold = repeat_threshold
        self.max_rounds = max_rounds
        self.removed_total = 0
        self._task = PeriodicTask(interval, self.sweep, name="expiry-reaper")

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    async def sweep(self) -> int:
        """Run one sweep. Returns the number of keys removed."""
        removed = 0
        for _ in range(self.max_rounds):
            keys = self.store.expiring_keys()
            if not keys:
                break
            sample = random.sample(keys, min(self.sample_size, len(keys)))
            expired = 0
            for key in sample:
                if await self.store.execute([key], reap_if_expired, key):
                    expired += 1
            removed += expired
            if expired <= len(sample) * self.repeat_threshold:
                break

        if removed:
            self.removed_total += removed
            emit_counter("reaper.removed", {"count": removed})
            logger.debug("Expired keys reaped", context={"removed": removed})
        return removed
