import asyncio
import logging
import time
from typing import Callable, Optional

from models import SweepResult
from token_store import ACCESS_TOKENS, AUTHORIZATION_CODES, TokenStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3600  # 1 hour
ERROR_BACKOFF = 60


class ExpirySweeper:
    """
    Periodically purges expired codes and tokens from a TokenStore.

    Verification already rejects expired entries on touch; the sweep only keeps
    abandoned entries from accumulating. ``sweep()`` runs a single pass and is
    what tests call. ``start()``/``stop()`` manage the background loop.
    """

    def __init__(self, store: TokenStore, interval: float = DEFAULT_INTERVAL,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> SweepResult:
        now = self.clock()
        return SweepResult(
            codes_removed=self._purge(AUTHORIZATION_CODES, now),
            tokens_removed=self._purge(ACCESS_TOKENS, now),
        )

    def _purge(self, mapping: str, now: float) -> int:
        removed = 0
        for key, entry in self.store.expired(mapping, now):
            # Skips keys that were consumed or replaced since the snapshot
            if self.store.compare_and_delete(mapping, key, entry):
                removed += 1
        return removed

    def start(self) -> asyncio.Task:
        """Schedule the sweep loop on the running event loop and return its handle"""
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._run(), name="expiry-sweeper")
        logger.info(f"Expiry sweeper started (interval {self.interval}s)")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Expiry sweeper stopped")

    async def _run(self):
        while True:
            try:
                # Off the event loop; TokenStore locks are thread locks
                result = await asyncio.to_thread(self.sweep)
                if result.total:
                    logger.info(f"Cleaned up {result.codes_removed} codes, {result.tokens_removed} tokens")
                await asyncio.sleep(self.interval)
            except Exception as e:
                logger.error(f"Error in cleanup task: {e}")
                await asyncio.sleep(min(self.interval, ERROR_BACKOFF))
