"""
Background scheduler for Jukebox Mixer.
Periodically dispatches one reorder cycle per active owner to a thread pool.
"""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from jukebox.services.reorder import ReorderOutcome


logger = logging.getLogger(__name__)


class JukeboxScheduler:
    """Fixed-rate trigger; an owner whose last cycle is still running is skipped"""

    def __init__(self, owners, engine, votes=None, interval_seconds=10, max_workers=4,
                 wait=None, clock=time.monotonic):
        self.owners = owners
        self.engine = engine
        self.votes = votes
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._stop_event = threading.Event()
        self.wait = wait or self._stop_event.wait
        self.max_workers = max_workers
        self._executor = None
        self._inflight = {}
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def tick(self):
        """Run one scheduling pass and return the futures it submitted"""
        if self.votes is not None:
            try:
                self.votes.purge_expired()
            except Exception as e:
                logger.warning(f"Vote purge failed: {e}")

        try:
            owners = self.owners.active_owners()
        except Exception as e:
            logger.error(f"Could not load active owners: {e}")
            return []

        futures = []
        for owner in owners:
            owner_id = owner.spotify_user_id
            previous = self._inflight.get(owner_id)
            if previous is not None and not previous.done():
                logger.info(f"Reorder skipped for {owner_id}: busy")
                continue
            try:
                future = self._pool().submit(self._run_owner, owner_id)
            except RuntimeError as e:
                logger.error(f"Could not dispatch reorder for {owner_id}: {e}")
                continue
            self._inflight[owner_id] = future
            futures.append(future)
        return futures

    def _pool(self):
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="jukebox-reorder")
        return self._executor

    def _run_owner(self, owner_id):
        try:
            return self.engine.run_cycle(owner_id)
        except Exception as e:
            logger.exception(f"Reorder cycle crashed for {owner_id}: {e}")
            return ReorderOutcome.FAILED

    def _loop(self):
        logger.info(f"Jukebox scheduler started (every {self.interval_seconds}s)")
        while not self._stop_event.is_set():
            started = self.clock()
            self.tick()
            remaining = max(self.interval_seconds - (self.clock() - started), 0)
            if self.wait(remaining):
                break
        logger.info("Jukebox scheduler stopped")

    def start(self):
        if self.running:
            return self._thread
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="jukebox-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout=5):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._inflight.clear()
