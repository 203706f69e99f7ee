# finguard/utils/janitor.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..config import SecurityConfig
from .antispam import prune_record
from .clock import Clock
from .eventlog import log_event
from .ratelimit import count_stale
from .store import SecurityStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    request_logs: int = 0
    counters: int = 0
    spam: int = 0
    blocks: int = 0

    @property
    def total(self) -> int:
        return self.request_logs + self.counters + self.spam + self.blocks


class Janitor:
    """
    Periodic sweep over SecurityStore:
      - request logs: drop timestamps outside the action window, drop empty logs
      - global counters: drop when idle for longer than the global window
      - spam records: drop fingerprints outside the window, drop empty records
      - blocks: drop expired entries

    The periodic pass runs in a worker thread. Keys are snapshotted first
    and each key is evicted under its store lock on its own, so admission
    checks on the event loop only ever wait for one key.
    """

    def __init__(self, store: SecurityStore, config: SecurityConfig, clock: Clock,
                 interval_sec: Optional[float] = None):
        self.store = store
        self.config = config
        self.clock = clock
        self.interval_sec = float(interval_sec if interval_sec is not None else config.sweep_interval_sec)
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._runner())

    async def stop(self) -> None:
        """
        Stop the timer. A sweep already in progress runs to completion.
        """
        task = self._task
        if task is None:
            return
        if self._stopping is not None:
            self._stopping.set()
        await task
        self._task = None

    async def _runner(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_sec)
                return
            except asyncio.TimeoutError:
                pass
            try:
                # off-loop; the per-store locks keep admission checks consistent
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("[janitor] sweep failed")

    def sweep(self) -> SweepResult:
        now = self.clock.now()
        res = SweepResult(
            request_logs=self._sweep_request_logs(now),
            counters=self._sweep_counters(now),
            spam=self._sweep_spam(now),
            blocks=self._sweep_blocks(now),
        )
        log_event(
            "security_sweep",
            removed=res.total,
            request_logs=res.request_logs,
            counters=res.counters,
            spam=res.spam,
            blocks=res.blocks,
            actors=len(self.store.actor_ids()),
        )
        return res

    def _sweep_request_logs(self, now: int) -> int:
        removed = 0
        with self.store.request_lock:
            keys = list(self.store.request_logs.keys())
        for key in keys:
            window_ms = self.config.policy_for(key[1]).window_ms
            with self.store.request_lock:
                log = self.store.request_logs.get(key)
                if log is None:
                    continue
                for _ in range(count_stale(log, now, window_ms)):
                    log.popleft()
                if not log:
                    del self.store.request_logs[key]
                    removed += 1
        return removed

    def _sweep_counters(self, now: int) -> int:
        removed = 0
        window_ms = self.config.global_policy.window_ms
        with self.store.counters_lock:
            keys = list(self.store.counters.keys())
        for key in keys:
            with self.store.counters_lock:
                counter = self.store.counters.get(key)
                # an idle counter would be reset by its next request anyway
                if counter is not None and now - counter.last_request > window_ms:
                    del self.store.counters[key]
                    removed += 1
        return removed

    def _sweep_spam(self, now: int) -> int:
        removed = 0
        window_ms = self.config.spam.window_ms
        with self.store.spam_lock:
            keys = list(self.store.spam.keys())
        for key in keys:
            with self.store.spam_lock:
                rec = self.store.spam.get(key)
                if rec is None:
                    continue
                prune_record(rec, now, window_ms)
                if not rec.entries:
                    del self.store.spam[key]
                    removed += 1
        return removed

    def _sweep_blocks(self, now: int) -> int:
        removed = 0
        with self.store.blocks_lock:
            keys = list(self.store.blocks.keys())
        for key in keys:
            with self.store.blocks_lock:
                expiry = self.store.blocks.get(key)
                expired = expiry is not None and now > expiry
                if expired:
                    del self.store.blocks[key]
                    removed += 1
            if expired:
                log_event("security_unblock", user=key, reason="expired")
        return removed
