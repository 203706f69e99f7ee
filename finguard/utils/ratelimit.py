# finguard/utils/ratelimit.py
from __future__ import annotations

from collections import deque

from ..config import SecurityConfig
from .clock import Clock
from .store import GlobalCounter, SecurityStore


class SlidingWindowLimiter:
    """
    Sliding window per action:
      key = (actor_id, action)
      value = deque of timestamps (ms), oldest first

    A timestamp counts while now - ts < window_ms.
    A rejected call leaves the deque untouched, so probing at the
    limit never consumes quota.
    """

    def __init__(self, store: SecurityStore, config: SecurityConfig, clock: Clock):
        self.store = store
        self.config = config
        self.clock = clock

    def allow(self, actor_id: int, action: str) -> bool:
        policy = self.config.policy_for(action)
        now = self.clock.now()
        key = (actor_id, action)

        with self.store.request_lock:
            log = self.store.request_logs.get(key)
            stale = count_stale(log, now, policy.window_ms)
            active = (len(log) - stale) if log else 0

            if active >= policy.limit:
                return False

            if log is None:
                log = deque()
                self.store.request_logs[key] = log
            for _ in range(stale):
                log.popleft()
            log.append(now)
            return True

    def remaining(self, actor_id: int, action: str) -> int:
        policy = self.config.policy_for(action)
        now = self.clock.now()
        with self.store.request_lock:
            log = self.store.request_logs.get((actor_id, action))
            if not log:
                return policy.limit
            active = len(log) - count_stale(log, now, policy.window_ms)
        return max(0, policy.limit - active)


def count_stale(log, now: int, window_ms: int) -> int:
    if not log:
        return 0
    stale = 0
    for ts in log:
        if now - ts < window_ms:
            break
        stale += 1
    return stale


class GlobalThrottle:
    """
    One counter per actor across every action, in fixed windows.

    The window resets wholesale once now - window_start > window_ms.
    Count-then-check: the request that crosses the limit is still
    counted, unlike SlidingWindowLimiter.
    """

    def __init__(self, store: SecurityStore, config: SecurityConfig, clock: Clock):
        self.store = store
        self.config = config
        self.clock = clock

    def allow(self, actor_id: int) -> bool:
        policy = self.config.global_policy
        now = self.clock.now()

        with self.store.counters_lock:
            counter = self.store.counters.get(actor_id)
            if counter is None:
                counter = GlobalCounter(count=0, window_start=now, last_request=now)
                self.store.counters[actor_id] = counter

            if now - counter.window_start > policy.window_ms:
                counter.count = 0
                counter.window_start = now

            counter.count += 1
            counter.last_request = now
            return counter.count <= policy.limit

    def count(self, actor_id: int) -> int:
        with self.store.counters_lock:
            counter = self.store.counters.get(actor_id)
            return counter.count if counter else 0
