# finguard/utils/store.py
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Tuple


@dataclass
class GlobalCounter:
    count: int
    window_start: int
    last_request: int


@dataclass
class SpamRecord:
    # (fingerprint, timestamp_ms), oldest first
    entries: Deque[Tuple[str, int]] = field(default_factory=deque)
    last_message: int = 0


class SecurityStore:
    """
    Process-local state shared by the limiters, the spam detector,
    the block registry and the janitor.

      request_logs: (actor_id, action) -> deque of timestamps (ms)
      counters:     actor_id -> GlobalCounter
      spam:         actor_id -> SpamRecord
      blocks:       actor_id -> expiry (ms)

    Every map has its own lock. Hold it only for a single key's
    read-modify-write; never across an await.
    """

    def __init__(self):
        self.request_logs: Dict[Tuple[int, str], Deque[int]] = {}
        self.counters: Dict[int, GlobalCounter] = {}
        self.spam: Dict[int, SpamRecord] = {}
        self.blocks: Dict[int, int] = {}

        self.request_lock = threading.Lock()
        self.counters_lock = threading.Lock()
        self.spam_lock = threading.Lock()
        self.blocks_lock = threading.Lock()

    def sizes(self) -> dict[str, int]:
        with self.request_lock:
            request_logs = len(self.request_logs)
        with self.counters_lock:
            counters = len(self.counters)
        with self.spam_lock:
            spam = len(self.spam)
        with self.blocks_lock:
            blocks = len(self.blocks)
        return {
            "request_logs": request_logs,
            "counters": counters,
            "spam": spam,
            "blocks": blocks,
        }

    def actor_ids(self) -> set[int]:
        # one map at a time; each copy is taken under that map's lock
        with self.request_lock:
            ids = {actor_id for actor_id, _ in self.request_logs}
        with self.counters_lock:
            ids.update(self.counters)
        with self.spam_lock:
            ids.update(self.spam)
        with self.blocks_lock:
            ids.update(self.blocks)
        return ids

