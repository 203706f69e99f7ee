# finguard/utils/blocklist.py
from __future__ import annotations

from typing import Optional

from .clock import Clock
from .eventlog import log_event
from .store import SecurityStore


class BlockRegistry:
    """
    actor_id -> expiry (ms). Blocked iff an entry exists and now <= expiry.

    Expired entries are dropped lazily on read and by the janitor;
    readers never depend on the janitor having run.
    """

    def __init__(self, store: SecurityStore, clock: Clock):
        self.store = store
        self.clock = clock

    def block(self, actor_id: int, duration_ms: int) -> int:
        # re-blocking overwrites; it never stacks on the old expiry
        expiry = self.clock.now() + int(duration_ms)
        with self.store.blocks_lock:
            self.store.blocks[actor_id] = expiry
        log_event("security_block", user=actor_id, seconds=duration_ms / 1000)
        return expiry

    def unblock(self, actor_id: int) -> bool:
        with self.store.blocks_lock:
            removed = self.store.blocks.pop(actor_id, None) is not None
        if removed:
            log_event("security_unblock", user=actor_id)
        return removed

    def is_blocked(self, actor_id: int) -> bool:
        now = self.clock.now()
        with self.store.blocks_lock:
            expiry = self.store.blocks.get(actor_id)
            if expiry is None:
                return False
            if now > expiry:
                del self.store.blocks[actor_id]
                return False
            return True

    def expires_at(self, actor_id: int) -> Optional[int]:
        """Expiry of an active block, or None."""
        now = self.clock.now()
        with self.store.blocks_lock:
            expiry = self.store.blocks.get(actor_id)
        if expiry is None or now > expiry:
            return None
        return expiry
