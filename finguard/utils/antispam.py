# finguard/utils/antispam.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import SpamPolicy
from .clock import Clock
from .moderation import text_fingerprint
from .store import SecurityStore, SpamRecord


class SpamReason(str, Enum):
    REPEATED_MESSAGE = "repeated_message"
    FLOOD = "flood"


@dataclass(frozen=True)
class SpamVerdict:
    is_spam: bool
    reason: Optional[SpamReason] = None


NOT_SPAM = SpamVerdict(is_spam=False)


class SpamDetector:
    """
    Per-actor window of recent message fingerprints.

      repeated_message: this message would be the max_similar_messages-th
                        with the same fingerprint in the window
      flood:            this message would be the max_messages_per_window-th
                        message of any kind in the window

    Both checks run before the message is recorded, so a flagged
    message is never added. Blocking is the caller's job.
    """

    def __init__(self, store: SecurityStore, policy: SpamPolicy, clock: Clock):
        self.store = store
        self.policy = policy
        self.clock = clock

    def check(self, actor_id: int, text: str | None) -> SpamVerdict:
        fp = text_fingerprint(text or "")
        now = self.clock.now()

        with self.store.spam_lock:
            rec = self.store.spam.get(actor_id)
            if rec is None:
                rec = SpamRecord(last_message=now)
                self.store.spam[actor_id] = rec

            prune_record(rec, now, self.policy.window_ms)

            # counts include the incoming message
            same = 1 + sum(1 for h, _ in rec.entries if h == fp)
            if same >= self.policy.max_similar_messages:
                return SpamVerdict(True, SpamReason.REPEATED_MESSAGE)

            if len(rec.entries) + 1 >= self.policy.max_messages_per_window:
                return SpamVerdict(True, SpamReason.FLOOD)

            rec.entries.append((fp, now))
            rec.last_message = now
            return NOT_SPAM


def prune_record(rec: SpamRecord, now: int, window_ms: int) -> None:
    while rec.entries and now - rec.entries[0][1] >= window_ms:
        rec.entries.popleft()
