# finguard/gate.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .audit import AuditSink
from .config import SecurityConfig
from .utils.antispam import SpamDetector, SpamReason
from .utils.blocklist import BlockRegistry
from .utils.clock import Clock, MonotonicClock
from .utils.eventlog import log_event
from .utils.ratelimit import GlobalThrottle, SlidingWindowLimiter
from .utils.store import SecurityStore

logger = logging.getLogger(__name__)

THROTTLE_NOTICE = "⏳ Terlalu banyak request. Tunggu {minutes} menit."
SPAM_NOTICE = "⚠️ Aktivitas mencurigakan terdeteksi. Anda diblokir sementara."


class DecisionKind(str, Enum):
    ADMIT = "admitted"
    REJECT_BLOCKED = "blocked"
    REJECT_GLOBAL_LIMIT = "global_limited"
    REJECT_SPAM = "spam_blocked"
    REJECT_ACTION_LIMIT = "action_limited"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    notice: Optional[str] = None        # text for the user; None means stay silent
    wait_minutes: Optional[int] = None
    reason: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.kind is DecisionKind.ADMIT


ADMIT = Decision(DecisionKind.ADMIT)
REJECT_BLOCKED = Decision(DecisionKind.REJECT_BLOCKED)


def wait_minutes(window_ms: int) -> int:
    return max(1, math.ceil(window_ms / 60_000))


class SecurityGate:
    """
    Single admission decision per incoming event. First match wins:

      1. no actor id            -> admit (fail-open)
      2. actor blocked          -> reject silently
      3. global tier exceeded   -> reject with notice
      4. text flagged as spam   -> block actor, audit, reject with notice
      5. action tier exceeded   -> reject with notice
      6. otherwise              -> admit

    Admins skip 3-5 but are still subject to explicit blocks.
    """

    def __init__(self, config: SecurityConfig, store: SecurityStore | None = None,
                 clock: Clock | None = None, audit: AuditSink | None = None):
        self.config = config
        self.store = store if store is not None else SecurityStore()
        self.clock = clock if clock is not None else MonotonicClock()
        self.audit = audit

        self.limiter = SlidingWindowLimiter(self.store, config, self.clock)
        self.throttle = GlobalThrottle(self.store, config, self.clock)
        self.spam = SpamDetector(self.store, config.spam, self.clock)
        self.blocks = BlockRegistry(self.store, self.clock)

    def is_admin(self, actor_id: Optional[int]) -> bool:
        return actor_id is not None and actor_id in self.config.admin_ids

    def evaluate(self, actor_id: Optional[int], action: Optional[str] = None,
                 text: Optional[str] = None, username: Optional[str] = None) -> Decision:
        if not actor_id:
            return ADMIT

        if self.blocks.is_blocked(actor_id):
            log_event("security_blocked_access", user=actor_id)
            return REJECT_BLOCKED

        if self.is_admin(actor_id):
            return ADMIT

        if not self.throttle.allow(actor_id):
            log_event("security_global_limit", user=actor_id, count=self.throttle.count(actor_id))
            minutes = wait_minutes(self.config.global_policy.window_ms)
            return Decision(
                DecisionKind.REJECT_GLOBAL_LIMIT,
                notice=THROTTLE_NOTICE.format(minutes=minutes),
                wait_minutes=minutes,
            )

        if text:
            verdict = self.spam.check(actor_id, text)
            if verdict.is_spam:
                return self._punish_spam(actor_id, verdict.reason, username)

        if action and not self.limiter.allow(actor_id, action):
            log_event("security_action_limit", user=actor_id, action=action)
            minutes = wait_minutes(self.config.policy_for(action).window_ms)
            return Decision(
                DecisionKind.REJECT_ACTION_LIMIT,
                notice=THROTTLE_NOTICE.format(minutes=minutes),
                wait_minutes=minutes,
                reason=action,
            )

        return ADMIT

    def _punish_spam(self, actor_id: int, reason: SpamReason, username: Optional[str]) -> Decision:
        duration_ms = self.config.spam.block_duration_ms
        log_event("security_spam_detected", logging.WARNING, user=actor_id, reason=reason.value)
        self.blocks.block(actor_id, duration_ms)
        self.record_audit(actor_id, None, "spam_detected", {
            "telegramId": actor_id,
            "reason": reason.value,
            "username": username,
        })
        return Decision(
            DecisionKind.REJECT_SPAM,
            notice=SPAM_NOTICE,
            wait_minutes=wait_minutes(duration_ms),
            reason=reason.value,
        )

    # ── admin hooks ──

    def is_blocked(self, actor_id: int) -> bool:
        return self.blocks.is_blocked(actor_id)

    def block_actor(self, actor_id: int, duration_ms: Optional[int] = None,
                    admin_id: Optional[int] = None) -> int:
        if duration_ms is None:
            duration_ms = self.config.spam.block_duration_ms
        expiry = self.blocks.block(actor_id, duration_ms)
        self.record_audit(actor_id, admin_id, "manual_block", {"durationMs": duration_ms})
        return expiry

    def unblock_actor(self, actor_id: int, admin_id: Optional[int] = None) -> bool:
        removed = self.blocks.unblock(actor_id)
        if removed:
            self.record_audit(actor_id, admin_id, "manual_unblock", {})
        return removed

    def record_audit(self, actor_id, admin_id, event_type: str, details: dict[str, Any]) -> None:
        if self.audit is None:
            return
        try:
            self.audit.record(actor_id, admin_id, event_type, details)
        except Exception:
            logger.exception("Failed to log %s event for user %s", event_type, actor_id)
