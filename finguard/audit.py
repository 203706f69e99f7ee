# finguard/audit.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from .db import DB

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record(self, actor_id: Optional[int], admin_id: Optional[int], event_type: str,
               details: dict[str, Any]) -> None:
        ...


@dataclass
class AuditRecord:
    actor_id: Optional[int]
    admin_id: Optional[int]
    event_type: str
    details: dict[str, Any] = field(default_factory=dict)


class MemoryAuditSink:
    """Keeps records in a list. For tests and for running without a database."""

    def __init__(self):
        self.records: list[AuditRecord] = []

    def record(self, actor_id, admin_id, event_type, details) -> None:
        self.records.append(AuditRecord(actor_id, admin_id, event_type, dict(details or {})))

    def of_type(self, event_type: str) -> list[AuditRecord]:
        return [r for r in self.records if r.event_type == event_type]


class DbAuditSink:
    """
    Writes audit rows in the background.

    record() only schedules the insert on the running loop, so the
    admission path never waits for the database. Write failures are
    logged here and go no further.
    """

    def __init__(self, db: DB):
        self.db = db
        self._pending: set[asyncio.Task] = set()

    def record(self, actor_id, admin_id, event_type, details) -> None:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._write(actor_id, admin_id, event_type, dict(details or {})))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, actor_id, admin_id, event_type, details) -> None:
        try:
            await self.db.log_audit(actor_id, admin_id, event_type, details)
        except Exception:
            logger.exception("[audit] failed to log %s for user %s", event_type, actor_id)

    async def drain(self) -> None:
        """Wait for scheduled writes. Called on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
