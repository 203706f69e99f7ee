# access.py
import logging

from aiogram.filters import Filter
from aiogram.types import Message

from ..gate import SecurityGate
from .eventlog import log_event
from .moderation import sanitize_input

logger = logging.getLogger(__name__)


def is_admin(user_id: int | None, gate: SecurityGate) -> bool:
    if not user_id:
        return False
    return gate.is_admin(user_id)


class AdminFilter(Filter):
    """
    Lets a message through only for ids on the ADMIN_IDS allowlist.
    Anyone else gets "Unauthorized" and an audit record.
    """

    async def __call__(self, message: Message, gate: SecurityGate) -> bool:
        user = message.from_user
        user_id = user.id if user else None
        if is_admin(user_id, gate):
            return True

        command = sanitize_input(message.text)
        log_event("security_unauthorized_admin", user=user_id, command=command)
        gate.record_audit(None, user_id, "unauthorized_admin_attempt", {
            "command": command,
            "username": user.username if user else None,
        })
        try:
            await message.answer("⛔️ Unauthorized")
        except Exception as e:
            logger.warning("[AdminFilter] cannot answer user %s: %s", user_id, e)
        return False
