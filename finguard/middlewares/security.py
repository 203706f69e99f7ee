# finguard/middlewares/security.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware, Dispatcher
from aiogram.exceptions import (
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNetworkError,
    TelegramRetryAfter,
)
from aiogram.types import TelegramObject

from ..gate import SecurityGate

logger = logging.getLogger(__name__)

# command -> rate-limited action
COMMAND_ACTIONS = {
    "today": "month",
    "week": "month",
    "month": "month",
    "history": "history",
    "upgrade": "upgrade",
    "start": "start",
    "delete": "delete",
}

# callback_data prefix -> rate-limited action
CALLBACK_ACTIONS = (
    ("delete_confirm:", "delete"),
    ("upgrade_prompt", "upgrade"),
)


def resolve_action(event: TelegramObject) -> str | None:
    """
    Map an incoming message/callback to the policy name it is limited by.
    None means only the block, global and spam tiers apply.
    """
    data = getattr(event, "data", None)
    if isinstance(data, str):
        for prefix, action in CALLBACK_ACTIONS:
            if data.startswith(prefix):
                return action
        return None

    if getattr(event, "photo", None) or getattr(event, "document", None):
        return "photo"

    text = getattr(event, "text", None)
    if not text:
        return None
    if text.startswith("/"):
        # "/month@finbot 2024" -> "month"
        parts = text[1:].split(maxsplit=1)
        cmd = parts[0].split("@", 1)[0].lower() if parts else ""
        return COMMAND_ACTIONS.get(cmd)
    return "transaction"


async def safe_answer(event: TelegramObject, text: str):
    for attempt in range(3):
        try:
            return await event.answer(text)
        except TelegramRetryAfter as e:
            await asyncio.sleep(e.retry_after)
        except TelegramNetworkError:
            await asyncio.sleep(1 + attempt)
        except (TelegramBadRequest, TelegramForbiddenError) as e:
            logger.warning("[safe_answer] failed: %s: %s", type(e).__name__, e)
            return None
        except Exception as e:
            logger.warning("[safe_answer] failed: %s: %s", type(e).__name__, e)
            return None
    return None


class SecurityMiddleware(BaseMiddleware):
    """
    Outer middleware: every message and callback passes SecurityGate
    before any handler sees it. Rejected events stop here.
    """

    def __init__(self, gate: SecurityGate):
        self.gate = gate

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = data.get("event_from_user")
        actor_id = getattr(user, "id", None)

        decision = self.gate.evaluate(
            actor_id,
            resolve_action(event),
            getattr(event, "text", None),
            getattr(user, "username", None),
        )
        data["security_decision"] = decision

        if decision.admitted:
            return await handler(event, data)

        # blocked users get no reply at all
        if decision.notice:
            await safe_answer(event, decision.notice)
        return None


def setup_security(dp: Dispatcher, gate: SecurityGate) -> SecurityMiddleware:
    mw = SecurityMiddleware(gate)
    dp.message.outer_middleware(mw)
    dp.callback_query.outer_middleware(mw)
    return mw
