import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from aiogram import Dispatcher
from aiogram.exceptions import TelegramServerError
from aiogram.filters import CommandObject
from aiogram.methods import SendMessage

from finguard.gate import DecisionKind
from finguard.handlers.admin import cmd_block, cmd_blockstatus, cmd_unblock
from finguard.middlewares.security import SecurityMiddleware, resolve_action, setup_security
from finguard.utils.access import AdminFilter, is_admin

ADMIN_ID = 999


def _message(text=None, user_id=1, username="budi", **extra):
    return SimpleNamespace(
        text=text,
        from_user=SimpleNamespace(id=user_id, username=username),
        answer=AsyncMock(),
        **extra,
    )


def _run(mw, event, user=None):
    handler = AsyncMock(return_value="handled")
    data = {"event_from_user": user if user is not None else getattr(event, "from_user", None)}
    result = asyncio.run(mw(handler, event, data))
    return result, handler, data


@pytest.mark.parametrize("text,expected", [
    ("/today", "month"),
    ("/week", "month"),
    ("/month", "month"),
    ("/history 10", "history"),
    ("/upgrade", "upgrade"),
    ("/UPGRADE@finbot_bot", "upgrade"),
    ("/start", "start"),
    ("/delete 5", "delete"),
    ("/help", None),
    ("/", None),
    ("beli kopi 20rb", "transaction"),
    ("", None),
    (None, None),
])
def test_resolve_action_for_messages(text, expected):
    assert resolve_action(SimpleNamespace(text=text)) == expected


def test_resolve_action_for_media_and_callbacks():
    assert resolve_action(SimpleNamespace(text=None, photo=[object()])) == "photo"
    assert resolve_action(SimpleNamespace(text=None, document=object())) == "photo"
    assert resolve_action(SimpleNamespace(data="delete_confirm:12")) == "delete"
    assert resolve_action(SimpleNamespace(data="upgrade_prompt")) == "upgrade"
    assert resolve_action(SimpleNamespace(data="delete_cancel")) is None


def test_admitted_event_reaches_handler(gate):
    mw = SecurityMiddleware(gate)
    event = _message("beli kopi 20rb")

    result, handler, data = _run(mw, event)

    assert result == "handled"
    handler.assert_awaited_once()
    assert data["security_decision"].kind is DecisionKind.ADMIT
    event.answer.assert_not_awaited()


def test_action_limited_event_gets_notice(gate):
    mw = SecurityMiddleware(gate)
    for _ in range(3):
        _run(mw, _message("/upgrade"))

    event = _message("/upgrade")
    result, handler, data = _run(mw, event)

    assert result is None
    handler.assert_not_awaited()
    event.answer.assert_awaited_once_with("⏳ Terlalu banyak request. Tunggu 60 menit.")
    assert data["security_decision"].kind is DecisionKind.REJECT_ACTION_LIMIT


def test_notice_delivery_error_is_logged_not_raised(gate, caplog):
    mw = SecurityMiddleware(gate)
    for _ in range(3):
        _run(mw, _message("/upgrade"))

    event = _message("/upgrade")
    event.answer = AsyncMock(side_effect=TelegramServerError(
        method=SendMessage(chat_id=1, text="x"), message="Bad Gateway",
    ))
    result, handler, data = _run(mw, event)

    assert result is None
    handler.assert_not_awaited()
    event.answer.assert_awaited_once()
    assert data["security_decision"].kind is DecisionKind.REJECT_ACTION_LIMIT
    assert "TelegramServerError" in caplog.text


def test_spam_blocks_then_goes_silent(gate, audit):
    mw = SecurityMiddleware(gate)
    for _ in range(4):
        _run(mw, _message("spam", user_id=7, username="zed"))

    event = _message("spam", user_id=7, username="zed")
    _, handler, _ = _run(mw, event)
    handler.assert_not_awaited()
    event.answer.assert_awaited_once_with(
        "⚠️ Aktivitas mencurigakan terdeteksi. Anda diblokir sementara."
    )
    assert audit.of_type("spam_detected")[0].details["username"] == "zed"

    quiet = _message("halo", user_id=7)
    _, handler, data = _run(mw, quiet)
    handler.assert_not_awaited()
    quiet.answer.assert_not_awaited()
    assert data["security_decision"].kind is DecisionKind.REJECT_BLOCKED


def test_event_without_user_passes(gate):
    mw = SecurityMiddleware(gate)
    event = SimpleNamespace(text="spam", answer=AsyncMock())

    for _ in range(10):
        result, handler, _ = _run(mw, event, user=None)
        assert result == "handled"


def test_callback_without_text_skips_spam(gate, store):
    mw = SecurityMiddleware(gate)
    cb = SimpleNamespace(data="delete_confirm:1", from_user=SimpleNamespace(id=3, username=None),
                         answer=AsyncMock())

    _run(mw, cb)

    assert 3 not in store.spam
    assert (3, "delete") in store.request_logs


def test_setup_security_registers_outer_middleware(gate):
    dp = Dispatcher()
    mw = setup_security(dp, gate)

    assert mw in dp.message.outer_middleware
    assert mw in dp.callback_query.outer_middleware


def test_is_admin(gate):
    assert is_admin(ADMIN_ID, gate)
    assert not is_admin(1, gate)
    assert not is_admin(None, gate)


def test_admin_filter_allows_admin(gate, audit):
    msg = _message("/block 5", user_id=ADMIN_ID)

    assert asyncio.run(AdminFilter()(msg, gate)) is True
    msg.answer.assert_not_awaited()
    assert audit.records == []


def test_admin_filter_rejects_and_audits_others(gate, audit):
    msg = _message("/block <b>5</b>", user_id=77, username="mallory")

    assert asyncio.run(AdminFilter()(msg, gate)) is False
    msg.answer.assert_awaited_once_with("⛔️ Unauthorized")
    rec = audit.of_type("unauthorized_admin_attempt")[0]
    assert rec.actor_id is None
    assert rec.admin_id == 77
    assert rec.details == {"command": "/block 5", "username": "mallory"}


def test_block_command(gate, audit, clock):
    msg = _message("/block 42 10", user_id=ADMIN_ID)

    asyncio.run(cmd_block(msg, CommandObject(command="block", args="42 10"), gate))

    assert gate.is_blocked(42)
    assert gate.blocks.expires_at(42) == clock.now() + 600_000
    msg.answer.assert_awaited_once_with("🚫 User 42 diblokir 10 menit.")
    assert audit.records[-1].admin_id == ADMIN_ID


def test_block_command_defaults_and_usage(gate, clock):
    msg = _message("/block 42", user_id=ADMIN_ID)
    asyncio.run(cmd_block(msg, CommandObject(command="block", args="42"), gate))
    assert gate.blocks.expires_at(42) == clock.now() + 300_000

    bad = _message("/block", user_id=ADMIN_ID)
    asyncio.run(cmd_block(bad, CommandObject(command="block", args=None), gate))
    bad.answer.assert_awaited_once_with("Format: /block <telegram_id> [menit]")


def test_block_command_zero_minutes_is_one_minute(gate, clock):
    msg = _message("/block 42 0", user_id=ADMIN_ID)

    asyncio.run(cmd_block(msg, CommandObject(command="block", args="42 0"), gate))

    assert gate.blocks.expires_at(42) == clock.now() + 60_000
    msg.answer.assert_awaited_once_with("🚫 User 42 diblokir 1 menit.")


def test_unblock_and_status_commands(gate, clock):
    gate.block_actor(42, 120_000)

    status = _message("/blockstatus 42", user_id=ADMIN_ID)
    asyncio.run(cmd_blockstatus(status, CommandObject(command="blockstatus", args="42"), gate))
    status.answer.assert_awaited_once_with("🚫 User 42 diblokir, sisa 120 detik.")

    unblock = _message("/unblock 42", user_id=ADMIN_ID)
    asyncio.run(cmd_unblock(unblock, CommandObject(command="unblock", args="42"), gate))
    unblock.answer.assert_awaited_once_with("✅ User 42 tidak diblokir lagi.")
    assert not gate.is_blocked(42)

    again = _message("/unblock 42", user_id=ADMIN_ID)
    asyncio.run(cmd_unblock(again, CommandObject(command="unblock", args="42"), gate))
    again.answer.assert_awaited_once_with("User 42 tidak sedang diblokir.")

    status = _message("/blockstatus 42", user_id=ADMIN_ID)
    asyncio.run(cmd_blockstatus(status, CommandObject(command="blockstatus", args="42"), gate))
    status.answer.assert_awaited_once_with("User 42 tidak diblokir.")
