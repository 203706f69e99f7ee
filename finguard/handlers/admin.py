# finguard/handlers/admin.py
from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from ..gate import SecurityGate
from ..utils.access import AdminFilter

router = Router()

DEFAULT_BLOCK_MIN = 5
MAX_BLOCK_MIN = 60 * 24 * 30


def _parse_args(command: CommandObject) -> tuple[int | None, int | None]:
    """
    "/block 12345 30" -> (12345, 30)
    "/block 12345"    -> (12345, None)
    """
    parts = (command.args or "").split()
    if not parts or not parts[0].lstrip("-").isdigit():
        return None, None
    target = int(parts[0])
    minutes = None
    if len(parts) > 1 and parts[1].isdigit():
        minutes = int(parts[1])
    return target, minutes


@router.message(Command("block"), AdminFilter())
async def cmd_block(message: Message, command: CommandObject, gate: SecurityGate):
    target, minutes = _parse_args(command)
    if target is None:
        await message.answer("Format: /block <telegram_id> [menit]")
        return
    if minutes is None:
        minutes = DEFAULT_BLOCK_MIN
    minutes = max(1, min(minutes, MAX_BLOCK_MIN))
    gate.block_actor(target, minutes * 60_000, admin_id=message.from_user.id)
    await message.answer(f"🚫 User {target} diblokir {minutes} menit.")


@router.message(Command("unblock"), AdminFilter())
async def cmd_unblock(message: Message, command: CommandObject, gate: SecurityGate):
    target, _ = _parse_args(command)
    if target is None:
        await message.answer("Format: /unblock <telegram_id>")
        return
    if gate.unblock_actor(target, admin_id=message.from_user.id):
        await message.answer(f"✅ User {target} tidak diblokir lagi.")
    else:
        await message.answer(f"User {target} tidak sedang diblokir.")


@router.message(Command("blockstatus"), AdminFilter())
async def cmd_blockstatus(message: Message, command: CommandObject, gate: SecurityGate):
    target, _ = _parse_args(command)
    if target is None:
        await message.answer("Format: /blockstatus <telegram_id>")
        return
    expiry = gate.blocks.expires_at(target)
    if expiry is None:
        await message.answer(f"User {target} tidak diblokir.")
        return
    left_sec = max(0, (expiry - gate.clock.now()) // 1000)
    await message.answer(f"🚫 User {target} diblokir, sisa {left_sec} detik.")
