# finguard/main.py
import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from .audit import DbAuditSink
from .config import load_config
from .db import DB
from .gate import SecurityGate
from .handlers import admin
from .middlewares.security import setup_security
from .utils.clock import MonotonicClock
from .utils.janitor import Janitor
from .utils.store import SecurityStore

logger = logging.getLogger(__name__)


async def main():
    cfg = load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = DB(cfg.database_url)
    await db.init_models()
    audit = DbAuditSink(db)

    store = SecurityStore()
    clock = MonotonicClock()
    gate = SecurityGate(cfg.security, store=store, clock=clock, audit=audit)
    janitor = Janitor(store, cfg.security, clock)

    bot = Bot(cfg.bot_token)
    dp = Dispatcher(storage=MemoryStorage())

    dp["db"] = db
    dp["gate"] = gate
    dp["config"] = cfg

    setup_security(dp, gate)
    dp.include_router(admin.router)

    logger.info("Admin IDs: %s", ", ".join(map(str, sorted(cfg.security.admin_ids))) or "not set")

    janitor.start()
    try:
        used = set(dp.resolve_used_update_types())
        used.update({"message", "callback_query"})
        await dp.start_polling(bot, allowed_updates=list(used))
    finally:
        await janitor.stop()
        await audit.drain()
        await db.close()
        await bot.session.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
