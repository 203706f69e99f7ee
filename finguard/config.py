from dataclasses import dataclass, field
import os
from types import MappingProxyType
from typing import Mapping
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class ActionPolicy:
    limit: int
    window_ms: int


@dataclass(frozen=True)
class SpamPolicy:
    max_similar_messages: int = 5
    window_ms: int = 60_000
    block_duration_ms: int = 300_000
    max_messages_per_window: int = 30


# per-action limits; unknown actions fall back to DEFAULT_ACTION_POLICY
DEFAULT_ACTION_POLICIES: dict[str, ActionPolicy] = {
    "transaction": ActionPolicy(limit=20, window_ms=3_600_000),  # 20 / hour
    "month": ActionPolicy(limit=5, window_ms=60_000),            # 5 / min
    "history": ActionPolicy(limit=10, window_ms=60_000),
    "upgrade": ActionPolicy(limit=3, window_ms=3_600_000),
    "photo": ActionPolicy(limit=5, window_ms=3_600_000),
    "start": ActionPolicy(limit=5, window_ms=60_000),
    "delete": ActionPolicy(limit=10, window_ms=60_000),
}
DEFAULT_ACTION_POLICY = ActionPolicy(limit=30, window_ms=60_000)
DEFAULT_GLOBAL_POLICY = ActionPolicy(limit=60, window_ms=60_000)


@dataclass(frozen=True)
class SecurityConfig:
    # read-only view; left out of __hash__ since mappings are unhashable
    actions: Mapping[str, ActionPolicy] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_ACTION_POLICIES)), hash=False,
    )
    default_action: ActionPolicy = DEFAULT_ACTION_POLICY
    global_policy: ActionPolicy = DEFAULT_GLOBAL_POLICY
    spam: SpamPolicy = field(default_factory=SpamPolicy)
    admin_ids: frozenset[int] = frozenset()
    sweep_interval_sec: int = 1800

    def __post_init__(self):
        object.__setattr__(self, "actions", MappingProxyType(dict(self.actions)))

    def policy_for(self, action: str) -> ActionPolicy:
        return self.actions.get(action, self.default_action)


@dataclass(frozen=True)
class Config:
    bot_token: str
    database_url: str
    log_level: str
    security: SecurityConfig


def parse_admin_ids(raw: str) -> frozenset[int]:
    ids = set()
    for part in (raw or "").split(","):
        part = part.strip()
        try:
            ids.add(int(part))
        except ValueError:
            # empty or garbage entries are ignored
            continue
    return frozenset(ids)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be positive")
    return value


def load_security_config() -> SecurityConfig:
    global_limit = _int_env("GLOBAL_LIMIT", DEFAULT_GLOBAL_POLICY.limit)
    block_sec = _int_env("SPAM_BLOCK_SEC", SpamPolicy.block_duration_ms // 1000)

    return SecurityConfig(
        global_policy=ActionPolicy(limit=global_limit, window_ms=DEFAULT_GLOBAL_POLICY.window_ms),
        spam=SpamPolicy(block_duration_ms=block_sec * 1000),
        admin_ids=parse_admin_ids(os.getenv("ADMIN_IDS", "")),
        sweep_interval_sec=_int_env("SWEEP_INTERVAL_SEC", 1800),
    )


def load_config() -> Config:
    token = os.getenv("BOT_TOKEN", "").strip()
    db_url = os.getenv("DATABASE_URL", "").strip() or "sqlite+aiosqlite:///finguard.db"
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    if not token:
        raise RuntimeError("BOT_TOKEN is empty in .env")

    return Config(
        bot_token=token,
        database_url=db_url,
        log_level=log_level,
        security=load_security_config(),
    )
