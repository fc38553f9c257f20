"""Configuration constants, .env parsing, and scheduler settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from cadence.errors import ValidationError


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Does NOT load into os.environ; callers decide what to do with values.
    This keeps credentials out of the process environment so they don't
    leak to the execution engine or other child processes.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


_ENV_KEYS = [
    "CADENCE_DB_PATH",
    "SCHEDULER_POLL_INTERVAL",
    "MAX_CONCURRENT_DISPATCHES",
    "DISPATCH_TIMEOUT",
    "CLAIM_ENABLED",
    "CLAIM_TTL",
    "BACKOFF_BASE_SECONDS",
    "BACKOFF_MAX_SECONDS",
    "BACKOFF_MAX_FAILURES",
    "EXECUTION_ENGINE_URL",
    "EXECUTION_ENGINE_TOKEN",
    "GMAIL_CONFIG_DIR",
    "NOTIFICATION_SENDER",
]
_env_config = read_env_file(_ENV_KEYS)


def _setting(key: str, default: str = "") -> str:
    return os.environ.get(key) or _env_config.get(key, default)


def _float_setting(key: str, default: float) -> float:
    raw = _setting(key)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _bool_setting(key: str, default: bool) -> bool:
    raw = _setting(key).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


# Absolute paths
PROJECT_ROOT: Path = Path.cwd()
STORE_DIR: Path = (PROJECT_ROOT / "store").resolve()
DB_PATH: Path = Path(_setting("CADENCE_DB_PATH", str(STORE_DIR / "cadence.db"))).resolve()

# Scheduler
SCHEDULER_POLL_INTERVAL: float = _float_setting("SCHEDULER_POLL_INTERVAL", 300.0)  # seconds
MAX_CONCURRENT_DISPATCHES: int = max(1, int(_float_setting("MAX_CONCURRENT_DISPATCHES", 5)))
DISPATCH_TIMEOUT: float = _float_setting("DISPATCH_TIMEOUT", 600.0)  # seconds, 0 disables
CLAIM_ENABLED: bool = _bool_setting("CLAIM_ENABLED", True)
CLAIM_TTL: float = _float_setting("CLAIM_TTL", 900.0)  # seconds

# Opt-in failure backoff; disabled while BACKOFF_BASE_SECONDS is 0
BACKOFF_BASE_SECONDS: float = _float_setting("BACKOFF_BASE_SECONDS", 0.0)
BACKOFF_MAX_SECONDS: float = _float_setting("BACKOFF_MAX_SECONDS", 86400.0)
BACKOFF_MAX_FAILURES: int = int(_float_setting("BACKOFF_MAX_FAILURES", 0))

# Collaborators
EXECUTION_ENGINE_URL: str = _setting("EXECUTION_ENGINE_URL")
EXECUTION_ENGINE_TOKEN: str = _setting("EXECUTION_ENGINE_TOKEN")
GMAIL_CONFIG_DIR: str = _setting("GMAIL_CONFIG_DIR")
NOTIFICATION_SENDER: str = _setting("NOTIFICATION_SENDER", "cadence@localhost")


@dataclass
class SchedulerSettings:
    """Tick settings. Defaults come from the environment; tests pass their own."""

    max_concurrency: int = MAX_CONCURRENT_DISPATCHES
    dispatch_timeout: float | None = DISPATCH_TIMEOUT or None
    claim_enabled: bool = CLAIM_ENABLED
    claim_ttl: float = CLAIM_TTL

    def __post_init__(self) -> None:
        self.max_concurrency = max(1, self.max_concurrency)
        if self.dispatch_timeout is not None and self.dispatch_timeout <= 0:
            self.dispatch_timeout = None
        if not self.claim_enabled:
            return
        # A lease must outlive the dispatch it guards.
        if self.dispatch_timeout is None:
            raise ValidationError("Claims need a dispatch timeout", field="dispatch_timeout")
        if self.claim_ttl <= self.dispatch_timeout:
            raise ValidationError("claim_ttl must exceed dispatch_timeout", field="claim_ttl")
