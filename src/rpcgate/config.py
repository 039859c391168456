# rpcgate/config.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values, load_dotenv

from rpcgate.errors import ConfigError

logger = logging.getLogger("rpcgate.config")

DEFAULT_MOUNT_PATH = "/jsonrpc"
RPC_CONTENT_TYPE = "application/json"


# ──────────────────────────────────────────────────────────────
# Settings
# ──────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000
    mount_path: str = DEFAULT_MOUNT_PATH
    log_level: str | int = "INFO"
    warn_on_duplicate: bool = True
    # Methods whose params are validated as sent, without injecting defaults
    skip_defaulting: tuple[str, ...] = field(default_factory=tuple)
    # Seconds a handler may run; None waits forever
    handler_timeout: float | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, dotenv_path: str | os.PathLike | None = None) -> Settings:
        """Build settings from ``RPC_*`` environment variables (and a ``.env`` if present)."""
        load_dotenv(dotenv_path)
        env = os.environ
        skip = env.get("RPC_SKIP_DEFAULTING", "")
        timeout = env.get("RPC_HANDLER_TIMEOUT")
        try:
            return cls(
                environment=env.get("RPC_ENV", cls.environment),
                host=env.get("RPC_HOST", cls.host),
                port=int(env.get("RPC_PORT", cls.port)),
                mount_path=env.get("RPC_MOUNT_PATH", cls.mount_path),
                log_level=env.get("RPC_LOG_LEVEL", cls.log_level),
                skip_defaulting=tuple(name.strip() for name in skip.split(",") if name.strip()),
                handler_timeout=float(timeout) if timeout else None,
            )
        except ValueError as e:
            raise ConfigError(f"Invalid RPC_* setting: {e}") from e

    @classmethod
    def coerce(cls, settings: Settings | dict | None) -> Settings:
        # normalize settings: accept dataclass or dict or None
        if settings is None:
            return cls()
        if isinstance(settings, cls):
            return settings
        if isinstance(settings, dict):
            values = dict(settings)
            if "skip_defaulting" in values:
                values["skip_defaulting"] = tuple(values["skip_defaulting"])
            return cls(**values)
        raise TypeError("settings must be Settings | dict | None")


# ──────────────────────────────────────────────────────────────
# .env / .env.example consistency check
# ──────────────────────────────────────────────────────────────
def load_env_files(
    env_path: str | os.PathLike = ".env",
    example_path: str | os.PathLike = ".env.example",
    override: bool = False,
) -> dict[str, str]:
    """Load ``.env`` into ``os.environ`` after checking it against ``.env.example``.

    Every key listed in the example file must be set, either in ``.env`` or in the
    process environment. Variables already in the environment win unless ``override``.

    Returns:
        The resulting configuration (``os.environ``), sorted by key.

    Raises:
        ConfigError: if ``.env`` is missing or a key from the example is not set.
    """
    env_path = Path(env_path)
    if not env_path.exists():
        raise ConfigError(f"{env_path} file missing!")

    env = dotenv_values(env_path)
    example = dotenv_values(example_path) if Path(example_path).exists() else {}

    missing = sorted(key for key in example if key not in env and key not in os.environ)
    if missing:
        raise ConfigError(
            f"You're missing an env var in {env_path} that's set in {example_path}: {json.dumps(missing)}"
        )

    for key, value in env.items():
        if value is None or (key in os.environ and not override):
            continue
        os.environ[key] = value

    config = dict(sorted(os.environ.items()))
    logger.debug(f"Starting with config: {json.dumps(config)}")
    return config
