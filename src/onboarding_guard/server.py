"""FastMCP server entry point for the Onboarding Guard."""

from __future__ import annotations

import contextvars
import json
import logging
import os
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP

from onboarding_guard.db import _default_user_config_dir, guard_lifespan

GUARD_LOG_DIR_ENV_VAR = "ONBOARDING_LOG_DIR"
GUARD_LOG_MAX_BYTES_ENV_VAR = "ONBOARDING_LOG_MAX_BYTES"
GUARD_LOG_BACKUPS_ENV_VAR = "ONBOARDING_LOG_BACKUPS"
DEFAULT_GUARD_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_GUARD_LOG_BACKUPS = 5
DEFAULT_PORT = 8340

mcp = FastMCP(
    "onboarding-guard",
    instructions=(
        "Customer onboarding requests. Create and update requests, then call "
        "submit_for_review to move a DRAFT request to SUBMITTED."
    ),
    lifespan=guard_lifespan,
)

# ContextVar holding the caller identity for log lines.
# Default "guard" is used for internal/system actions.
caller_tag: contextvars.ContextVar[str] = contextvars.ContextVar("caller_tag", default="guard")

# Import tools to register them with @mcp.tool.
# This import MUST come AFTER mcp is created to avoid circular imports.
from onboarding_guard import tools  # noqa: F401, E402


class _CallerFormatter(logging.Formatter):
    """Log formatter that injects the caller_tag ContextVar into each record."""

    def format(self, record: logging.LogRecord) -> str:
        record.caller_tag = caller_tag.get("guard")  # type: ignore[attr-defined]
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """Structured JSON formatter for guard logfile events."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "caller_tag": getattr(record, "caller_tag", caller_tag.get("guard")),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"))


def _resolve_guard_log_dir() -> Path:
    override = os.environ.get(GUARD_LOG_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return _default_user_config_dir() / "guard-logs"


def _read_positive_int_env(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < minimum:
        return default
    return value


def _configure_logging() -> None:
    """Configure concise console logs plus a structured rotating logfile."""
    logger = logging.getLogger("onboarding_guard")
    logger.setLevel(logging.INFO)
    logger.propagate = False

    if not any(getattr(h, "_onboarding_stream_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler._onboarding_stream_handler = True  # type: ignore[attr-defined]
        handler.setLevel(logging.INFO)
        handler.setFormatter(
            _CallerFormatter(
                "%(asctime)s [%(caller_tag)s] %(message)s",
                "%H:%M:%S",
            )
        )
        logger.addHandler(handler)

    if not any(getattr(h, "_onboarding_file_handler", False) for h in logger.handlers):
        log_dir = _resolve_guard_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "guard.jsonl",
            maxBytes=_read_positive_int_env(
                GUARD_LOG_MAX_BYTES_ENV_VAR, DEFAULT_GUARD_LOG_MAX_BYTES, 1024
            ),
            backupCount=_read_positive_int_env(
                GUARD_LOG_BACKUPS_ENV_VAR, DEFAULT_GUARD_LOG_BACKUPS, 1
            ),
            encoding="utf-8",
        )
        file_handler._onboarding_file_handler = True  # type: ignore[attr-defined]
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(_JsonFormatter())
        logger.addHandler(file_handler)


# Ensure guard logger is configured even when server is launched without calling main().
_configure_logging()


def main() -> None:
    """Run the guard over streamable HTTP.

    Environment:
    - ONBOARDING_HOST: bind host, default 0.0.0.0
    - ONBOARDING_PORT: bind port, default 8340
    - ONBOARDING_DB_PATH: explicit SQLite file path
      (default: <user config dir>/onboarding-guard/onboarding.sqlite3)
    - ONBOARDING_CONFIG_PATH: JSON config file (default: ./onboarding-guard.json)
    """
    _configure_logging()
    host = os.environ.get("ONBOARDING_HOST", "0.0.0.0")
    port = _read_positive_int_env("ONBOARDING_PORT", DEFAULT_PORT, 1)
    uvicorn_log_level = os.environ.get("ONBOARDING_UVICORN_LOG_LEVEL", "warning")
    mcp.run(
        transport="streamable-http",
        host=host,
        port=port,
        log_level=uvicorn_log_level,
        stateless_http=True,
    )


if __name__ == "__main__":
    main()
