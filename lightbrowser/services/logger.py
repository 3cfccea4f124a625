"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from lightbrowser.config import settings

NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "asyncio",
    "urllib3",
    "filelock",
    "sentence_transformers",
    "transformers",
)


def configure_logging(level: str | None = None, log_dir: str | None = None) -> None:
    """Install the console sink and, when a directory is configured, a rotating file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=(level or settings.app_log_level).upper(),
        colorize=True,
    )

    target_dir = log_dir if log_dir is not None else settings.log_dir
    if target_dir:
        path = Path(target_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / "light_browser_{time:YYYY-MM-DD}.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
        )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_tier_attempt(
    url: str,
    tier: int,
    status: str,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    """Log one tier fetch attempt."""
    attempt_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "url": url,
        "tier": int(tier),
        "status": status,
        "duration_ms": duration_ms,
        "error": error,
    }
    if error:
        logger.warning(f"TIER_ATTEMPT_FAILED: {attempt_data}")
    else:
        logger.info(f"TIER_ATTEMPT: {attempt_data}")


def log_escalation(url: str, from_tier: int, to_tier: int, reason: str) -> None:
    """Log a decision to retry at a more capable tier."""
    logger.info(
        f"ESCALATION: {{'url': {url!r}, 'from_tier': {int(from_tier)}, "
        f"'to_tier': {int(to_tier)}, 'reason': {reason!r}}}"
    )


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
