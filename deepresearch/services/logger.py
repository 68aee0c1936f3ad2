"""Logging setup for the research engine, built on loguru.

Every record carries a ``session_id`` extra ("-" outside a research run), so a
single run can be followed through the daily log file with grep.
"""
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from deepresearch.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[session_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[session_id]} | {name}:{function}:{line} - {message}"

NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "openai._base_client",
    "asyncio",
)


def configure_logging(log_dir: str | Path | None = None, level: str | None = None) -> Path:
    """Install the console sink and a daily-rotated file sink. Safe to call again."""
    directory = Path(log_dir or settings.log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"session_id": "-"})
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=(level or settings.app_log_level).upper(),
        colorize=True,
    )
    logger.add(
        directory / "deepresearch_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="00:00",
        retention="7 days",
        compression="zip",
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(settings.noisy_log_level.upper())
    return directory


configure_logging()


def session_logger(session_id: str):
    """Logger whose records are tagged with one research session."""
    return logger.bind(session_id=session_id)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_llm_call(
    model: str,
    caller: str,
    *,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    call = {
        "timestamp": _now(),
        "model": model,
        "caller": caller,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
        "duration_ms": duration_ms,
    }
    if error:
        logger.error(f"LLM_CALL_FAILED: {dict(call, error=error)}")
    else:
        logger.info(f"LLM_CALL: {call}")


def log_research_step(
    session_id: str,
    phase: str,
    status: str,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Record a phase transition of one research run."""
    session_logger(session_id).info(f"RESEARCH_STEP: phase={phase} status={status} data={data}")


def log_event(event_type: str, message: str, **fields: Any) -> None:
    logger.info(f"EVENT: {dict(timestamp=_now(), event_type=event_type, message=message, **fields)}")
