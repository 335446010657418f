# app/core/logger.py
from __future__ import annotations

"""
Password Reset Service — Logging (Loguru)
-----------------------------------------
- Pretty console logs by default; JSON logs via `LOG_JSON=1`
- Request correlation: `request_id` bound by RequestIDMiddleware
- Intercepts stdlib/uvicorn/fastapi/sqlalchemy logs into Loguru
- Optional file sink with rotation

Call `setup_logging(settings)` once at startup (done by `create_app`).
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger

from app.core.config import Settings

_configured = False


# ─────────────────────────────────────────────────────────────
# 🧾 Formatters
# ─────────────────────────────────────────────────────────────
def _fmt_pretty(record):
    """Colorized single-line formatter with request_id support."""
    record["extra"].setdefault("request_id", "N/A")
    return (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level> | request_id={extra[request_id]}\n"
        "{exception}"
    )


def _fmt_json(record):
    payload: Dict[str, Any] = {
        "ts": record["time"].timestamp(),
        "time": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%f%z"),
        "level": record["level"].name,
        "logger": record["name"],
        "func": record["function"],
        "line": record["line"],
        "message": record["message"],
        "request_id": record["extra"].get("request_id", "N/A"),
    }
    for k, v in record["extra"].items():
        if k not in payload:
            payload[k] = v
    record["extra"]["_json"] = json.dumps(payload, ensure_ascii=False, default=str)
    return "{extra[_json]}\n"


# ─────────────────────────────────────────────────────────────
# 🔁 Intercept stdlib logging → Loguru
# ─────────────────────────────────────────────────────────────
class InterceptHandler(logging.Handler):
    """Route standard logging records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(cfg: Settings) -> None:
    """Install Loguru sinks and route stdlib loggers into them (idempotent)."""
    global _configured
    if _configured:
        return

    logger.remove()
    fmt = _fmt_json if cfg.LOG_JSON else _fmt_pretty

    logger.add(
        sys.stdout,
        level=cfg.LOG_LEVEL,
        format=fmt,
        backtrace=cfg.APP_DEBUG,
        diagnose=cfg.APP_DEBUG,
    )

    if cfg.LOG_TO_FILE:
        log_dir = Path(cfg.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / cfg.LOG_FILE),
            rotation=cfg.LOG_ROTATION,
            level=cfg.LOG_LEVEL,
            format=fmt,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    # Application modules log through stdlib `logging.getLogger(__name__)`
    logging.basicConfig(handlers=[InterceptHandler()], level=cfg.LOG_LEVEL, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(cfg.LOG_LEVEL)
        std_logger.propagate = False
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
