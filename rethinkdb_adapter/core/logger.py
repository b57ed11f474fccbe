"""Advanced logging with Loguru."""

import contextvars
import logging
import sys
from pathlib import Path
from types import FrameType
from typing import Any, Dict, Optional, Union

from loguru import logger

# Context variable correlating the acquire/execute/release lines of one pooled run
run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "run_id", default=None
)

__all__ = ["run_id_ctx", "setup_structured_logging", "InterceptHandler"]


class InterceptHandler(logging.Handler):
    """Redirect standard logging records (e.g. from the rethinkdb driver) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame: Optional[FrameType] = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _run_id_patcher(record: Dict[str, Any]) -> None:
    """
    Patch log records with run_id from context.

    This function is called by Loguru for each log record to inject
    the run_id from the ContextVar into the log's extra fields.
    """
    run_id = run_id_ctx.get()
    if run_id:
        record["extra"]["run_id"] = run_id


def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_dir: Optional[Union[str, Path]] = None,
) -> None:
    """
    Setup Loguru logging with structured output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Serialize file records as JSON lines
        log_dir: Directory for the rotating file sink; console only when None
    """
    level = level.upper()

    # Remove default handler
    logger.remove()

    logger.configure(patcher=_run_id_patcher)

    # Console handler - human readable
    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )
    logger.add(
        sys.stdout,
        format=console_format,
        level=level,
        colorize=True,
    )

    if log_dir is not None:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)

        if json_format:
            logger.add(
                logs_dir / "rethinkdb_adapter.jsonl",
                format="{message}",
                level=level,
                rotation="10 MB",
                retention="30 days",
                compression="zip",
                serialize=True,
            )
        else:
            text_format = (
                "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
                "{name}:{function}:{line} - {extra} {message}"
            )
            logger.add(
                logs_dir / "rethinkdb_adapter.log",
                format=text_format,
                level=level,
                rotation="10 MB",
                retention="30 days",
                compression="zip",
            )

    # Intercept all standard logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logging.root.setLevel(getattr(logging, level))

    logger.info(f"Logging initialized (level={level}, json={json_format})")
