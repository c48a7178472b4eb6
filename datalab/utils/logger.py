import sys
from loguru import logger
from pathlib import Path
from typing import Optional


def setup_logger(log_level: str = "INFO", log_file: Optional[Path] = None):
    """Route loguru output to stderr, and to `log_file` when one is configured."""
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=log_level,
        colorize=True,
    )

    # Engine event log, tailed by `datalab logs`
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level="DEBUG",
            rotation="10 MB",
            retention="7 days",
        )

    return logger


def tail_log(log_file: Path, limit: int = 50) -> list[str]:
    """Return the last `limit` lines of a log file, or nothing if it does not exist."""
    log_file = Path(log_file)
    if not log_file.exists():
        return []
    with open(log_file, "r", encoding="utf-8", errors="replace") as f:
        lines = f.read().splitlines()
    return lines[-limit:] if limit > 0 else []
