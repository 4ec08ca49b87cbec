from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from solana_feed.config import Settings


class ColoredFormatter(logging.Formatter):
    """Console formatter that highlights feed events by keyword."""

    GREY = "\x1b[90m"
    NEON_GREEN = "\x1b[92m"
    NEON_CYAN = "\x1b[96m"
    NEON_RED = "\x1b[91m"
    MAGENTA = "\x1b[95m"
    YELLOW = "\x1b[93m"
    RESET = "\x1b[0m"

    DATE_FMT = "%H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            color = self.NEON_RED
        elif record.levelno >= logging.WARNING:
            color = self.YELLOW
        else:
            color = self.GREY

        msg = str(record.msg)

        # Keyword highlighting overrides the level color
        if "BUY" in msg or "🟢" in msg:
            color = self.NEON_GREEN
        elif "MC" in msg or "📈" in msg:
            color = self.NEON_CYAN
        elif "[WS]" in msg and record.levelno < logging.WARNING:
            color = self.MAGENTA
        elif "reconnect" in msg.lower() and record.levelno < logging.ERROR:
            color = self.YELLOW

        formatter = logging.Formatter(
            f"{color}%(asctime)s %(message)s{self.RESET}", datefmt=self.DATE_FMT
        )
        return formatter.format(record)


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure the root logger.

    With settings, logs go to the console (colored) and to LOG_DIR/feed.log
    (plain). Without settings, used when configuration failed to load, only
    the console handler is installed at INFO.
    """
    logger = logging.getLogger()
    logger.setLevel(settings.LOG_LEVEL if settings else logging.INFO)

    # Remove existing handlers to avoid duplicates on reload
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter())
    logger.addHandler(console_handler)

    if settings is not None:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "feed.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(file_handler)

    # Silence noisy libraries - only show WARNING and above
    for noisy in ("httpx", "httpcore", "asyncio", "websockets", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
