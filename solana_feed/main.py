import asyncio
import logging
import platform
import signal
import sys

from solana_feed.config import Settings
from solana_feed.core.feed import BuyFeed
from solana_feed.exceptions import ConfigurationException
from solana_feed.server import FeedServer
from solana_feed.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def load_settings() -> Settings:
    """Load settings or exit the process with a diagnostic."""
    try:
        return Settings.from_env()
    except ConfigurationException as e:
        setup_logging()
        logger.error(f"❌ {e}")
        sys.exit(1)


async def run(settings: Settings) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_shutdown(sig):
        logger.info(f"🛑 [SHUTDOWN] Received signal {sig}...")
        shutdown_event.set()

    # Signal handlers are not supported by the Windows event loop
    if platform.system() != "Windows":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_shutdown(s))

    feed = BuyFeed(settings)
    server = FeedServer(feed, host=settings.HOST, port=settings.PORT)

    try:
        await feed.start()
        await server.start()
        await shutdown_event.wait()
    finally:
        logger.info("Initiating graceful shutdown...")
        await server.stop()
        await feed.stop()


def main() -> None:
    settings = load_settings()
    setup_logging(settings)

    # Windows UTF-8 fix
    if platform.system() == "Windows":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("👋 Feed stopped by user.")


if __name__ == "__main__":
    main()
