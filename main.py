import asyncio
import logging
import os
import platform
import signal
import sys

from http_poller.config import ConfigError, get_config
from http_poller.orchestrator import PollerService

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)
log = logging.getLogger("main")


async def main() -> None:
    try:
        config = get_config()
    except ConfigError as exc:
        log.error("Invalid configuration: %s", exc)
        sys.exit(1)

    service = PollerService(config)
    loop    = asyncio.get_running_loop()

    if platform.system() != "Windows":

        def _shutdown(sig: signal.Signals) -> None:
            log.info("Received %s, shutting down...", sig.name)
            service.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig)

    try:
        await service.run()
    except (asyncio.CancelledError, KeyboardInterrupt):
        service.stop()
    log.info("Poller stopped.")


if __name__ == "__main__":
    asyncio.run(main())
