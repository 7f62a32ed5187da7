from __future__ import annotations

import asyncio
import logging
import os
import signal

from transit_fusion.adapters.api.dependencies import build_container
from transit_fusion.app.services.polling import build_pollers

logger = logging.getLogger(__name__)


async def run() -> None:
    """Keep the feed cache warm and log derived warnings until SIGINT/SIGTERM."""

    container = build_container()
    await asyncio.to_thread(container.repository.current)

    pollers = build_pollers(container.feeds, container.realtime, container.arrivals)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops lack add_signal_handler; Ctrl+C still raises.
            pass

    pollers.start()
    try:
        await stop.wait()
    finally:
        await pollers.stop()
        await container.aclose()


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run())


if __name__ == "__main__":
    main()
