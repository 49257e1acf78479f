"""Protean Engine runner for the Marketplace domain.

With ``PROTEAN_ENV=production`` events are processed asynchronously, so the
order notification handlers run in this Engine instead of inside the request
that raised the event.

Usage:
    PROTEAN_ENV=production python src/server.py
    python src/server.py --test-mode   # Drain pending messages and exit
"""

import argparse
import asyncio

from protean.server.engine import Engine

from marketplace.domain import marketplace
from marketplace.utils.logging import configure_logging


async def run(test_mode: bool = False):
    marketplace.init()
    engine = Engine(marketplace, test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Marketplace Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process pending messages once and exit",
    )
    args = parser.parse_args()

    configure_logging()
    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
