"""
Collector Module Entry Point

Allows execution via: python -m apps.collector

Delegates to scheduler for all execution modes (scheduled and RUN_ONCE).
"""

import asyncio

from apps.collector.scheduler import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
