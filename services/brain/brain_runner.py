"""Brain runner entry point.

Boots the configured backends and prints the store analytics as JSON.

Usage:
    python -m services.brain.brain_runner
"""

import asyncio
import sys

from services.brain.BrainRuntime import BrainRuntime
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging


async def main() -> int:
    """Print analytics for the configured store."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    try:
        runtime = BrainRuntime(helper_config=config)
    except ValueError as e:
        logger.error("Invalid brain configuration: %s", e)
        return 1

    try:
        async with runtime as brain:
            analytics = await brain.get_analytics()
    except Exception as e:
        logger.error("Error booting brain runtime: %s. Aborting.", e)
        return 1

    print(analytics.model_dump_json(by_alias=True, indent=2))
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
