"""Worker mode entrypoint for running the job pipeline without the web server."""

import asyncio
import sys

from autopilot.config import config
from autopilot.lib.logger import configure_logger
from autopilot.services.infrastructure.startup_service import StartupService

# Configure module logger
logger = configure_logger(__name__)


async def main():
    """Run the queue workers and the periodic prober until signalled."""
    logger.info("Starting Autopilot in worker mode...")
    logger.info("Worker mode - Web server disabled, running background services only")

    try:
        await StartupService(config).run_standalone()
    except KeyboardInterrupt:
        logger.info("Worker mode interrupted by user")
    except Exception as e:
        logger.error(f"Critical error in worker mode: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("Worker mode shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
