"""Standalone script to run one scrape cycle directly (for local testing)."""
import asyncio
import logging
import sys
from pathlib import Path

# Ensure backend root is on path
sys.path.insert(0, str(Path(__file__).parent))

from newsdesk.config import load_settings  # noqa: E402
from newsdesk.services import build_services  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    services = build_services(load_settings())
    logger.info("Starting standalone scrape run...")
    try:
        result = await services.scraper.run_scraper()
    finally:
        await services.api.aclose()
    stats = result.get("stats", {}) if result else {}
    logger.info(
        f"Done. "
        f"Candidates={stats.get('candidates', 0)}, "
        f"New={stats.get('after_precheck', 0)}, "
        f"Scraped={stats.get('scraped', 0)}, "
        f"Delivered={stats.get('delivered', 0)}"
    )


if __name__ == "__main__":
    asyncio.run(main())
