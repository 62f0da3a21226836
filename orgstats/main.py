import logging
import sys
from aiohttp import web
from dotenv import load_dotenv

from orgstats.application.aggregator import StatsAggregator
from orgstats.application.refresh_coordinator import RefreshCoordinator
from orgstats.config import Settings
from orgstats.domain.exceptions import ConfigurationException
from orgstats.infrastructure.cache import TTLCache
from orgstats.infrastructure.github_client import GitHubRestClient
from orgstats.infrastructure.web import create_app

logger = logging.getLogger(__name__)


def build_app(settings: Settings) -> web.Application:
    """Assembles the client, cache, aggregator and coordinator behind the HTTP surface."""
    github_client = GitHubRestClient(
        token=settings.github_token,
        api_url=settings.github_api_url,
        max_pages=settings.github_max_pages,
    )
    aggregator = StatsAggregator(
        github_client=github_client,
        org=settings.organization,
        max_concurrency=settings.max_concurrency,
    )
    coordinator = RefreshCoordinator(
        aggregator=aggregator,
        cache=TTLCache(),
        github_url=settings.redirect_base_url,
        refresh_timeout=settings.refresh_timeout,
        coalesce_refreshes=settings.coalesce_refreshes,
    )
    return create_app(coordinator, github_client, settings.redirect_base_url)


def main() -> None:
    # Load environment variables from .env file, if there is one
    load_dotenv()

    try:
        settings = Settings.from_env()
    except ConfigurationException as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
        logger.error(str(e))
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    if not settings.github_token:
        logger.warning("GITHUB_TOKEN is not set; using unauthenticated GitHub requests.")

    logger.info(f"Serving stats for {settings.organization} on {settings.host}:{settings.port}.")
    web.run_app(build_app(settings), host=settings.host, port=settings.port, print=None)

if __name__ == "__main__":
    main()
