import logging
from aiohttp import web

from orgstats.application.refresh_coordinator import RefreshCoordinator
from orgstats.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

COORDINATOR_KEY = web.AppKey("coordinator", RefreshCoordinator)
GITHUB_CLIENT_KEY = web.AppKey("github_client", GitHubRestClient)
BASE_URL_KEY = web.AppKey("base_url", str)


def parse_limit(raw: str) -> int:
    """Parses the `limit` query value; anything that is not an integer means no limit."""
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


async def redirect_root(request: web.Request) -> web.Response:
    raise web.HTTPMovedPermanently(request.app[BASE_URL_KEY])


async def redirect_repository(request: web.Request) -> web.Response:
    repo = request.match_info["repo"]
    raise web.HTTPMovedPermanently(request.app[BASE_URL_KEY] + repo)


async def get_stats(request: web.Request) -> web.Response:
    coordinator = request.app[COORDINATOR_KEY]
    try:
        response = await coordinator.get_cached_or_refreshed_stats()
    except Exception as e:
        logger.error(f"Failed to serve repository stats: {e}")
        return web.json_response({"error": str(e)}, status=500)
    return web.json_response(response.model_dump(mode="json", by_alias=True))


async def get_contributors(request: web.Request) -> web.Response:
    coordinator = request.app[COORDINATOR_KEY]
    limit = parse_limit(request.query.get("limit", "0"))
    try:
        contributors = await coordinator.get_cached_or_refreshed_contributors(limit)
    except Exception as e:
        logger.error(f"Failed to serve contributors: {e}")
        return web.json_response({"error": str(e)}, status=500)
    return web.json_response([c.model_dump(mode="json") for c in contributors])


async def _start_prefetch(app: web.Application) -> None:
    app[COORDINATOR_KEY].start_prefetch()


async def _shutdown(app: web.Application) -> None:
    await app[COORDINATOR_KEY].close()
    await app[GITHUB_CLIENT_KEY].close()


def create_app(coordinator: RefreshCoordinator, github_client: GitHubRestClient, base_url: str) -> web.Application:
    """
    Wires the HTTP surface: the two statistic endpoints plus redirects to GitHub.

    Static routes are registered before the catch-all `/{repo}` redirect so they win.
    """
    app = web.Application()
    app[COORDINATOR_KEY] = coordinator
    app[GITHUB_CLIENT_KEY] = github_client
    app[BASE_URL_KEY] = base_url

    app.router.add_get("/", redirect_root)
    app.router.add_get("/stats", get_stats)
    app.router.add_get("/contributors", get_contributors)
    app.router.add_get("/{repo}", redirect_repository)

    app.on_startup.append(_start_prefetch)
    app.on_cleanup.append(_shutdown)
    return app
