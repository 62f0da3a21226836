import aiohttp
import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from orgstats.domain.exceptions import RateLimitExceededException, UpstreamException

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 10
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10)
MAX_RETRIES = 3
RETRYABLE_STATUSES = {500, 502, 503, 504}
RATE_LIMIT_STATUSES = {403, 429}

class GitHubRestClient:
    """
    Client for the GitHub REST endpoints the organization statistics are built from.
    Handles authentication, pagination, and rate limit management.

    The client owns an aiohttp session that is created on first use; a session
    passed in by the caller is used as-is and never closed by the client.
    """

    def __init__(
            self,
            token: Optional[str] = None,
            api_url: str = DEFAULT_API_URL,
            max_pages: int = DEFAULT_MAX_PAGES,
            session: Optional[aiohttp.ClientSession] = None,
    ):
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "orgstats-proxy",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.api_url = api_url.rstrip("/")
        self.max_pages = max_pages
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=REQUEST_TIMEOUT)
            self._owns_session = True
        return self._session

    async def list_org_repositories(self, org: str, repo_type: str = "all") -> List[Dict[str, Any]]:
        """Lists every repository of the organization, private ones included when visible to the token."""
        return await self._get_all(f"/orgs/{org}/repos", {"type": repo_type})

    async def list_contributors(self, org: str, repo: str) -> List[Dict[str, Any]]:
        return await self._get_all(f"/repos/{org}/{repo}/contributors")

    async def list_commits(self, org: str, repo: str) -> List[Dict[str, Any]]:
        return await self._get_all(f"/repos/{org}/{repo}/commits")

    async def list_topics(self, org: str, repo: str) -> List[str]:
        data, _ = await self.fetch_page(f"{self.api_url}/repos/{org}/{repo}/topics")
        if not data:
            return []
        return list(data.get("names", []))

    async def _get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Follows `Link: rel="next"` headers and concatenates every page.

        Stops after `max_pages` pages when it is positive.
        """
        items: List[Any] = []
        url: Optional[str] = f"{self.api_url}{path}"
        query: Optional[Dict[str, Any]] = {"per_page": PAGE_SIZE, **(params or {})}
        pages = 0

        while url:
            data, url = await self.fetch_page(url, query)
            # The next-page URL already carries the query string
            query = None
            pages += 1
            if data:
                items.extend(data)
            if self.max_pages > 0 and pages >= self.max_pages:
                if url:
                    logger.debug(f"Stopping pagination of {path} after {pages} pages.")
                break

        return items

    async def fetch_page(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Any, Optional[str]]:
        """
        Fetches a single page from GitHub.

        Returns:
            Tuple of (decoded JSON body or None for 204, next page URL or None).
        """
        session = self._get_session()

        for attempt in range(MAX_RETRIES):
            try:
                async with session.get(url, params=params, headers=self.headers, timeout=REQUEST_TIMEOUT) as response:
                    if response.status in RATE_LIMIT_STATUSES:
                        # Primary rate limit: waiting until the reset would stall the caller, so give up now
                        if response.headers.get('X-RateLimit-Remaining') == '0':
                            raise RateLimitExceededException(reset_at=self._format_reset(response.headers.get('X-RateLimit-Reset')))

                        # Secondary rate limit (abuse detection)
                        retry_after = response.headers.get('Retry-After')
                        if retry_after:
                            sleep_time = int(retry_after)
                            logger.warning(f"Secondary rate limit ({response.status}). Sleeping {sleep_time}s...")
                            await asyncio.sleep(sleep_time)
                            continue

                    if response.status in RETRYABLE_STATUSES:
                        sleep_time = (2 ** attempt) + random.uniform(0, 1)
                        logger.warning(
                            f"Server error ({response.status}) for {url}. "
                            f"Retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                        )
                        await asyncio.sleep(sleep_time)
                        continue

                    if response.status >= 400:
                        raise UpstreamException(f"GitHub returned {response.status} for {url}.", status=response.status)

                    if response.status == 204:
                        return None, None

                    data = await response.json()
                    next_link = response.links.get('next')
                    next_url = str(next_link['url']) if next_link else None
                    return data, next_url

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                sleep_time = (2 ** attempt) + random.uniform(0, 1)
                logger.warning(
                    f"Request to {url} failed (attempt {attempt + 1}/{MAX_RETRIES}): {e!r}. "
                    f"Retrying in {sleep_time:.1f}s..."
                )
                await asyncio.sleep(sleep_time)

        raise UpstreamException(f"Failed to fetch {url} after {MAX_RETRIES} attempts.")

    @staticmethod
    def _format_reset(raw_reset: Optional[str]) -> str:
        if not raw_reset:
            return "unknown"
        try:
            reset = datetime.fromtimestamp(int(raw_reset), tz=timezone.utc)
        except ValueError:
            return raw_reset
        return reset.isoformat().replace("+00:00", "Z")
