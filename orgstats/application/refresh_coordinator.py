import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set

from orgstats.application.aggregator import StatsAggregator, apply_limit
from orgstats.domain.exceptions import RefreshTimeoutException
from orgstats.domain.models import ContributorStat, RepoStat, RepositoryStatsResponse, StatKind
from orgstats.infrastructure.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_TIMEOUT = 120.0


class RefreshCoordinator:
    """
    Decides, per read, whether to serve the cached snapshot or refresh it from GitHub.

    A snapshot that is missing or older than the cache TTL is rebuilt synchronously
    before the read returns. When `coalesce_refreshes` is on, concurrent stale reads
    of the same kind await one shared refresh instead of each hitting GitHub.
    A failed or timed-out refresh leaves the cache as it was.
    """

    def __init__(
            self,
            aggregator: StatsAggregator,
            cache: TTLCache,
            github_url: str = "",
            refresh_timeout: Optional[float] = DEFAULT_REFRESH_TIMEOUT,
            coalesce_refreshes: bool = True,
    ):
        self.aggregator = aggregator
        self.cache = cache
        self.github_url = github_url
        self.refresh_timeout = refresh_timeout if refresh_timeout and refresh_timeout > 0 else None
        self.coalesce_refreshes = coalesce_refreshes
        self._in_flight: Dict[StatKind, asyncio.Future] = {}
        self._background: Set[asyncio.Task] = set()

    def start_prefetch(self) -> List[asyncio.Task]:
        """
        Launches one detached refresh per statistic kind and returns immediately.

        Failures are only logged. Reads never wait on these jobs.
        """
        tasks = [
            asyncio.create_task(self._prefetch(StatKind.REPOSITORIES, self.aggregator.fetch_repo_stats)),
            asyncio.create_task(self._prefetch(StatKind.CONTRIBUTORS, self._fetch_all_contributors)),
        ]
        for task in tasks:
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        logger.info("Started background prefetch of repository and contributor stats.")
        return tasks

    async def close(self) -> None:
        """Cancels outstanding background jobs and shared refreshes."""
        pending = list(self._background) + list(self._in_flight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def get_cached_or_refreshed_stats(self) -> RepositoryStatsResponse:
        """
        Returns the repository snapshot sorted by stars, with totals computed from it.

        Raises:
            Exception: whatever the refresh raised, when the snapshot was missing or stale.
        """
        slot = self.cache.repositories
        stats, present = slot.get()
        if not present or slot.is_stale():
            stats = await self._refresh(StatKind.REPOSITORIES, self.aggregator.fetch_repo_stats)
        return self.build_stats_response(stats, self.github_url)

    async def get_cached_or_refreshed_contributors(self, limit: int = 0) -> List[ContributorStat]:
        """Returns the top `limit` contributors (everyone when limit <= 0), refreshing first if stale."""
        slot = self.cache.contributors
        contributors, present = slot.get()
        if not present or slot.is_stale():
            contributors = await self._refresh(StatKind.CONTRIBUTORS, self._fetch_all_contributors)
        # The cache keeps the full list; the limit only shapes this response
        return apply_limit(contributors, limit)

    @staticmethod
    def build_stats_response(stats: Sequence[RepoStat], github_url: str = "") -> RepositoryStatsResponse:
        return RepositoryStatsResponse(
            repositories=sorted(stats, key=lambda repo: repo.stars, reverse=True),
            total_stars=sum(repo.stars for repo in stats),
            total_forks=sum(repo.forks for repo in stats),
            total_contributors=sum(repo.contributors for repo in stats),
            total_commits=sum(repo.commits for repo in stats),
            github_url=github_url,
        )

    async def _fetch_all_contributors(self) -> List[ContributorStat]:
        return await self.aggregator.fetch_contributor_stats(limit=0)

    async def _refresh(self, kind: StatKind, fetch: Callable[[], Awaitable[Sequence]]) -> Sequence:
        if not self.coalesce_refreshes:
            return await self._run_refresh(kind, fetch)

        shared = self._in_flight.get(kind)
        if shared is None or shared.done():
            shared = asyncio.ensure_future(self._run_refresh(kind, fetch))
            self._in_flight[kind] = shared
            shared.add_done_callback(lambda done, kind=kind: self._forget(kind, done))
        else:
            logger.debug(f"Joining in-flight refresh of {kind.value}.")

        # A reader that goes away must not cancel the refresh other readers share
        return await asyncio.shield(shared)

    def _forget(self, kind: StatKind, done: asyncio.Future) -> None:
        if self._in_flight.get(kind) is done:
            del self._in_flight[kind]

    async def _run_refresh(self, kind: StatKind, fetch: Callable[[], Awaitable[Sequence]]) -> Sequence:
        logger.info(f"Refreshing {kind.value} from GitHub.")
        try:
            payload = await asyncio.wait_for(fetch(), timeout=self.refresh_timeout)
        except asyncio.TimeoutError:
            raise RefreshTimeoutException(kind.value, self.refresh_timeout) from None
        entry = self.cache.put(kind, payload)
        return entry.payload

    async def _prefetch(self, kind: StatKind, fetch: Callable[[], Awaitable[Sequence]]) -> None:
        try:
            await self._run_refresh(kind, fetch)
        except Exception as e:
            logger.error(f"Error prefetching {kind.value}: {e}")
