import asyncio
import logging
from typing import Any, Awaitable, Dict, Iterable, List, Sequence, Tuple, TypeVar

from orgstats.domain.colors import get_language_color
from orgstats.domain.models import ContributorDescriptor, ContributorStat, RepoStat, RepositoryDescriptor
from orgstats.infrastructure.acl import GitHubTranslator
from orgstats.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

# Case-insensitive marker GitHub appends to app/bot account logins
BOT_LOGIN_MARKER = "[bot]"
DEFAULT_MAX_CONCURRENCY = 4

T = TypeVar("T")


def is_bot_login(login: str) -> bool:
    return BOT_LOGIN_MARKER in login.lower()


def apply_limit(items: Sequence[T], limit: int) -> List[T]:
    """Returns the first `limit` items when 0 < limit < len(items), otherwise all of them, as a new list."""
    if 0 < limit < len(items):
        return list(items[:limit])
    return list(items)


def merge_contributors(
    per_repository: Iterable[Tuple[str, Iterable[ContributorDescriptor]]],
) -> List[ContributorStat]:
    """
    Merges per-repository contributor lists into one entry per login.

    Empty and bot logins are dropped. The result is sorted by total contributions,
    descending; ties keep the order in which the logins were first seen.

    Args:
        per_repository: (repository name, contributors of that repository) pairs.

    Returns:
        List[ContributorStat]: One frozen entry per login.
    """
    merged: Dict[str, Dict[str, Any]] = {}

    for repo_name, contributors in per_repository:
        for contributor in contributors:
            login = contributor.login
            if not login or is_bot_login(login):
                continue

            existing = merged.get(login)
            if existing is None:
                merged[login] = {
                    "login": login,
                    "avatar_url": contributor.avatar_url,
                    "contributions": contributor.contributions,
                    "repositories": [repo_name],
                }
            else:
                existing["contributions"] += contributor.contributions
                existing["repositories"].append(repo_name)

    # dicts keep insertion order and sorted() is stable, so ties stay in encounter order
    ordered = sorted(merged.values(), key=lambda c: c["contributions"], reverse=True)
    return [ContributorStat(**c) for c in ordered]


class StatsAggregator:
    """
    Builds full statistic snapshots for one organization by querying GitHub
    for every public repository.

    Listing the organization's repositories is the only fatal step; a failed
    per-repository lookup is logged and that field (or repository) is left out.
    """

    def __init__(
            self,
            github_client: GitHubRestClient,
            org: str,
            max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.github_client = github_client
        self.org = org
        self.max_concurrency = max(1, max_concurrency)

    async def list_public_repositories(self) -> List[RepositoryDescriptor]:
        """Lists the organization's repositories, without the private ones. Errors propagate."""
        raw_repos = await self.github_client.list_org_repositories(self.org, repo_type="all")
        repositories = [GitHubTranslator.to_repository(raw) for raw in raw_repos if raw]
        public = [repo for repo in repositories if not repo.private]
        logger.debug(f"{self.org}: {len(public)} public of {len(repositories)} repositories.")
        return public

    async def fetch_repo_stats(self) -> List[RepoStat]:
        """
        Builds one RepoStat per public repository, in listing order.

        Raises whatever listing the organization's repositories raises.
        """
        repositories = await self.list_public_repositories()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(repo: RepositoryDescriptor) -> RepoStat:
            async with semaphore:
                return await self._build_repo_stat(repo)

        stats = await asyncio.gather(*(_bounded(repo) for repo in repositories))
        logger.info(f"Aggregated stats for {len(stats)} repositories of {self.org}.")
        return list(stats)

    async def fetch_contributor_stats(self, limit: int = 0) -> List[ContributorStat]:
        """
        Merges contributors across every public repository, sorted by total contributions.

        Args:
            limit (int): Keep only the top `limit` entries; 0 or less keeps everyone.
        """
        repositories = await self.list_public_repositories()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(repo: RepositoryDescriptor):
            async with semaphore:
                return await self.github_client.list_contributors(self.org, repo.name)

        results = await asyncio.gather(*(_bounded(repo) for repo in repositories), return_exceptions=True)

        per_repository: List[Tuple[str, List[ContributorDescriptor]]] = []
        for repo, result in zip(repositories, results):
            if isinstance(result, Exception):
                logger.warning(f"Error getting contributors for {repo.name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            per_repository.append((repo.name, [GitHubTranslator.to_contributor(raw) for raw in result]))

        contributors = merge_contributors(per_repository)
        logger.info(f"Aggregated {len(contributors)} contributors across {len(per_repository)} repositories of {self.org}.")
        return apply_limit(contributors, limit)

    async def _build_repo_stat(self, repo: RepositoryDescriptor) -> RepoStat:
        contributors, commits, topics = await asyncio.gather(
            self._or_default(self.github_client.list_contributors(self.org, repo.name), "contributors", repo.name, []),
            self._or_default(self.github_client.list_commits(self.org, repo.name), "commits", repo.name, []),
            self._or_default(self.github_client.list_topics(self.org, repo.name), "topics", repo.name, []),
        )

        language = repo.language or ""
        return RepoStat(
            name=repo.name,
            stars=repo.stars,
            forks=repo.forks,
            contributors=len(contributors),
            commits=len(commits),
            license=repo.license or "",
            last_updated=repo.updated_at,
            description=repo.description or "",
            language=language,
            language_color=get_language_color(language),
            open_issues=repo.open_issues,
            default_branch=repo.default_branch,
            topics=tuple(topics),
        )

    @staticmethod
    async def _or_default(call: Awaitable[T], what: str, repo_name: str, default: T) -> T:
        try:
            return await call
        except Exception as e:
            logger.warning(f"Error getting {what} for {repo_name}: {e}")
            return default
