import unittest

from orgstats.application.aggregator import StatsAggregator, apply_limit, merge_contributors
from orgstats.domain.colors import DEFAULT_LANGUAGE_COLOR
from orgstats.domain.exceptions import UpstreamException
from orgstats.domain.models import ContributorDescriptor


def _raw_repo(name, stars=0, private=False, language="Python", **extra):
    raw = {
        "name": name,
        "private": private,
        "stargazers_count": stars,
        "forks_count": 1,
        "license": {"name": "MIT License"},
        "updated_at": "2024-01-02T03:04:05Z",
        "description": f"{name} description",
        "language": language,
        "open_issues_count": 2,
        "default_branch": "main",
    }
    raw.update(extra)
    return raw


def _contributor(login, contributions):
    return {"login": login, "avatar_url": f"https://avatars.example/{login}", "contributions": contributions}


class _FakeGitHubClient:
    def __init__(self, repos, contributors=None, commits=None, topics=None, failing=None) -> None:
        self.repos = repos
        self.contributors = contributors or {}
        self.commits = commits or {}
        self.topics = topics or {}
        # (method, repo name) pairs that raise
        self.failing = failing or set()
        self.calls = []

    def _check(self, method, repo):
        self.calls.append((method, repo))
        if (method, repo) in self.failing:
            raise UpstreamException(f"{method} failed for {repo}", status=500)

    async def list_org_repositories(self, org, repo_type="all"):
        self.calls.append(("repos", org))
        if isinstance(self.repos, Exception):
            raise self.repos
        return self.repos

    async def list_contributors(self, org, repo):
        self._check("contributors", repo)
        return self.contributors.get(repo, [])

    async def list_commits(self, org, repo):
        self._check("commits", repo)
        return self.commits.get(repo, [])

    async def list_topics(self, org, repo):
        self._check("topics", repo)
        return self.topics.get(repo, [])


class TestFetchRepoStats(unittest.IsolatedAsyncioTestCase):
    async def test_builds_one_stat_per_public_repository_in_listing_order(self) -> None:
        client = _FakeGitHubClient(
            repos=[_raw_repo("a", stars=10), _raw_repo("secret", stars=99, private=True), _raw_repo("b", stars=5)],
            contributors={"a": [_contributor("x", 1), _contributor("y", 2)]},
            commits={"a": [{"sha": "1"}, {"sha": "2"}, {"sha": "3"}]},
            topics={"a": ["api", "vtuber"]},
        )
        aggregator = StatsAggregator(client, org="acme")

        stats = await aggregator.fetch_repo_stats()

        self.assertEqual([s.name for s in stats], ["a", "b"])
        first = stats[0]
        self.assertEqual(first.stars, 10)
        self.assertEqual(first.contributors, 2)
        self.assertEqual(first.commits, 3)
        self.assertEqual(first.topics, ("api", "vtuber"))
        self.assertEqual(first.license, "MIT License")
        self.assertEqual(first.language_color, "#3572A5")
        self.assertNotIn(("contributors", "secret"), client.calls)

    async def test_sub_query_failure_only_zeroes_that_field(self) -> None:
        client = _FakeGitHubClient(
            repos=[_raw_repo("a"), _raw_repo("b")],
            contributors={"a": [_contributor("x", 1)], "b": [_contributor("y", 1)]},
            commits={"a": [{"sha": "1"}], "b": [{"sha": "2"}]},
            topics={"a": ["t"], "b": ["u"]},
            failing={("commits", "a"), ("topics", "b")},
        )
        aggregator = StatsAggregator(client, org="acme")

        with self.assertLogs("orgstats.application.aggregator", level="WARNING") as logs:
            stats = await aggregator.fetch_repo_stats()

        a, b = stats
        self.assertEqual((a.contributors, a.commits, a.topics), (1, 0, ("t",)))
        self.assertEqual((b.contributors, b.commits, b.topics), (1, 1, ()))
        self.assertEqual(len(logs.records), 2)

    async def test_listing_failure_propagates(self) -> None:
        client = _FakeGitHubClient(repos=UpstreamException("boom", status=502))
        aggregator = StatsAggregator(client, org="acme")

        with self.assertRaises(UpstreamException):
            await aggregator.fetch_repo_stats()

    async def test_unknown_or_missing_language_gets_default_color(self) -> None:
        client = _FakeGitHubClient(repos=[_raw_repo("a", language="Brainfudge"), _raw_repo("b", language=None)])
        aggregator = StatsAggregator(client, org="acme")

        stats = await aggregator.fetch_repo_stats()

        self.assertEqual([s.language_color for s in stats], [DEFAULT_LANGUAGE_COLOR, DEFAULT_LANGUAGE_COLOR])
        self.assertEqual(stats[1].language, "")


class TestFetchContributorStats(unittest.IsolatedAsyncioTestCase):
    def _client(self, **kwargs):
        return _FakeGitHubClient(
            repos=[_raw_repo("a"), _raw_repo("b"), _raw_repo("hidden", private=True)],
            contributors={
                "a": [_contributor("alice", 40), _contributor("bob", 30), _contributor("dependabot[bot]", 500)],
                "b": [_contributor("alice", 10), _contributor("carol", 30), _contributor("", 9)],
                "hidden": [_contributor("mallory", 1000)],
            },
            **kwargs,
        )

    async def test_merges_by_login_and_sorts_descending(self) -> None:
        aggregator = StatsAggregator(self._client(), org="acme")

        contributors = await aggregator.fetch_contributor_stats()

        self.assertEqual([c.login for c in contributors], ["alice", "bob", "carol"])
        alice = contributors[0]
        self.assertEqual(alice.contributions, 50)
        self.assertEqual(alice.repositories, ("a", "b"))
        self.assertEqual(alice.avatar_url, "https://avatars.example/alice")

    async def test_bots_empty_logins_and_private_repos_are_excluded(self) -> None:
        aggregator = StatsAggregator(self._client(), org="acme")

        contributors = await aggregator.fetch_contributor_stats()

        logins = {c.login for c in contributors}
        self.assertNotIn("dependabot[bot]", logins)
        self.assertNotIn("", logins)
        self.assertNotIn("mallory", logins)

    async def test_failed_repository_is_skipped(self) -> None:
        aggregator = StatsAggregator(self._client(failing={("contributors", "a")}), org="acme")

        with self.assertLogs("orgstats.application.aggregator", level="WARNING"):
            contributors = await aggregator.fetch_contributor_stats()

        self.assertEqual([(c.login, c.contributions) for c in contributors], [("carol", 30), ("alice", 10)])

    async def test_limit_truncates_after_sorting(self) -> None:
        aggregator = StatsAggregator(self._client(), org="acme")

        contributors = await aggregator.fetch_contributor_stats(limit=1)

        self.assertEqual([c.login for c in contributors], ["alice"])

    async def test_listing_failure_propagates(self) -> None:
        client = _FakeGitHubClient(repos=UpstreamException("boom", status=502))
        aggregator = StatsAggregator(client, org="acme")

        with self.assertRaises(UpstreamException):
            await aggregator.fetch_contributor_stats()


class TestMergeContributors(unittest.TestCase):
    def test_ties_keep_encounter_order_and_limit_picks_top(self) -> None:
        per_repo = [
            ("r1", [ContributorDescriptor(login="w", contributions=10), ContributorDescriptor(login="x", contributions=30)]),
            ("r2", [ContributorDescriptor(login="y", contributions=50), ContributorDescriptor(login="z", contributions=30)]),
        ]

        merged = merge_contributors(per_repo)

        self.assertEqual([c.contributions for c in merged], [50, 30, 30, 10])
        self.assertEqual([c.login for c in merged], ["y", "x", "z", "w"])
        self.assertEqual([c.contributions for c in apply_limit(merged, 2)], [50, 30])
        self.assertEqual(len(apply_limit(merged, 0)), 4)
        self.assertEqual(len(apply_limit(merged, -3)), 4)
        self.assertEqual(len(apply_limit(merged, 10)), 4)

    def test_totals_do_not_depend_on_repository_order(self) -> None:
        r1 = ("r1", [ContributorDescriptor(login="alice", contributions=3), ContributorDescriptor(login="bob", contributions=1)])
        r2 = ("r2", [ContributorDescriptor(login="alice", contributions=4)])
        r3 = ("r3", [ContributorDescriptor(login="bob", contributions=8), ContributorDescriptor(login="carol", contributions=2)])

        forward = merge_contributors([r1, r2, r3])
        backward = merge_contributors([r3, r2, r1])

        def _totals(merged):
            return {c.login: (c.contributions, set(c.repositories)) for c in merged}

        self.assertEqual(_totals(forward), _totals(backward))
        self.assertEqual(_totals(forward)["bob"], (9, {"r1", "r3"}))

    def test_bot_marker_is_case_insensitive_and_side_effect_free(self) -> None:
        with_bot = merge_contributors([
            ("r1", [
                ContributorDescriptor(login="Renovate[BOT]", contributions=99),
                ContributorDescriptor(login="alice", contributions=5),
            ]),
        ])
        without_bot = merge_contributors([("r1", [ContributorDescriptor(login="alice", contributions=5)])])

        self.assertEqual(with_bot, without_bot)

    def test_apply_limit_returns_a_copy(self) -> None:
        items = (1, 2, 3)

        limited = apply_limit(items, 0)

        self.assertIsInstance(limited, list)
        self.assertEqual(limited, [1, 2, 3])
