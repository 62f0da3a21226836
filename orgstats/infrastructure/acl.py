from datetime import datetime
from typing import Any, Dict, Optional
from orgstats.domain.models import ContributorDescriptor, RepositoryDescriptor

class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON payloads into domain descriptors.
    """

    @staticmethod
    def to_repository(raw_repo: Dict[str, Any]) -> RepositoryDescriptor:
        """
        Transforms a raw `/orgs/{org}/repos` item into a RepositoryDescriptor.

        Args:
            raw_repo (Dict[str, Any]): One repository object from GitHub's REST response.

        Returns:
            RepositoryDescriptor: The descriptor used by the aggregation.
        """
        name = raw_repo.get('name')
        if not name:
            raise ValueError("name is required to build RepositoryDescriptor.")

        # GitHub sends explicit nulls for absent objects, so `or` rather than a get() default
        license_data = raw_repo.get('license') or {}

        return RepositoryDescriptor(
            name=name,
            private=bool(raw_repo.get('private', False)),
            stars=raw_repo.get('stargazers_count') or 0,
            forks=raw_repo.get('forks_count') or 0,
            license=license_data.get('name'),
            updated_at=GitHubTranslator._parse_timestamp(raw_repo.get('updated_at')),
            description=raw_repo.get('description'),
            language=raw_repo.get('language'),
            open_issues=raw_repo.get('open_issues_count') or 0,
            default_branch=raw_repo.get('default_branch') or '',
        )

    @staticmethod
    def to_contributor(raw_contributor: Dict[str, Any]) -> ContributorDescriptor:
        """Transforms a raw `/repos/{org}/{repo}/contributors` item into a ContributorDescriptor."""
        return ContributorDescriptor(
            login=raw_contributor.get('login') or '',
            avatar_url=raw_contributor.get('avatar_url') or '',
            contributions=raw_contributor.get('contributions') or 0,
        )

    @staticmethod
    def _parse_timestamp(raw_date: Optional[str]) -> Optional[datetime]:
        if not raw_date:
            return None
        return datetime.fromisoformat(raw_date.replace("Z", "+00:00"))
