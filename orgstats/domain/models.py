from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict


class StatKind(str, Enum):
    """The two statistic snapshots the service keeps."""
    REPOSITORIES = "repositories"
    CONTRIBUTORS = "contributors"


class RepositoryDescriptor(BaseModel):
    """
    Upstream view of an organization repository, as listed by GitHub.
    Only the fields the aggregation needs are kept.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name of the repository")
    private: bool = Field(False, description="Whether the repository is private")
    stars: int = Field(0, ge=0, description="Total number of stargazers")
    forks: int = Field(0, ge=0, description="Total number of forks")
    license: Optional[str] = Field(None, description="Display name of the license")
    updated_at: Optional[datetime] = Field(None, description="Timestamp of the last update")
    description: Optional[str] = Field(None, description="Repository description")
    language: Optional[str] = Field(None, description="Primary language reported by GitHub")
    open_issues: int = Field(0, ge=0, description="Number of open issues")
    default_branch: str = Field("", description="Name of the default branch")


class ContributorDescriptor(BaseModel):
    """Upstream view of one contributor to one repository."""
    model_config = ConfigDict(frozen=True)

    login: str = Field("", description="Login name of the contributor")
    avatar_url: str = Field("", description="Avatar image URL")
    contributions: int = Field(0, ge=0, description="Contributions to this repository")


class RepoStat(BaseModel):
    """
    Immutable snapshot of one public repository's statistics.
    Replaced wholesale on every refresh.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name of the repository")
    stars: int = Field(0, ge=0, description="Total number of stargazers")
    forks: int = Field(0, ge=0, description="Total number of forks")
    contributors: int = Field(0, ge=0, description="Number of listed contributors")
    commits: int = Field(0, ge=0, description="Number of listed commits")
    license: str = Field("", description="Display name of the license")
    last_updated: Optional[datetime] = Field(None, description="Timestamp of the last update")
    description: str = Field("", description="Repository description")
    language: str = Field("", description="Primary language")
    language_color: str = Field(..., description="Display colour of the primary language")
    open_issues: int = Field(0, ge=0, description="Number of open issues")
    default_branch: str = Field("", description="Name of the default branch")
    topics: Tuple[str, ...] = Field(default_factory=tuple, description="Topic tags, verbatim")


class ContributorStat(BaseModel):
    """
    Immutable snapshot of one person's contributions across the organization.
    """
    model_config = ConfigDict(frozen=True)

    login: str = Field(..., description="Login name of the contributor")
    avatar_url: str = Field("", description="Avatar image URL")
    contributions: int = Field(0, ge=0, description="Total contributions across all repositories")
    repositories: Tuple[str, ...] = Field(
        default_factory=tuple,
        description="Names of the repositories contributed to, in encounter order"
    )


class RepositoryStatsResponse(BaseModel):
    """Repository snapshot bundled with totals derived from it at read time."""
    model_config = ConfigDict(frozen=True)

    repositories: List[RepoStat] = Field(default_factory=list)
    total_stars: int = Field(0, serialization_alias="totalStars")
    total_forks: int = Field(0, serialization_alias="totalForks")
    total_contributors: int = Field(0, serialization_alias="totalContributors")
    total_commits: int = Field(0, serialization_alias="totalCommits")
    github_url: str = Field("", serialization_alias="githubUrl")
