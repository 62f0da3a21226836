import os
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from orgstats.domain.exceptions import ConfigurationException

DEFAULT_ORG = "VTubersTV"
TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class Settings(BaseModel):
    """
    Runtime settings, read from the environment (and `.env`, loaded by the entry point).
    The cache TTL is deliberately not among them.
    """
    model_config = ConfigDict(frozen=True)

    github_token: Optional[str] = Field(None, description="Token for the GitHub REST API")
    organization: str = Field(DEFAULT_ORG, min_length=1, description="Organization to report on")
    github_base_url: str = Field("", description="Redirect target for / and unknown paths")
    github_api_url: str = Field("https://api.github.com", description="GitHub REST API root")
    host: str = Field("0.0.0.0")
    port: int = Field(8080, gt=0, lt=65536)
    refresh_timeout: float = Field(120.0, description="Seconds an aggregation may take; <= 0 disables")
    max_concurrency: int = Field(4, ge=1, description="Concurrent upstream calls per aggregation")
    github_max_pages: int = Field(10, ge=0, description="Pages followed per listing; 0 is unbounded")
    coalesce_refreshes: bool = Field(True, description="Share one refresh between concurrent stale reads")
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = Field("INFO")

    @property
    def redirect_base_url(self) -> str:
        base = self.github_base_url or f"https://github.com/{self.organization}/"
        return base if base.endswith("/") else f"{base}/"

    @classmethod
    def from_env(cls) -> "Settings":
        """Builds settings from environment variables, falling back to the defaults above."""
        organization = os.getenv("GITHUB_ORG") or DEFAULT_ORG
        values = {
            "github_token": os.getenv("GITHUB_TOKEN") or None,
            "organization": organization,
            "github_base_url": os.getenv("GITHUB_BASE_URL", ""),
            "github_api_url": os.getenv("GITHUB_API_URL", "https://api.github.com"),
            "host": os.getenv("HOST", "0.0.0.0"),
            "port": os.getenv("PORT", "8080"),
            "refresh_timeout": os.getenv("REFRESH_TIMEOUT_SECONDS", "120"),
            "max_concurrency": os.getenv("MAX_CONCURRENCY", "4"),
            "github_max_pages": os.getenv("GITHUB_MAX_PAGES", "10"),
            "coalesce_refreshes": _parse_bool("COALESCE_REFRESHES", os.getenv("COALESCE_REFRESHES"), True),
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
        }
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationException(f"Invalid configuration: {e}") from e


def _parse_bool(name: str, raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigurationException(f"{name} must be a boolean, got {raw!r}.")
