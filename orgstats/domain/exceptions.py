from typing import Optional


class OrgStatsException(Exception):
    """Base exception for all org-stats errors."""
    pass

class RateLimitExceededException(OrgStatsException):
    """Raised when the GitHub REST primary rate limit is exhausted."""
    def __init__(self, reset_at: str, message: str = "GitHub API rate limit exceeded."):
        self.reset_at = reset_at
        super().__init__(f"{message} Resets at: {reset_at}")

class UpstreamException(OrgStatsException):
    """Raised when GitHub answers with an error that retrying will not fix."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

class RefreshTimeoutException(OrgStatsException):
    """Raised when an aggregation attempt does not finish within the refresh timeout."""
    def __init__(self, kind: str, timeout: float):
        self.kind = kind
        self.timeout = timeout
        super().__init__(f"Refreshing {kind} timed out after {timeout:.0f}s.")

class ConfigurationException(OrgStatsException):
    """Raised when an environment setting cannot be parsed."""
    pass
