"""Error taxonomy shared by the client, the stores and the application services."""


class PortfolioError(Exception):
    """Base class for all errors raised by the portfolio core."""
    pass


class NotFound(PortfolioError):
    """Raised when a remote user or a cached record does not exist."""
    pass


class AuthFailure(PortfolioError):
    """Raised when the GitHub credential is missing, invalid or expired."""
    pass


class RemoteError(PortfolioError):
    """Raised for non-success responses or malformed payloads from GitHub."""
    pass


class RateLimitExceeded(RemoteError):
    """Raised when GitHub API rate limit is exceeded."""
    pass


class LimitExceeded(PortfolioError):
    """Raised when an identity already holds the maximum number of pins."""
    pass


class AlreadyPinned(PortfolioError):
    """Raised when the same repository is pinned twice for one identity."""
    pass


class ValidationError(PortfolioError):
    """Raised for malformed caller input or malformed stored records."""
    pass
