"""GitHub REST client errors."""

from __future__ import annotations


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, method: str, path: str, status_code: int) -> GitHubAPIError:
        """Return an error for a non-2xx HTTP response."""
        return cls(
            f"GitHub REST {method} {path} returned HTTP {status_code}",
            status_code=status_code,
        )


class GitHubResponseShapeError(RuntimeError):
    """Raised when a GitHub REST payload does not decode into the expected shape."""

    @classmethod
    def undecodable(cls, path: str, detail: object) -> GitHubResponseShapeError:
        """Return an error for a payload msgspec could not decode."""
        return cls(f"GitHub REST response for {path} has unexpected shape: {detail}")


class GitHubConfigError(RuntimeError):
    """Raised when GitHub client configuration is invalid."""

    @classmethod
    def invalid_rate(cls, rate: float, burst: int) -> GitHubConfigError:
        """Return an error for a non-positive throttle configuration."""
        return cls(f"rate limit must be positive, got rate={rate} burst={burst}")

    @classmethod
    def invalid_rate_value(cls, raw: str) -> GitHubConfigError:
        """Return an error for a rate override that is not a number."""
        return cls(f"SLUICE_GITHUB_RATE_PER_S must be a number, got: {raw!r}")

    @classmethod
    def invalid_endpoint(cls, endpoint: str) -> GitHubConfigError:
        """Return an error for an endpoint that is not an http(s) URL."""
        return cls(f"GitHub API endpoint must be an http(s) URL, got: {endpoint!r}")
