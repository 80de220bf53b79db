"""Custom exceptions for the hunter domain."""


class HunterError(Exception):
    """Base exception for this project."""


class ConfigError(HunterError):
    """Raised when a hunt request or runtime configuration is invalid."""


class FetchError(HunterError):
    """Raised when fetching a URL fails."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """Connection-level failure on a given URL."""


class RequestTimeoutError(FetchError):
    """Wall-clock budget exceeded on a given URL."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(url, "timeout")
        self.timeout = timeout


class HttpStatusError(FetchError):
    """Non-success response status on a page visit."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


class HuntStateError(HunterError):
    """Raised when the orchestrator attempts an illegal state transition."""
