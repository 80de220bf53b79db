"""Validation and runtime guardrails."""

from __future__ import annotations

import random
import time
from urllib.parse import urlparse

from .errors import ConfigError

MAX_QUERIES_CEILING = 10
MAX_URLS_PER_QUERY_CEILING = 20
GLOBAL_URL_BUDGET_CEILING = 100


def polite_sleep(min_delay: float, max_delay: float) -> None:
    """Sleep within configured bounds."""
    time.sleep(random.uniform(min_delay, max_delay))


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def clamp(value: int, lower: int, upper: int) -> int:
    """Clamp an integer into ``[lower, upper]``."""
    return max(lower, min(value, upper))


def validate_request_constraints(
    *,
    query: str,
    max_queries: int,
    max_urls_per_query: int,
    global_url_budget: int,
    min_delay: float,
    max_delay: float,
    request_timeout: float,
    workers: int,
) -> None:
    """Validate hunt request values and raise ConfigError on invalid values."""
    if not query or not query.strip():
        raise ConfigError("Missing parameter: query.")
    if not 1 <= max_queries <= MAX_QUERIES_CEILING:
        raise ConfigError(f"max_queries must be between 1 and {MAX_QUERIES_CEILING}.")
    if not 1 <= max_urls_per_query <= MAX_URLS_PER_QUERY_CEILING:
        raise ConfigError(
            f"max_urls_per_query must be between 1 and {MAX_URLS_PER_QUERY_CEILING}."
        )
    if not 1 <= global_url_budget <= GLOBAL_URL_BUDGET_CEILING:
        raise ConfigError(
            f"global_url_budget must be between 1 and {GLOBAL_URL_BUDGET_CEILING}."
        )
    if min_delay < 0 or max_delay < 0:
        raise ConfigError("--min-delay and --max-delay must be >= 0.")
    if min_delay > max_delay:
        raise ConfigError("--min-delay cannot be greater than --max-delay.")
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    if workers < 1:
        raise ConfigError("--workers must be >= 1.")
