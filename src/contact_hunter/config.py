"""Hunt request and runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass

from .validation import validate_request_constraints

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"
DEFAULT_COUNTRY = "morocco"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_MIN_DELAY = 0.9
DEFAULT_MAX_DELAY = 1.5
DEFAULT_MAX_QUERIES = 3
DEFAULT_MAX_URLS_PER_QUERY = 5
DEFAULT_GLOBAL_URL_BUDGET = 50
DEFAULT_WORKERS = 1


@dataclass(frozen=True)
class HuntRequest:
    """Validated, immutable input to one hunt run."""

    query: str
    hr_focus: bool = True
    country: str = DEFAULT_COUNTRY
    max_queries: int = DEFAULT_MAX_QUERIES
    max_urls_per_query: int = DEFAULT_MAX_URLS_PER_QUERY
    global_url_budget: int = DEFAULT_GLOBAL_URL_BUDGET
    collect_debug: bool = False
    min_delay: float = DEFAULT_MIN_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    workers: int = DEFAULT_WORKERS
    user_agent: str = DEFAULT_USER_AGENT
    show_progress: bool = False

    def __post_init__(self) -> None:
        validate_request_constraints(
            query=self.query,
            max_queries=self.max_queries,
            max_urls_per_query=self.max_urls_per_query,
            global_url_budget=self.global_url_budget,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
            request_timeout=self.request_timeout,
            workers=self.workers,
        )
