"""Protocols and lightweight model types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Protocol

from .errors import HttpStatusError


@dataclass(frozen=True)
class FetchedPage:
    """A fully read HTTP response body."""

    url: str
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def raise_for_status(self) -> None:
        if not self.ok:
            raise HttpStatusError(self.url, self.status_code)


class PageFetcher(Protocol):
    """Contract for HTML fetchers."""

    def fetch(
        self, url: str, *, headers: dict[str, str] | None = None, timeout: float | None = None
    ) -> FetchedPage:
        """Return the page or raise a FetchError subclass."""


class SearchEngine(Protocol):
    """Contract for a search engine scraped through its HTML result pages."""

    name: str
    domain: str
    result_marker: str
    captcha_marker: str
    shell_markers: tuple[str, ...]
    link_selectors: tuple[str, ...]

    def search_url(self, query: str) -> str:
        """Return the result-page URL for a query."""

    def is_redirect_wrapper(self, link: str) -> bool:
        """Return True when a link indirects through the engine's own domain."""

    def resolve_redirect(self, link: str) -> str:
        """Return the true destination for a wrapped link, never raising."""


@dataclass(frozen=True)
class EmailClassification:
    """Disjoint HR and general address lists."""

    hr: tuple[str, ...] = ()
    general: tuple[str, ...] = ()

    @property
    def all(self) -> tuple[str, ...]:
        return self.hr + self.general

    def to_dict(self) -> dict[str, list[str]]:
        return {"hr": list(self.hr), "general": list(self.general), "all": list(self.all)}


@dataclass(frozen=True)
class SerpOutcome:
    """Per-query record of one result page fetch."""

    search_page: int
    query: str
    url: str
    status_code: int | None = None
    error: str | None = None
    raw_length: int = 0
    captcha_suspect: bool = False
    blocked_variant: bool = False
    links: tuple[str, ...] = ()
    snippet_emails: EmailClassification = field(default_factory=EmailClassification)


@dataclass(frozen=True)
class PageVisitOutcome:
    """Per-URL record of one successful page visit."""

    url: str
    search_page: int
    status_code: int
    is_hr_page: bool
    emails: EmailClassification

    @property
    def email_count(self) -> dict[str, int]:
        return {
            "hr": len(self.emails.hr),
            "general": len(self.emails.general),
            "total": len(self.emails.all),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "searchPage": self.search_page,
            "statusCode": self.status_code,
            "isHRPage": self.is_hr_page,
            "emailCount": self.email_count,
            "emails": self.emails.to_dict(),
        }


@dataclass(frozen=True)
class FailedUrl:
    """A search or page fetch that failed without aborting the run."""

    url: str
    error: str
    search_page: int
    kind: Literal["search", "page"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "error": self.error,
            "searchPage": self.search_page,
            "type": self.kind,
        }


@dataclass(frozen=True)
class HuntStats:
    snippet_hr: int = 0
    snippet_general: int = 0
    page_hr: int = 0
    page_general: int = 0

    @property
    def from_snippets(self) -> int:
        return self.snippet_hr + self.snippet_general

    @property
    def from_pages(self) -> int:
        return self.page_hr + self.page_general


@dataclass(frozen=True)
class QueryDebug:
    """One SERP outcome plus the pages visited for it."""

    serp: SerpOutcome
    pages: tuple[PageVisitOutcome, ...] = ()
    failures: tuple[FailedUrl, ...] = ()


@dataclass(frozen=True)
class FallbackDebug:
    """What the secondary engine returned, if it was consulted."""

    engine: str
    query: str
    url: str
    status_code: int | None = None
    error: str | None = None
    links: tuple[str, ...] = ()
    snippet_emails: EmailClassification = field(default_factory=EmailClassification)


@dataclass(frozen=True)
class AggregateDebug:
    pages_visited: int
    hr_count: int
    general_count: int
    transitions: tuple[str, ...]


@dataclass(frozen=True)
class DebugTrace:
    """Fixed-schema diagnostic payload, only built when requested."""

    queries: tuple[str, ...]
    per_query: tuple[QueryDebug, ...]
    aggregate: AggregateDebug
    fallback: FallbackDebug | None = None


@dataclass(frozen=True)
class HuntResult:
    """Terminal aggregate of one hunt run."""

    captcha_triggered: bool
    hr_emails: tuple[str, ...]
    general_emails: tuple[str, ...]
    scraped_urls: tuple[PageVisitOutcome, ...]
    failed_urls: tuple[FailedUrl, ...]
    all_search_urls: tuple[str, ...]
    stats: HuntStats
    fallback_used: bool = False
    fallback_links: tuple[str, ...] = ()
    debug: DebugTrace | None = None

    def ordered_emails(self, hr_focus: bool) -> list[str]:
        """Merged listing: HR first under HR focus, lexicographic otherwise."""
        merged = list(self.hr_emails) + list(self.general_emails)
        return merged if hr_focus else sorted(merged)

    def emails_by_search_page(self) -> dict[int, dict[str, int]]:
        """Sum page-level email counts per originating search page."""
        breakdown: dict[int, dict[str, int]] = {}
        for visit in self.scraped_urls:
            bucket = breakdown.setdefault(visit.search_page, {"hr": 0, "general": 0, "total": 0})
            for key, value in visit.email_count.items():
                bucket[key] += value
        return breakdown

    @property
    def is_blocked(self) -> bool:
        """True when the run should be reported as blocked to the caller."""
        if self.captcha_triggered:
            return True
        return (
            self.fallback_used
            and not self.hr_emails
            and not self.general_emails
            and not self.fallback_links
        )

    def to_dict(self, hr_focus: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "captchaTriggered": self.captcha_triggered,
            "emails": self.ordered_emails(hr_focus),
            "hrEmails": list(self.hr_emails),
            "generalEmails": list(self.general_emails),
            "scrapedUrls": [visit.to_dict() for visit in self.scraped_urls],
            "failedUrls": [failure.to_dict() for failure in self.failed_urls],
            "allSearchUrls": list(self.all_search_urls),
            "emailsBySearchPage": self.emails_by_search_page(),
            "stats": {
                "snippetHr": self.stats.snippet_hr,
                "snippetGeneral": self.stats.snippet_general,
                "pageHr": self.stats.page_hr,
                "pageGeneral": self.stats.page_general,
            },
            "fallbackUsed": self.fallback_used,
            "fallbackLinks": list(self.fallback_links),
        }
        if self.debug is not None:
            payload["debug"] = asdict(self.debug)
        return payload
