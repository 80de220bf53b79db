"""Hunt orchestration: query the primary engine, visit pages, fall back, aggregate.

The run is an explicit three-state machine::

    QUERYING --captcha / all queries done--> DONE
    QUERYING --no links from any query-----> FALLBACK --> DONE
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock

from tqdm import tqdm

from .classification import classify_emails, is_likely_hr_page
from .config import HuntRequest
from .errors import FetchError, HuntStateError
from .extraction import extract_page_emails
from .fetchers import RequestsFetcher, make_session
from .models import (
    AggregateDebug,
    DebugTrace,
    EmailClassification,
    FailedUrl,
    FallbackDebug,
    HuntResult,
    HuntStats,
    PageFetcher,
    PageVisitOutcome,
    QueryDebug,
    SearchEngine,
    SerpOutcome,
)
from .search_backends import BingEngine, DuckDuckGoEngine, build_queries
from .serp import parse_serp
from .validation import polite_sleep

SleepFn = Callable[[float, float], None]


class HuntState(Enum):
    QUERYING = "querying"
    FALLBACK = "fallback"
    DONE = "done"


TRANSITIONS: dict[HuntState, frozenset[HuntState]] = {
    HuntState.QUERYING: frozenset({HuntState.FALLBACK, HuntState.DONE}),
    HuntState.FALLBACK: frozenset({HuntState.DONE}),
    HuntState.DONE: frozenset(),
}


class HuntStateMachine:
    """Tracks the run state and rejects transitions missing from TRANSITIONS."""

    def __init__(self) -> None:
        self.state = HuntState.QUERYING
        self.history: list[HuntState] = [HuntState.QUERYING]

    def advance(self, target: HuntState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise HuntStateError(f"Illegal transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)


class VisitBudget:
    """Global page-visit counter shared by all workers of a run."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._used = 0
        self._lock = Lock()

    @property
    def used(self) -> int:
        with self._lock:
            return self._used

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._limit - self._used

    def try_acquire(self) -> bool:
        """Reserve one visit; False once the budget is spent."""
        with self._lock:
            if self._used >= self._limit:
                return False
            self._used += 1
            return True


@dataclass(frozen=True)
class PageVisit:
    """Outcome of one budgeted page visit, folded into the accumulator later."""

    url: str
    outcome: PageVisitOutcome | None = None
    failure: FailedUrl | None = None


@dataclass
class HuntAccumulator:
    """Everything one run gathers. Owned by the orchestrator thread only."""

    snippet_hr: dict[str, None] = field(default_factory=dict)
    snippet_general: dict[str, None] = field(default_factory=dict)
    page_hr: dict[str, None] = field(default_factory=dict)
    page_general: dict[str, None] = field(default_factory=dict)
    scraped_urls: list[PageVisitOutcome] = field(default_factory=list)
    failed_urls: list[FailedUrl] = field(default_factory=list)
    all_search_urls: list[str] = field(default_factory=list)
    query_debug: list[QueryDebug] = field(default_factory=list)

    def merge_snippet(self, classification: EmailClassification) -> None:
        self.snippet_hr.update(dict.fromkeys(classification.hr))
        self.snippet_general.update(dict.fromkeys(classification.general))

    def merge_visit(self, visit: PageVisit) -> None:
        self.all_search_urls.append(visit.url)
        if visit.failure is not None:
            self.failed_urls.append(visit.failure)
        if visit.outcome is not None:
            self.page_hr.update(dict.fromkeys(visit.outcome.emails.hr))
            self.page_general.update(dict.fromkeys(visit.outcome.emails.general))
            self.scraped_urls.append(visit.outcome)

    def final_emails(self) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Return disjoint HR and general lists; HR wins on overlap."""
        hr = dict.fromkeys([*self.snippet_hr, *self.page_hr])
        general = [
            email
            for email in dict.fromkeys([*self.snippet_general, *self.page_general])
            if email not in hr
        ]
        return tuple(hr), tuple(general)

    def stats(self) -> HuntStats:
        return HuntStats(
            snippet_hr=len(self.snippet_hr),
            snippet_general=len(self.snippet_general),
            page_hr=len(self.page_hr),
            page_general=len(self.page_general),
        )


def visit_page(
    link: str,
    *,
    search_page: int,
    engine: SearchEngine,
    fetcher: PageFetcher,
    hr_focus: bool,
    logger: logging.Logger,
) -> PageVisit:
    """Resolve, fetch, extract and classify one result link. Fetch errors are recorded."""
    final_url = engine.resolve_redirect(link)
    try:
        page = fetcher.fetch(final_url)
        page.raise_for_status()
    except FetchError as exc:
        logger.debug("Page visit failed for %s: %s", final_url, exc)
        return PageVisit(
            url=final_url,
            failure=FailedUrl(url=final_url, error=str(exc), search_page=search_page, kind="page"),
        )

    extraction = extract_page_emails(page.text)
    classification = classify_emails(sorted(extraction.emails), extraction.text, hr_focus)
    return PageVisit(
        url=final_url,
        outcome=PageVisitOutcome(
            url=final_url,
            search_page=search_page,
            status_code=page.status_code,
            is_hr_page=is_likely_hr_page(final_url),
            emails=classification,
        ),
    )


def _budgeted_visit(link: str, *, budget: VisitBudget, **kwargs) -> PageVisit | None:
    if not budget.try_acquire():
        return None
    return visit_page(link, **kwargs)


def visit_links(
    links: Sequence[str],
    *,
    search_page: int,
    engine: SearchEngine,
    fetcher: PageFetcher,
    hr_focus: bool,
    budget: VisitBudget,
    executor: Executor | None,
    logger: logging.Logger,
) -> list[PageVisit]:
    """Visit links in order, sequentially or on a worker pool, never exceeding the budget.

    Links are deduplicated on their resolved target, so two redirect wrappers
    for one page cost a single visit.
    """
    links = list(dict.fromkeys(engine.resolve_redirect(link) for link in links))
    kwargs = {
        "search_page": search_page,
        "engine": engine,
        "fetcher": fetcher,
        "hr_focus": hr_focus,
        "logger": logger,
    }
    if executor is None:
        visits: list[PageVisit] = []
        for link in links:
            visit = _budgeted_visit(link, budget=budget, **kwargs)
            if visit is None:
                break
            visits.append(visit)
        return visits

    futures = [executor.submit(_budgeted_visit, link, budget=budget, **kwargs) for link in links]
    # Fold in link order, not completion order, so results stay deterministic.
    results = [future.result() for future in futures]
    return [visit for visit in results if visit is not None]


def _classify_serp(html: str, hr_focus: bool) -> EmailClassification:
    snippet = extract_page_emails(html, prune_link_lists=False)
    return classify_emails(sorted(snippet.emails), snippet.text, hr_focus)


def run_fallback(
    query: str,
    *,
    engine: SearchEngine,
    fetcher: PageFetcher,
    hr_focus: bool,
    accumulator: HuntAccumulator,
    logger: logging.Logger,
) -> FallbackDebug:
    """One secondary-engine query; snippet emails only, no page visits."""
    url = engine.search_url(query)
    logger.warning("No links from the primary engine; falling back to %s", engine.name)
    try:
        page = fetcher.fetch(url)
    except FetchError as exc:
        logger.warning("Fallback search on %s failed: %s", engine.name, exc)
        return FallbackDebug(engine=engine.name, query=query, url=url, error=str(exc))

    snippet_emails = _classify_serp(page.text, hr_focus)
    accumulator.merge_snippet(snippet_emails)
    parsed = parse_serp(page.text, engine)
    links = tuple(dict.fromkeys(engine.resolve_redirect(link) for link in parsed.links))
    logger.info(" --> fallback found %d links, %d emails", len(links), len(snippet_emails.all))
    return FallbackDebug(
        engine=engine.name,
        query=query,
        url=url,
        status_code=page.status_code,
        links=links,
        snippet_emails=snippet_emails,
    )


def run_hunt(
    request: HuntRequest,
    *,
    fetcher: PageFetcher,
    engine: SearchEngine | None = None,
    fallback_engine: SearchEngine | None = None,
    sleep_fn: SleepFn = polite_sleep,
    logger: logging.Logger,
) -> HuntResult:
    """Run one hunt and return its aggregate. Per-query and per-page failures never abort it."""
    engine = engine or BingEngine()
    fallback_engine = fallback_engine or DuckDuckGoEngine()
    machine = HuntStateMachine()
    accumulator = HuntAccumulator()
    budget = VisitBudget(request.global_url_budget)
    queries = build_queries(request.query, request.hr_focus, request.country)[
        : request.max_queries
    ]

    captcha_triggered = False
    links_seen = 0
    executor = ThreadPoolExecutor(max_workers=request.workers) if request.workers > 1 else None
    try:
        iterator = enumerate(queries, start=1)
        if request.show_progress:
            iterator = tqdm(iterator, total=len(queries), desc="search queries")
        for search_page, query in iterator:
            if budget.remaining <= 0:
                logger.info("Global URL budget of %d spent.", request.global_url_budget)
                break
            if search_page > 1:
                sleep_fn(request.min_delay, request.max_delay)

            search_url = engine.search_url(query)
            logger.info("Searching: %s", query)
            try:
                serp_page = fetcher.fetch(search_url)
            except FetchError as exc:
                message = f"Search fetch failed: {exc}"
                logger.warning("%s (%s)", message, search_url)
                accumulator.failed_urls.append(
                    FailedUrl(url=search_url, error=message, search_page=search_page, kind="search")
                )
                accumulator.query_debug.append(
                    QueryDebug(
                        serp=SerpOutcome(
                            search_page=search_page, query=query, url=search_url, error=message
                        )
                    )
                )
                continue

            html = serp_page.text
            snippet_emails = _classify_serp(html, request.hr_focus)
            accumulator.merge_snippet(snippet_emails)
            parsed = parse_serp(html, engine)
            serp = SerpOutcome(
                search_page=search_page,
                query=query,
                url=search_url,
                status_code=serp_page.status_code,
                raw_length=len(html),
                captcha_suspect=parsed.captcha_suspect,
                blocked_variant=parsed.blocked_variant,
                links=parsed.links,
                snippet_emails=snippet_emails,
            )
            if parsed.blocked_variant:
                logger.warning("Result page %d looks like a blocked variant.", search_page)
            if parsed.captcha_suspect:
                logger.warning("Captcha detected on result page %d; stopping.", search_page)
                accumulator.query_debug.append(QueryDebug(serp=serp))
                captcha_triggered = True
                break

            links_seen += len(parsed.links)
            logger.info(" --> found %d candidate links", len(parsed.links))
            visits = visit_links(
                parsed.links[: request.max_urls_per_query],
                search_page=search_page,
                engine=engine,
                fetcher=fetcher,
                hr_focus=request.hr_focus,
                budget=budget,
                executor=executor,
                logger=logger,
            )
            for visit in visits:
                accumulator.merge_visit(visit)
            accumulator.query_debug.append(
                QueryDebug(
                    serp=serp,
                    pages=tuple(visit.outcome for visit in visits if visit.outcome),
                    failures=tuple(visit.failure for visit in visits if visit.failure),
                )
            )
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    fallback: FallbackDebug | None = None
    if captcha_triggered or links_seen:
        machine.advance(HuntState.DONE)
    else:
        machine.advance(HuntState.FALLBACK)
        fallback = run_fallback(
            queries[0],
            engine=fallback_engine,
            fetcher=fetcher,
            hr_focus=request.hr_focus,
            accumulator=accumulator,
            logger=logger,
        )
        machine.advance(HuntState.DONE)

    hr_emails, general_emails = accumulator.final_emails()
    logger.info(
        "Hunt finished: %d HR, %d general emails from %d pages.",
        len(hr_emails),
        len(general_emails),
        len(accumulator.scraped_urls),
    )
    debug = None
    if request.collect_debug:
        debug = DebugTrace(
            queries=tuple(queries),
            per_query=tuple(accumulator.query_debug),
            aggregate=AggregateDebug(
                pages_visited=budget.used,
                hr_count=len(hr_emails),
                general_count=len(general_emails),
                transitions=tuple(state.value for state in machine.history),
            ),
            fallback=fallback,
        )
    return HuntResult(
        captcha_triggered=captcha_triggered,
        hr_emails=hr_emails,
        general_emails=general_emails,
        scraped_urls=tuple(accumulator.scraped_urls),
        failed_urls=tuple(accumulator.failed_urls),
        all_search_urls=tuple(accumulator.all_search_urls),
        stats=accumulator.stats(),
        fallback_used=fallback is not None,
        fallback_links=fallback.links if fallback else (),
        debug=debug,
    )


def hunt(request: HuntRequest, *, logger: logging.Logger) -> HuntResult:
    """Build concrete dependencies and execute one hunt."""
    session = make_session(request.user_agent, pool_size=max(request.workers, 10))
    try:
        fetcher = RequestsFetcher(
            session=session, timeout=request.request_timeout, logger=logger
        )
        return run_hunt(request, fetcher=fetcher, logger=logger)
    finally:
        session.close()
