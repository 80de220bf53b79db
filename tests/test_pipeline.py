import base64
import json
import logging
from typing import Any

import pytest

from contact_hunter.config import HuntRequest
from contact_hunter.errors import HuntStateError, NetworkError, RequestTimeoutError
from contact_hunter.models import FetchedPage
from contact_hunter.pipeline import (
    HuntState,
    HuntStateMachine,
    VisitBudget,
    hunt,
    run_hunt,
)
from contact_hunter.search_backends import BingEngine, DuckDuckGoEngine, build_queries

LOGGER = logging.getLogger("test")


class FakeFetcher:
    def __init__(self, pages: dict[str, Any], default_page: str | None = None) -> None:
        self.pages = pages
        self.default_page = default_page
        self.calls: list[str] = []

    def fetch(
        self, url: str, *, headers: dict[str, str] | None = None, timeout: float | None = None
    ) -> FetchedPage:
        _ = (headers, timeout)
        self.calls.append(url)
        value = self.pages.get(url)
        if value is None:
            if self.default_page is not None:
                return FetchedPage(url=url, status_code=200, text=self.default_page)
            raise NetworkError(url, "no route to host")
        if isinstance(value, Exception):
            raise value
        if isinstance(value, FetchedPage):
            return value
        return FetchedPage(url=url, status_code=200, text=value)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[float, float]] = []

    def __call__(self, min_delay: float, max_delay: float) -> None:
        self.calls.append((min_delay, max_delay))


def _request(**overrides: Any) -> HuntRequest:
    values: dict[str, Any] = {
        "query": "Acme",
        "max_queries": 1,
        "max_urls_per_query": 5,
        "global_url_budget": 10,
        "min_delay": 0.0,
        "max_delay": 0.0,
    }
    values.update(overrides)
    return HuntRequest(**values)


def _serp_url(request: HuntRequest, index: int) -> str:
    queries = build_queries(request.query, request.hr_focus, request.country)
    return BingEngine().search_url(queries[index])


def _serp(links: list[str], snippet: str = "") -> str:
    items = "".join(
        f'<li class="b_algo"><h2><a href="{link}">Result</a></h2><p>{snippet}</p></li>'
        for link in links
    )
    return f'<html><body><main><ol id="b_results">{items}</ol></main></body></html>'


def _bing_wrap(target: str) -> str:
    token = base64.urlsafe_b64encode(target.encode("utf-8")).decode("ascii").rstrip("=")
    return f"https://www.bing.com/ck/a?!&&u=a1{token}&ntb=1"


def test_hunt_visits_pages_and_records_partial_failures() -> None:
    request = _request()
    links = [
        _bing_wrap("https://acme.example/careers"),
        "https://acme.example/about",
        "https://acme.example/slow",
    ]
    fetcher = FakeFetcher(
        {
            _serp_url(request, 0): _serp(links, snippet="Mail jobs@acme.example"),
            "https://acme.example/careers": "<p>Apply: jane.doe@acme.example, info@acme.example</p>",
            "https://acme.example/about": FetchedPage(
                url="https://acme.example/about", status_code=404, text="gone"
            ),
            "https://acme.example/slow": RequestTimeoutError("https://acme.example/slow", 15.0),
        }
    )
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)

    assert result.captcha_triggered is False
    assert result.fallback_used is False
    assert result.hr_emails == ("jobs@acme.example", "jane.doe@acme.example")
    assert result.general_emails == ()
    assert result.all_search_urls == (
        "https://acme.example/careers",
        "https://acme.example/about",
        "https://acme.example/slow",
    )
    assert [visit.url for visit in result.scraped_urls] == ["https://acme.example/careers"]
    assert result.scraped_urls[0].is_hr_page is True
    assert [(f.url, f.error, f.kind) for f in result.failed_urls] == [
        ("https://acme.example/about", "HTTP 404", "page"),
        ("https://acme.example/slow", "timeout", "page"),
    ]
    assert result.stats.snippet_hr == 1
    assert result.stats.page_hr == 1
    assert result.debug is None


@pytest.mark.parametrize("workers", [1, 4])
def test_global_budget_is_never_exceeded(workers: int) -> None:
    request = _request(
        max_queries=2, max_urls_per_query=10, global_url_budget=3, workers=workers
    )
    links = [f"https://site{i}.example/" for i in range(10)]
    fetcher = FakeFetcher(
        {
            _serp_url(request, 0): _serp(links),
            _serp_url(request, 1): _serp(links),
        },
        default_page="<p>nothing here</p>",
    )
    sleep = SleepRecorder()
    result = run_hunt(request, fetcher=fetcher, sleep_fn=sleep, logger=LOGGER)

    page_calls = [url for url in fetcher.calls if "bing.com" not in url]
    assert len(page_calls) == 3
    assert len(result.all_search_urls) == 3
    # Budget spent on the first query, so the second is never issued.
    assert _serp_url(request, 1) not in fetcher.calls
    assert sleep.calls == []


def test_wrappers_for_one_target_cost_a_single_visit() -> None:
    request = _request(collect_debug=True)
    target = "https://acme.example/careers"
    links = [
        _bing_wrap(target),
        _bing_wrap(target).replace("&ntb=1", "&p=9f2c&ntb=1"),
        target,
        "https://acme.example/team",
    ]
    fetcher = FakeFetcher({_serp_url(request, 0): _serp(links)}, default_page="<p/>")
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)

    page_calls = [url for url in fetcher.calls if "bing.com" not in url]
    assert page_calls == [target, "https://acme.example/team"]
    assert result.all_search_urls == (target, "https://acme.example/team")
    assert result.debug is not None
    assert result.debug.aggregate.pages_visited == 2


def test_per_query_cap_limits_visits() -> None:
    request = _request(max_urls_per_query=2)
    links = [f"https://site{i}.example/" for i in range(6)]
    fetcher = FakeFetcher({_serp_url(request, 0): _serp(links)}, default_page="<p/>")
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)
    assert result.all_search_urls == ("https://site0.example/", "https://site1.example/")


def test_captcha_stops_the_run_without_further_queries() -> None:
    request = _request(max_queries=3)
    captcha_page = (
        '<div id="b_captcha">Please solve this captcha. hr@acme.example</div>'
    )
    fetcher = FakeFetcher({_serp_url(request, 0): captcha_page})
    sleep = SleepRecorder()
    result = run_hunt(request, fetcher=fetcher, sleep_fn=sleep, logger=LOGGER)

    assert result.captcha_triggered is True
    assert result.is_blocked is True
    assert fetcher.calls == [_serp_url(request, 0)]
    assert sleep.calls == []
    assert result.hr_emails == ("hr@acme.example",)
    assert result.fallback_used is False


def test_fallback_runs_once_when_no_query_yields_links() -> None:
    request = _request(max_queries=2, min_delay=0.1, max_delay=0.2)
    first_query = build_queries(request.query, request.hr_focus, request.country)[0]
    ddg_url = DuckDuckGoEngine().search_url(first_query)
    ddg_page = """
    <div class="result__body">
      <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.org%2Fabout">R</a>
      <p>careers@acme.example</p>
    </div>
    """
    empty = '<div id="b_results"></div>'
    fetcher = FakeFetcher(
        {_serp_url(request, 0): empty, _serp_url(request, 1): empty, ddg_url: ddg_page}
    )
    sleep = SleepRecorder()
    result = run_hunt(request, fetcher=fetcher, sleep_fn=sleep, logger=LOGGER)

    assert fetcher.calls.count(ddg_url) == 1
    assert len(fetcher.calls) == 3
    assert sleep.calls == [(0.1, 0.2)]
    assert result.fallback_used is True
    assert result.fallback_links == ("https://example.org/about",)
    assert result.hr_emails == ("careers@acme.example",)
    assert result.scraped_urls == ()
    assert result.is_blocked is False


def test_fallback_failure_does_not_fail_the_run() -> None:
    request = _request(collect_debug=True)
    fetcher = FakeFetcher({_serp_url(request, 0): '<div id="b_results"></div>'})
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)

    assert result.fallback_used is True
    assert result.is_blocked is True
    assert result.failed_urls == ()
    assert result.debug is not None
    assert result.debug.fallback is not None
    assert result.debug.fallback.error == "no route to host"
    assert result.debug.aggregate.transitions == ("querying", "fallback", "done")


def test_search_failure_is_recorded_and_next_query_runs() -> None:
    request = _request(max_queries=2, min_delay=0.1, max_delay=0.2)
    fetcher = FakeFetcher(
        {
            _serp_url(request, 0): NetworkError(_serp_url(request, 0), "connection reset"),
            _serp_url(request, 1): _serp(["https://acme.example/jobs"]),
            "https://acme.example/jobs": "<p>recruitment@acme.example</p>",
        }
    )
    sleep = SleepRecorder()
    result = run_hunt(request, fetcher=fetcher, sleep_fn=sleep, logger=LOGGER)

    assert sleep.calls == [(0.1, 0.2)]
    assert result.failed_urls[0].kind == "search"
    assert result.failed_urls[0].search_page == 1
    assert result.failed_urls[0].error == "Search fetch failed: connection reset"
    assert result.hr_emails == ("recruitment@acme.example",)
    assert result.scraped_urls[0].search_page == 2


def test_hr_focus_excludes_generic_and_keeps_sets_disjoint() -> None:
    request = _request()
    fetcher = FakeFetcher(
        {
            _serp_url(request, 0): _serp(
                ["https://acme.example/a"], snippet="info@acme.example press@acme.example"
            ),
            "https://acme.example/a": "<p>press@acme.example contact@acme.example hr@acme.example</p>",
        }
    )
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)

    everything = set(result.hr_emails) | set(result.general_emails)
    assert "info@acme.example" not in everything
    assert "contact@acme.example" not in everything
    assert set(result.hr_emails).isdisjoint(result.general_emails)
    assert result.ordered_emails(True) == ["hr@acme.example", "press@acme.example"]


def test_address_seen_as_general_and_hr_ends_up_hr_only() -> None:
    request = _request(hr_focus=False)
    fetcher = FakeFetcher(
        {
            _serp_url(request, 0): _serp(
                ["https://acme.example/team"], snippet="john.smith@acme.example"
            ),
            "https://acme.example/team": "<p>Careers: john.smith@acme.example</p>",
        }
    )
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)

    assert result.stats.snippet_general == 1
    assert result.stats.page_hr == 1
    assert result.hr_emails == ("john.smith@acme.example",)
    assert result.general_emails == ()


def test_ordering_without_hr_focus_is_lexicographic() -> None:
    request = _request(hr_focus=False)
    fetcher = FakeFetcher(
        {_serp_url(request, 0): _serp(["https://acme.example/"], snippet="zed@acme.example")},
        default_page="<p>info@acme.example careers@acme.example</p>",
    )
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)
    assert result.ordered_emails(False) == [
        "careers@acme.example",
        "info@acme.example",
        "zed@acme.example",
    ]
    assert result.emails_by_search_page() == {1: {"hr": 1, "general": 1, "total": 2}}


def test_debug_trace_has_fixed_schema_and_serializes() -> None:
    request = _request(collect_debug=True)
    fetcher = FakeFetcher(
        {_serp_url(request, 0): _serp(["https://acme.example/"])}, default_page="<p/>"
    )
    result = run_hunt(request, fetcher=fetcher, sleep_fn=SleepRecorder(), logger=LOGGER)

    assert result.debug is not None
    assert result.debug.queries == (build_queries("Acme", True, "morocco")[0],)
    assert len(result.debug.per_query) == 1
    assert result.debug.per_query[0].serp.links == ("https://acme.example/",)
    assert result.debug.aggregate.pages_visited == 1
    assert result.debug.aggregate.transitions == ("querying", "done")
    assert result.debug.fallback is None
    payload = json.loads(json.dumps(result.to_dict()))
    assert payload["debug"]["aggregate"]["pages_visited"] == 1


def test_state_machine_rejects_illegal_transitions() -> None:
    machine = HuntStateMachine()
    machine.advance(HuntState.DONE)
    with pytest.raises(HuntStateError):
        machine.advance(HuntState.FALLBACK)


def test_visit_budget_try_acquire() -> None:
    budget = VisitBudget(2)
    assert [budget.try_acquire() for _ in range(3)] == [True, True, False]
    assert budget.used == 2
    assert budget.remaining == 0


def test_hunt_builds_fetcher_and_closes_session(monkeypatch: pytest.MonkeyPatch) -> None:
    class DummySession:
        closed = False

        def close(self) -> None:
            self.closed = True

    session = DummySession()
    captured: dict[str, Any] = {}

    def fake_run_hunt(request: HuntRequest, **kwargs: Any) -> str:
        captured.update(kwargs)
        return "result"

    monkeypatch.setattr("contact_hunter.pipeline.make_session", lambda *_a, **_k: session)
    monkeypatch.setattr("contact_hunter.pipeline.run_hunt", fake_run_hunt)

    assert hunt(_request(), logger=LOGGER) == "result"
    assert session.closed is True
    assert captured["logger"] is LOGGER
