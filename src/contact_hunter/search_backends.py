"""Search engine definitions, redirect resolvers and the query builder."""

from __future__ import annotations

import base64
import binascii
from urllib.parse import parse_qs, unquote, urlencode, urlparse

from .config import DEFAULT_COUNTRY
from .validation import is_supported_url

BING_REDIRECT_MARKER = "bing.com/ck/a?"
BING_OPAQUE_PREFIX = "a1"
DDG_REDIRECT_MARKER = "uddg="


def build_queries(base_query: str, hr_focus: bool, country: str | None = None) -> list[str]:
    """Build ordered, deduplicated search queries; core intent phrases come first."""
    q = base_query.strip()
    geo = country.strip() if country and country.strip() else DEFAULT_COUNTRY

    core = [
        f'"{q}" email contact {geo}',
        f'"{q}" ("email us" OR "contact us") {geo}',
    ]
    hr_variants = [
        f'"{q}" ("hr@" OR "careers@" OR "jobs@" OR "recruitment@") {geo}',
        f'"{q}" careers jobs apply cv email {geo}',
        f'"{q}" ("send your cv" OR "submit your cv" OR "postuler") {geo}',
        f'"{q}" recrutement emploi carriere email {geo}',
        f'"{q}" site:linkedin.com email {geo}',
        f'"{q}" site:indeed.com email {geo}',
    ]

    queries: list[str] = []
    for query in core + (hr_variants if hr_focus else []):
        if query not in queries:
            queries.append(query)
    return queries


def _b64url_decode(value: str) -> str:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8")


def resolve_bing_redirect(link: str) -> str:
    """Decode a Bing ``/ck/a`` wrapper; any other link is returned unchanged."""
    if BING_REDIRECT_MARKER not in link:
        return link
    try:
        values = parse_qs(urlparse(link).query).get("u")
        if not values:
            return link
        decoded = values[0]
        if decoded.startswith(BING_OPAQUE_PREFIX) and not decoded.startswith("http"):
            decoded = _b64url_decode(decoded[len(BING_OPAQUE_PREFIX) :])
    except (ValueError, binascii.Error, UnicodeDecodeError):
        return link
    return decoded if is_supported_url(decoded) else link


def decode_ddg_href(link: str) -> str:
    """Decode a DuckDuckGo ``/l/?uddg=`` wrapper; any other link is returned unchanged."""
    if DDG_REDIRECT_MARKER not in link:
        return link
    encoded = link.split(DDG_REDIRECT_MARKER, maxsplit=1)[1].split("&", maxsplit=1)[0]
    decoded = unquote(encoded)
    return decoded if is_supported_url(decoded) else link


class BingEngine:
    """Primary engine: Bing HTML result pages."""

    name = "bing"
    domain = "bing.com"
    result_marker = "b_results"
    captcha_marker = "b_captcha"
    shell_markers = ("sb_form", "b_header", 'id="b_content"')
    link_selectors = (
        "li.b_algo h2 a",
        ".b_algo h2 a",
        "#b_results li.b_algo h2 a",
        "#b_results h2 a",
        '#b_results a[href^="http"]',
        'main h2 a[href^="http"]',
        'main a[href^="http"]',
    )

    def __init__(self, *, results_per_page: int = 15) -> None:
        self._results_per_page = results_per_page

    def search_url(self, query: str) -> str:
        params = {
            "q": query,
            "count": self._results_per_page,
            "mkt": "en-US",
            "setlang": "en-US",
            "cc": "US",
            "ensearch": 1,
            "safeSearch": "Off",
        }
        return f"https://www.bing.com/search?{urlencode(params)}"

    def is_redirect_wrapper(self, link: str) -> bool:
        return BING_REDIRECT_MARKER in link

    def resolve_redirect(self, link: str) -> str:
        return resolve_bing_redirect(link)


class DuckDuckGoEngine:
    """Secondary engine: the DuckDuckGo no-JavaScript HTML endpoint."""

    name = "duckduckgo"
    domain = "duckduckgo.com"
    result_marker = "result__body"
    captcha_marker = "anomaly-modal"
    shell_markers = ("search_form", "header__search")
    link_selectors = (
        "a.result__a",
        ".result__body a.result__url",
        ".results a[href]",
        "a[href]",
    )

    def search_url(self, query: str) -> str:
        return f"https://html.duckduckgo.com/html/?{urlencode({'q': query})}"

    def is_redirect_wrapper(self, link: str) -> bool:
        return self.domain in link and DDG_REDIRECT_MARKER in link

    def resolve_redirect(self, link: str) -> str:
        return decode_ddg_href(link)
