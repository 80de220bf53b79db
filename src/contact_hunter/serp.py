"""Search result page parsing: candidate links and block signals."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from .extraction import clean_soup, parse_html
from .models import SearchEngine
from .validation import is_supported_url

SERP_LINK_CAP = 50
# Some result-page variants only carry results inside inline JSON, with escaped slashes.
JSON_URL_PATTERN = re.compile(r'"url":"(https?:\\?/\\?/[^"]+?)"')


@dataclass(frozen=True)
class SerpParse:
    links: tuple[str, ...]
    captcha_suspect: bool
    blocked_variant: bool


def _on_engine_domain(link: str, engine: SearchEngine) -> bool:
    host = urlparse(link).netloc.lower()
    return host == engine.domain or host.endswith("." + engine.domain)


def _normalize_href(href: str) -> str:
    href = href.strip()
    if href.startswith("//"):
        return "https:" + href
    return href


def _accept(link: str, engine: SearchEngine) -> bool:
    if not is_supported_url(link):
        return False
    if engine.is_redirect_wrapper(link):
        return True
    return not _on_engine_domain(link, engine)


def extract_serp_links(html: str, engine: SearchEngine, cap: int = SERP_LINK_CAP) -> list[str]:
    """Walk the engine's selector cascade, most specific first, until ``cap`` links."""
    soup = clean_soup(parse_html(html), prune_link_lists=False)
    links: dict[str, None] = {}
    for selector in engine.link_selectors:
        for anchor in soup.select(selector):
            href = anchor.get("href")
            if not href:
                continue
            link = _normalize_href(str(href))
            if _accept(link, engine):
                links[link] = None
            if len(links) >= cap:
                break
        if len(links) >= cap:
            break

    if not links:
        for match in JSON_URL_PATTERN.finditer(html or ""):
            link = match.group(1).replace("\\/", "/")
            if _accept(link, engine) and not engine.is_redirect_wrapper(link):
                links[link] = None
            if len(links) >= cap:
                break
    return list(links)


def is_captcha_suspect(html: str, engine: SearchEngine) -> bool:
    return "captcha" in (html or "").lower() and engine.captcha_marker in (html or "")


def is_blocked_variant(html: str, engine: SearchEngine) -> bool:
    """Search shell without the result container: likely a soft block."""
    markup = html or ""
    if engine.result_marker in markup:
        return False
    return any(marker in markup for marker in engine.shell_markers)


def parse_serp(html: str, engine: SearchEngine) -> SerpParse:
    return SerpParse(
        links=tuple(extract_serp_links(html, engine)),
        captcha_suspect=is_captcha_suspect(html, engine),
        blocked_variant=is_blocked_variant(html, engine),
    )
