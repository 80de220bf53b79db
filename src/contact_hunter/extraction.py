"""Page cleaning and email extraction utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

PAGE_CLEAN_CHAR_LIMIT = 250_000
LIST_LINK_LIMIT = 30
LINK_DENSE_MIN_LINKS = 15
LINK_DENSE_TEXT_RATIO = 0.8

NOISE_TAGS = [
    "script",
    "style",
    "noscript",
    "iframe",
    "svg",
    "canvas",
    "meta",
    "link",
    "header",
    "footer",
    "nav",
    "aside",
    "form",
    "input",
    "button",
    "select",
    "textarea",
    "template",
]

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}", re.IGNORECASE)

# [dot] (dot) {dot} <dot> or a spaced " dot ".
_DOT_TOKEN = r"(?:\s*[\[\(\{<]\s*dot\s*[\]\)\}>]\s*|\s+dot\s+)"
# A bare spaced " at " only counts when the domain that follows is itself obfuscated,
# so prose like "visit us at www.example.com" is left alone.
OBFUSCATED_AT = re.compile(
    r"\s*[\[\(\{<]\s*at\s*[\]\)\}>]\s*|\s+at\s+(?=[a-z0-9\-]+" + _DOT_TOKEN + ")",
    re.IGNORECASE,
)
OBFUSCATED_DOT = re.compile(_DOT_TOKEN, re.IGNORECASE)
SPACED_AT = re.compile(r"\s*@\s*")


@dataclass(frozen=True)
class PageExtraction:
    """Cleaned page text plus every address found on the page."""

    text: str
    emails: frozenset[str]


def parse_html(html: str) -> BeautifulSoup:
    """Parse markup, degrading to an empty document when the parser rejects it."""
    try:
        return BeautifulSoup(html or "", "html.parser")
    except ParserRejectedMarkup:
        return BeautifulSoup("", "html.parser")


def _is_link_dense(block: Tag) -> bool:
    anchors = block.find_all("a")
    if len(anchors) > LIST_LINK_LIMIT:
        return True
    if len(anchors) < LINK_DENSE_MIN_LINKS:
        return False
    block_text = len(block.get_text(strip=True))
    anchor_text = sum(len(anchor.get_text(strip=True)) for anchor in anchors)
    return block_text > 0 and anchor_text / block_text >= LINK_DENSE_TEXT_RATIO


def clean_soup(soup: BeautifulSoup, *, prune_link_lists: bool = True) -> BeautifulSoup:
    """Remove noise elements and navigation-like link lists in place."""
    for tag in soup.find_all(NOISE_TAGS):
        if not tag.decomposed:
            tag.decompose()
    if not prune_link_lists:
        return soup
    for block in soup.find_all(["ul", "ol"]):
        # Nested lists go away with their parent.
        if block.decomposed:
            continue
        if _is_link_dense(block):
            block.decompose()
    return soup


def soup_text(soup: BeautifulSoup, limit: int = PAGE_CLEAN_CHAR_LIMIT) -> str:
    """Return normalized visible text, truncated to ``limit`` characters."""
    root = soup.body or soup
    text = root.get_text(" ")
    text = text.replace("\r", " ").replace("\t", " ")
    text = re.sub(r"[ \xa0]{2,}", " ", text)
    text = re.sub(r"\n\s*\n\s*\n+", "\n\n", text)
    return text.strip()[:limit]


def extract_emails(text: str) -> set[str]:
    """Return normalized emails discovered in plain text."""
    return {match.group(0).lower() for match in EMAIL_REGEX.finditer(text or "")}


def normalize_obfuscation(text: str) -> str:
    """Rewrite ``[at]``/``(dot)`` style tokens to literal ``@`` and ``.``."""
    normalized = OBFUSCATED_AT.sub("@", text or "")
    normalized = OBFUSCATED_DOT.sub(".", normalized)
    return SPACED_AT.sub("@", normalized)


def extract_obfuscated_emails(text: str) -> set[str]:
    return extract_emails(normalize_obfuscation(text))


def extract_mailto_emails(html: str) -> set[str]:
    """Collect ``mailto:`` targets from raw markup, dropping any query string."""
    found: set[str] = set()
    for anchor in parse_html(html).find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href.lower().startswith("mailto:"):
            continue
        address = unquote(href.split(":", maxsplit=1)[1].split("?", maxsplit=1)[0]).strip()
        if EMAIL_REGEX.fullmatch(address):
            found.add(address.lower())
    return found


def extract_text_emails(text: str) -> set[str]:
    """Strict and obfuscation-aware passes over already cleaned text."""
    return extract_emails(text) | extract_obfuscated_emails(text)


def extract_page_emails(html: str, *, prune_link_lists: bool = True) -> PageExtraction:
    """Clean a page and return its text with the union of all address sources.

    Result pages are one long link list, so callers parsing them pass
    ``prune_link_lists=False``.
    """
    text = soup_text(clean_soup(parse_html(html), prune_link_lists=prune_link_lists))
    emails = extract_text_emails(text) | extract_mailto_emails(html)
    return PageExtraction(text=text, emails=frozenset(emails))
