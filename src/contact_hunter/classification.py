"""HR / general email classification rules.

Rules are evaluated in order and the first one that returns a label wins:

1. generic role mailbox (``info@``, ``sales@`` ...): dropped under HR focus,
   otherwise general;
2. the address contains an HR keyword anywhere: HR;
3. ``firstname.lastname@`` shape, with HR focus or an HR keyword in the
   surrounding context: HR;
4. everything else: general.

Keyword matching is plain substring matching, so ``hr`` also matches inside
unrelated words (``chris@``, ``three@``). That behavior is kept on purpose
until the keyword list gets product review.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Literal

from .models import EmailClassification

Label = Literal["hr", "general", "drop"]

HR_EMAIL_KEYWORDS = (
    "hr",
    "job",
    "jobs",
    "career",
    "careers",
    "recruit",
    "recruiter",
    "recruitment",
    "talent",
    "apply",
    "hiring",
    "people",
    "human",
    "resource",
    "resources",
    "employment",
    "candidature",
    "recrutement",
    "carriere",
    "emploi",
    "poste",
    "cv",
)

GENERIC_EXCLUDE_PREFIXES = (
    "info@",
    "contact@",
    "support@",
    "help@",
    "noreply@",
    "no-reply@",
    "newsletter@",
    "marketing@",
    "sales@",
    "webmaster@",
    "admin@",
    "postmaster@",
    "hello@",
    "office@",
)

NAME_SHAPE = re.compile(r"^[a-z]+\.[a-z]+@", re.IGNORECASE)


@dataclass(frozen=True)
class ClassificationContext:
    hr_focus: bool
    context_has_hr_keyword: bool


Rule = Callable[[str, ClassificationContext], "Label | None"]


def contains_hr_keyword(value: str) -> bool:
    lower = (value or "").lower()
    return any(keyword in lower for keyword in HR_EMAIL_KEYWORDS)


def _generic_prefix_rule(email: str, ctx: ClassificationContext) -> Label | None:
    if email.startswith(GENERIC_EXCLUDE_PREFIXES):
        return "drop" if ctx.hr_focus else "general"
    return None


def _keyword_rule(email: str, _ctx: ClassificationContext) -> Label | None:
    return "hr" if contains_hr_keyword(email) else None


def _name_shape_rule(email: str, ctx: ClassificationContext) -> Label | None:
    if NAME_SHAPE.match(email) and (ctx.hr_focus or ctx.context_has_hr_keyword):
        return "hr"
    return None


def _default_rule(_email: str, _ctx: ClassificationContext) -> Label | None:
    return "general"


CLASSIFICATION_RULES: tuple[Rule, ...] = (
    _generic_prefix_rule,
    _keyword_rule,
    _name_shape_rule,
    _default_rule,
)


def label_email(email: str, ctx: ClassificationContext) -> Label:
    """Return the label of the first matching rule."""
    for rule in CLASSIFICATION_RULES:
        label = rule(email, ctx)
        if label is not None:
            return label
    return "general"


def classify_emails(
    emails: Iterable[str], context: str = "", hr_focus: bool = True
) -> EmailClassification:
    """Split addresses into disjoint, ordered HR and general lists."""
    ctx = ClassificationContext(
        hr_focus=hr_focus, context_has_hr_keyword=contains_hr_keyword(context)
    )
    hr: dict[str, None] = {}
    general: dict[str, None] = {}
    for raw in emails:
        email = raw.strip().lower()
        if not email:
            continue
        label = label_email(email, ctx)
        if label == "hr":
            hr[email] = None
        elif label == "general":
            general[email] = None
    return EmailClassification(
        hr=tuple(hr), general=tuple(email for email in general if email not in hr)
    )


def is_likely_hr_page(url: str, title: str = "") -> bool:
    """Cheap hint that a page is careers/HR related, from its URL and title."""
    return contains_hr_keyword(f"{url} {title}")
