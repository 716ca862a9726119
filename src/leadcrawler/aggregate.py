"""
Turn crawl results into one export row per business.

Each email/phone is scored by the kind of page it was found on; the best
value is the highest score, with ties going to the value found first.
Which columns a row exposes depends on the export tier.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlsplit

from .crawl import STATUS_NOT_CRAWLED, CrawlResult
from .extractors import SOCIAL_PLATFORMS
from .store import Business


class PageType(str, Enum):
    CONTACT = "contact"
    HOMEPAGE = "homepage"
    ABOUT = "about"
    OTHER = "other"


PAGE_TYPE_SCORES = {
    PageType.CONTACT: 0.9,
    PageType.HOMEPAGE: 0.7,
    PageType.ABOUT: 0.5,
    PageType.OTHER: 0.3,
}

CONTACT_PATH_RE = re.compile(r"(contact|kontakt|impressum|επικοινων)")
ABOUT_PATH_RE = re.compile(r"(about|team|staff|company|σχετικ|εταιρ|ποιοι|ομαδ|ομάδ)")
HOMEPAGE_PATHS = {"", "/", "/index.html", "/index.php", "/home"}


class ExportTier(str, Enum):
    DEMO = "demo"
    STARTER = "starter"
    PRO = "pro"


TIER_ORDER = [ExportTier.DEMO, ExportTier.STARTER, ExportTier.PRO]

_DEMO_COLUMNS = ["business_id", "business_name", "website_url", "best_email", "best_phone"]
_STARTER_COLUMNS = _DEMO_COLUMNS + [
    "all_emails", "all_phones",
    "facebook", "instagram", "linkedin", "twitter", "youtube", "tiktok",
    "contact_page_url", "last_crawled_at",
]
_PRO_COLUMNS = _STARTER_COLUMNS + ["crawl_status", "confidence_trace", "pages_crawled", "dataset_watermark"]

TIER_COLUMNS = {
    ExportTier.DEMO: _DEMO_COLUMNS,
    ExportTier.STARTER: _STARTER_COLUMNS,
    ExportTier.PRO: _PRO_COLUMNS,
}


def classify_page(url: str) -> PageType:
    try:
        path = unquote(urlsplit(url).path).lower()
    except ValueError:
        return PageType.OTHER
    if path in HOMEPAGE_PATHS:
        return PageType.HOMEPAGE
    if CONTACT_PATH_RE.search(path):
        return PageType.CONTACT
    if ABOUT_PATH_RE.search(path):
        return PageType.ABOUT
    return PageType.OTHER


def coerce_tier(value) -> Optional[ExportTier]:
    try:
        return ExportTier(value.value if isinstance(value, Enum) else str(value).lower())
    except ValueError:
        return None


def cap_tier(requested: ExportTier, plan: str) -> ExportTier:
    """The lower of the requested tier and the tier the plan pays for (demo for unknown plans)."""
    allowed = coerce_tier(plan) or ExportTier.DEMO
    return TIER_ORDER[min(TIER_ORDER.index(requested), TIER_ORDER.index(allowed))]


@dataclass
class ScoredValue:
    value: str
    score: float
    page_type: PageType
    source_url: str


def score_values(items: Iterable) -> List[ScoredValue]:
    """Score extracted emails or phones, keeping crawl order and dropping repeats."""
    scored: List[ScoredValue] = []
    seen: set[str] = set()
    for item in items:
        if item.value in seen:
            continue
        seen.add(item.value)
        page_type = classify_page(item.source_url)
        scored.append(ScoredValue(item.value, PAGE_TYPE_SCORES[page_type], page_type, item.source_url))
    return scored


def pick_best(scored: List[ScoredValue]) -> Optional[ScoredValue]:
    best = None
    for candidate in scored:
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def confidence_trace(emails: List[ScoredValue], phones: List[ScoredValue]) -> str:
    entries = [f"email:{s.value}={s.score:.1f}({s.page_type.value})" for s in emails]
    entries += [f"phone:{s.value}={s.score:.1f}({s.page_type.value})" for s in phones]
    return "; ".join(entries)


@dataclass
class AggregatedContactRow:
    business_id: str
    business_name: str
    website_url: str
    best_email: str = ""
    best_phone: str = ""
    all_emails: List[str] = field(default_factory=list)
    all_phones: List[str] = field(default_factory=list)
    facebook: str = ""
    instagram: str = ""
    linkedin: str = ""
    twitter: str = ""
    youtube: str = ""
    tiktok: str = ""
    contact_page_url: str = ""
    last_crawled_at: str = ""
    crawl_status: str = STATUS_NOT_CRAWLED
    confidence_trace: str = ""
    pages_crawled: int = 0
    dataset_watermark: str = ""

    def cell(self, column: str):
        value = getattr(self, column)
        if isinstance(value, list):
            return "; ".join(value)
        return value

    def cells(self, tier: ExportTier) -> list:
        return [self.cell(column) for column in TIER_COLUMNS[tier]]


def aggregate_business(business: Business, result: CrawlResult | None, watermark: str = "") -> AggregatedContactRow:
    """Build the export row for one business; a missing result gives empty contact cells."""
    row = AggregatedContactRow(
        business_id=business.id,
        business_name=business.name or "",
        website_url=business.website_url or "",
        dataset_watermark=watermark,
    )
    if result is None:
        return row

    emails = score_values(result.emails)
    phones = score_values(result.phones)
    best_email = pick_best(emails)
    best_phone = pick_best(phones)

    row.best_email = best_email.value if best_email else ""
    row.best_phone = best_phone.value if best_phone else ""
    row.all_emails = [s.value for s in emails]
    row.all_phones = [s.value for s in phones]
    for platform in SOCIAL_PLATFORMS:
        setattr(row, platform, result.social.get(platform, ""))

    if result.contact_pages:
        row.contact_page_url = result.contact_pages[0]
    else:
        contact_sources = [s.source_url for s in emails + phones if s.page_type == PageType.CONTACT]
        row.contact_page_url = contact_sources[0] if contact_sources else ""

    row.last_crawled_at = result.finished_at or ""
    row.crawl_status = result.status or STATUS_NOT_CRAWLED
    row.confidence_trace = confidence_trace(emails, phones)
    row.pages_crawled = result.pages_visited
    return row
