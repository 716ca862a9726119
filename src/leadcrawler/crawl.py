"""
Breadth-first contact crawl of one business website.

A run owns its frontier and visited set; nothing is shared with other
runs except the fetcher. Page failures are recorded on the result and
the crawl moves on, so `crawl_business` only raises for programming
errors.
"""
from __future__ import annotations
import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .config import CrawlOptions, apply_safety_caps
from .errors import FetchError, InvalidUrl
from .extractors import ExtractedEmail, ExtractedPhone, extract_contacts
from .fetch import build_fetcher
from .parse import is_contact_page, parse_html
from .social_contacts import follow_social_profiles
from .urls import canonicalize, extract_domain, normalize, same_registrable_domain

logger = logging.getLogger(__name__)

STATUS_NOT_CRAWLED = "not_crawled"
STATUS_PARTIAL = "partial"
STATUS_COMPLETED = "completed"


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class CrawlTarget:
    business_id: str
    dataset_id: str
    website_url: str


@dataclass
class PageError:
    url: str
    message: str


@dataclass
class CrawlResult:
    business_id: str
    dataset_id: str
    website_url: str
    status: str = STATUS_NOT_CRAWLED
    pages_visited: int = 0
    page_limit: int = 0
    emails: List[ExtractedEmail] = field(default_factory=list)
    phones: List[ExtractedPhone] = field(default_factory=list)
    social: Dict[str, str] = field(default_factory=dict)
    contact_pages: List[str] = field(default_factory=list)
    errors: List[PageError] = field(default_factory=list)
    frontier_remaining: int = 0
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    gate: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlResult":
        data = dict(data)
        data["emails"] = [ExtractedEmail(**e) for e in data.get("emails") or []]
        data["phones"] = [ExtractedPhone(**p) for p in data.get("phones") or []]
        data["errors"] = [PageError(**e) for e in data.get("errors") or []]
        return cls(**data)


class Frontier:
    """FIFO of (url, depth) with front insertion for contact-like pages."""

    def __init__(self):
        self._queue: deque[Tuple[str, int]] = deque()
        self._queued: set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def __contains__(self, url: str) -> bool:
        return canonicalize(url) in self._queued

    def push_back(self, url: str, depth: int) -> None:
        self._queue.append((url, depth))
        self._queued.add(canonicalize(url))

    def push_front(self, urls: List[str], depth: int) -> None:
        """Insert `urls` at the front, keeping their order."""
        for url in reversed(urls):
            self._queue.appendleft((url, depth))
            self._queued.add(canonicalize(url))

    def pop(self) -> Tuple[str, int]:
        url, depth = self._queue.popleft()
        self._queued.discard(canonicalize(url))
        return url, depth

    def pending(self, visited: set[str], max_depth: int) -> int:
        """Entries that would still be fetched given more budget."""
        return sum(1 for url, depth in self._queue
                   if depth <= max_depth and canonicalize(url) not in visited)


async def crawl_business(target: CrawlTarget, options: CrawlOptions | None = None,
                         fetcher=None, page_limit: int | None = None) -> CrawlResult:
    """
    Crawl one business website breadth-first and collect its contact details.

    Args:
        target: business and website to crawl
        options: per-run ceilings; defaults come from the environment
        fetcher: shared fetcher; when omitted one is opened and closed for this run
        page_limit: plan page allowance, applied under the run and global ceilings

    Returns:
        CrawlResult with status `not_crawled`, `partial` or `completed`
    """
    options = options or CrawlOptions()
    result = CrawlResult(
        business_id=target.business_id,
        dataset_id=target.dataset_id,
        website_url=target.website_url,
        started_at=utcnow(),
    )

    try:
        start_url = normalize(target.website_url)
    except InvalidUrl as e:
        result.errors.append(PageError(url=target.website_url or "", message=str(e)))
        result.finished_at = utcnow()
        logger.info("Skipping business %s: %s", target.business_id, e)
        return result

    max_pages, max_depth, _ = apply_safety_caps(options.max_pages, options.max_depth)
    budget = max_pages if page_limit is None else min(max_pages, max(0, page_limit))
    result.page_limit = budget

    owns_fetcher = fetcher is None
    if owns_fetcher:
        fetcher = build_fetcher(options.fetch_config(), options.render_fallback)
        await fetcher.open()

    t0 = time.time()
    try:
        await _crawl_pages(result, fetcher, start_url, budget, max_depth, options.inter_request_delay)
        if options.follow_social_profiles and result.social:
            await _merge_social_contacts(result, fetcher)
    finally:
        if owns_fetcher:
            await fetcher.close()

    result.finished_at = utcnow()
    logger.info(
        "Crawled %s: %s, %d/%d pages, %d emails, %d phones, %d errors in %.2fs",
        start_url, result.status, result.pages_visited, budget,
        len(result.emails), len(result.phones), len(result.errors), time.time() - t0,
    )
    return result


async def _crawl_pages(result: CrawlResult, fetcher, start_url: str, budget: int,
                       max_depth: int, delay: float) -> None:
    base_domain = extract_domain(start_url)
    frontier = Frontier()
    frontier.push_back(start_url, 0)
    visited: set[str] = set()
    seen_emails: set[str] = set()
    seen_phones: set[str] = set()
    attempts = 0

    while frontier and attempts < budget:
        url, depth = frontier.pop()
        key = canonicalize(url)
        if key in visited or depth > max_depth:
            continue
        visited.add(key)

        if attempts > 0 and delay > 0:
            await asyncio.sleep(delay)
        attempts += 1

        try:
            page = await fetcher.fetch(url)
        except FetchError as e:
            result.errors.append(PageError(url=url, message=e.message))
            continue
        if page.status != 200:
            result.errors.append(PageError(url=url, message=f"HTTP {page.status}"))
            continue

        page_url = page.final_url or url
        final_key = canonicalize(page_url)
        if final_key != key:
            if final_key in visited:
                # redirected onto a page already crawled
                continue
            visited.add(final_key)

        result.pages_visited += 1
        if depth == 0 and not same_registrable_domain(page_url, base_domain):
            # the homepage redirected to another site; follow its links instead
            base_domain = extract_domain(page_url) or base_domain

        parsed = parse_html(page.body, page_url, base_domain)
        contacts = extract_contacts(page.body, url, parsed.text, include_social=(depth == 0))

        for email in contacts.emails:
            if email.value not in seen_emails:
                seen_emails.add(email.value)
                result.emails.append(email)
        for phone in contacts.phones:
            if phone.value not in seen_phones:
                seen_phones.add(phone.value)
                result.phones.append(phone)
        for social in contacts.socials:
            result.social.setdefault(social.platform, social.url)

        if is_contact_page(url) and key not in result.contact_pages:
            result.contact_pages.append(key)
        for link in parsed.contact_page_links:
            if link not in result.contact_pages:
                result.contact_pages.append(link)

        next_depth = depth + 1
        if next_depth > max_depth:
            continue

        contact_links = [link for link in parsed.contact_page_links
                         if link not in visited and link not in frontier]
        frontier.push_front(contact_links, next_depth)

        remaining = budget - attempts
        for link in parsed.links:
            if len(frontier) > remaining:
                break
            if link in visited or link in frontier:
                continue
            frontier.push_back(link, next_depth)

    result.frontier_remaining = frontier.pending(visited, max_depth)
    if result.pages_visited == 0:
        result.status = STATUS_NOT_CRAWLED
    elif result.frontier_remaining == 0 and not result.errors:
        result.status = STATUS_COMPLETED
    else:
        result.status = STATUS_PARTIAL


async def _merge_social_contacts(result: CrawlResult, fetcher) -> None:
    found = await follow_social_profiles(fetcher, result.social)
    known_emails = {e.value for e in result.emails}
    known_phones = {p.value for p in result.phones}
    for email in found.emails:
        if email.value not in known_emails:
            known_emails.add(email.value)
            result.emails.append(email)
    for phone in found.phones:
        if phone.value not in known_phones:
            known_phones.add(phone.value)
            result.phones.append(phone)
