from __future__ import annotations
import re
from dataclasses import dataclass, field
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup

from .urls import canonicalize, is_crawlable, resolve, same_registrable_domain

# ------------------ contact-page classification ------------------

CONTACT_PATTERNS = [
    # English
    "/contact",
    "/contact-us",
    "/contactus",
    "/about",
    "/about-us",
    "/team",
    "/staff",
    "/support",
    "/help",
    "/impressum",
    "/privacy",
    # Greek
    "/επικοινωνια",
    "/επικοινωνία",
    "/συνεργασια",
    "/συνεργασία",
    "/εταιρεια",
    "/εταιρεία",
    "/ποιοι-ειμαστε",
    "/σχετικα",
    "/σχετικά",
    "/ομαδα",
    "/ομάδα",
]

CONTACT_KEYWORDS = [
    "contact", "about", "team", "staff", "support", "help",
    "επικοινωνία", "επικοινωνια", "συνεργασία", "εταιρεία", "σχετικά",
]

_WHITESPACE_RE = re.compile(r"\s+")


def is_contact_page(url: str, anchor_text: str = "") -> bool:
    """True when the URL path or the anchor text looks like a contact/about page."""
    try:
        path = unquote(urlsplit(url).path).lower()
    except ValueError:
        path = ""
    if any(pattern in path for pattern in CONTACT_PATTERNS):
        return True
    anchor = (anchor_text or "").lower()
    return any(keyword in anchor for keyword in CONTACT_KEYWORDS)


# ------------------ page parsing ------------------

@dataclass
class ParsedPage:
    url: str
    links: list[str] = field(default_factory=list)
    contact_page_links: list[str] = field(default_factory=list)
    text: str = ""


def visible_text(soup: BeautifulSoup) -> str:
    """Whitespace-collapsed body text. Removes script/style nodes from `soup`."""
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    root = soup.body or soup
    return _WHITESPACE_RE.sub(" ", root.get_text(" ")).strip()


def parse_html(markup: str, base_url: str, base_domain: str) -> ParsedPage:
    """
    Extract same-site links (canonical, deduplicated, document order), the
    subset that look like contact pages, and the visible text.
    """
    soup = BeautifulSoup(markup or "", "html.parser")
    links: list[str] = []
    contact_links: list[str] = []
    seen: set[str] = set()

    for a in soup.find_all("a", href=True):
        resolved = resolve(base_url, a["href"])
        if not resolved:
            continue
        if not is_crawlable(resolved) or not same_registrable_domain(resolved, base_domain):
            continue

        canonical = canonicalize(resolved)
        if canonical not in seen:
            seen.add(canonical)
            links.append(canonical)

        # the same URL may appear again with a more telling anchor text
        if canonical not in contact_links and is_contact_page(canonical, a.get_text(" ", strip=True)):
            contact_links.append(canonical)

    return ParsedPage(url=base_url, links=links, contact_page_links=contact_links, text=visible_text(soup))


def extract_context(text: str, keyword: str, length: int = 50) -> str:
    """Snippet of `text` around the first case-insensitive occurrence of `keyword`."""
    if not text or not keyword:
        return ""
    index = text.lower().find(keyword.lower())
    if index == -1:
        return ""
    start = max(0, index - length)
    end = min(len(text), index + len(keyword) + length)
    return text[start:end].strip()
