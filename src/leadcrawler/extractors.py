"""
Email, phone and social-profile extraction.

Everything here is a pure function of the page content. Values are
normalized before they are emitted; anything that does not normalize
is dropped. Deduplication across pages is the orchestrator's job, the
extractors only dedupe within one page.
"""
from __future__ import annotations
import json
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional
from urllib.parse import parse_qs, unquote, urljoin, urlsplit

import phonenumbers
from bs4 import BeautifulSoup

from .parse import extract_context, visible_text

# ------------------ emails ------------------

EMAIL_GRAMMAR = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

def _obfuscated(at: str, dot: str, flags: int = 0) -> tuple[re.Pattern, re.Pattern]:
    label = r"[a-zA-Z0-9.-]+"
    pattern = re.compile(rf"([a-zA-Z0-9._%+-]+){at}({label}(?:{dot}{label})+)", flags)
    return pattern, re.compile(dot, flags)


# (address pattern, dot separator) pairs; the domain may span several [dot] labels
OBFUSCATED_EMAIL_PATTERNS = [
    # name [at] domain [dot] com [dot] gr
    _obfuscated(r"\s*\[\s*at\s*\]\s*", r"\s*\[\s*dot\s*\]\s*", re.I),
    # name(at)domain(dot)gr
    _obfuscated(r"\s*\(\s*at\s*\)\s*", r"\s*\(\s*dot\s*\)\s*", re.I),
    # name @ domain . gr
    _obfuscated(r"\s+@\s+", r"\s+\.\s+"),
]

# "logo@2x.png" and friends look like addresses but are asset names
ASSET_TLDS = {"png", "jpg", "jpeg", "gif", "webp", "svg", "avif", "bmp", "ico", "css", "js", "woff", "woff2"}

_EMAIL_JUNK_RE = re.compile(r"[<>\[\]()\s]")


@dataclass
class ExtractedEmail:
    value: str
    source_url: str
    context: Optional[str] = None


def normalize_email(raw: str) -> str | None:
    """Lowercase, strip mailto/query/bracket noise and validate. Returns None when invalid."""
    if not raw:
        return None
    email = unquote(raw).strip()
    if email.lower().startswith("mailto:"):
        email = email[7:]
    email = email.split("?", 1)[0]
    email = _EMAIL_JUNK_RE.sub("", email).lower().strip(".")
    if not EMAIL_GRAMMAR.match(email):
        return None
    if email.rsplit(".", 1)[1] in ASSET_TLDS:
        return None
    return email


# ------------------ phones ------------------

PHONE_CANONICAL = re.compile(r"^\+30\d{10}$")

_SEP = r"[\s.()\-/]{0,2}"
GREEK_PHONE_RE = re.compile(
    rf"(?<![\d+])(?:(?:\+|00)\s?30{_SEP})?\(?(?:2(?:{_SEP}\d){{9}}|6{_SEP}9(?:{_SEP}\d){{8}})(?!\d)"
)


@dataclass
class ExtractedPhone:
    value: str
    source_url: str
    kind: str = "landline"  # "mobile" | "landline"
    context: Optional[str] = None


def normalize_phone(raw: str) -> str | None:
    """Normalize a Greek number to E.164 (+30XXXXXXXXXX). Returns None when it is not one."""
    if not raw:
        return None
    cleaned = re.sub(r"[^\d+]", "", unquote(raw))
    if not cleaned:
        return None
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    elif cleaned.startswith("30") and len(cleaned) == 12:
        cleaned = "+" + cleaned

    try:
        parsed = phonenumbers.parse(cleaned, "GR")
    except phonenumbers.NumberParseException:
        return None
    if parsed.country_code != 30 or not phonenumbers.is_valid_number(parsed):
        return None

    e164 = phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    return e164 if PHONE_CANONICAL.match(e164) else None


def phone_kind(e164: str) -> str:
    return "mobile" if e164.startswith("+3069") else "landline"


# ------------------ social ------------------

SOCIAL_PLATFORMS = ("facebook", "instagram", "linkedin", "twitter", "youtube", "tiktok")

SOCIAL_HOSTS = {
    "facebook.com": "facebook",
    "fb.com": "facebook",
    "instagram.com": "instagram",
    "linkedin.com": "linkedin",
    "twitter.com": "twitter",
    "x.com": "twitter",
    "youtube.com": "youtube",
    "youtu.be": "youtube",
    "tiktok.com": "tiktok",
}

# Share widgets and auth pages, not profiles
NON_PROFILE_SEGMENTS = {
    "sharer", "sharer.php", "share", "share.php", "intent", "plugins",
    "dialog", "login", "login.php", "home.php", "shareArticle", "sharing",
}


@dataclass
class ExtractedSocial:
    platform: str
    url: str
    source_url: str


def _social_platform(host: str) -> str | None:
    host = host.lower()
    for domain, platform in SOCIAL_HOSTS.items():
        if host == domain or host.endswith("." + domain):
            return platform
    return None


def canonical_social_url(href: str, base_url: str = "") -> tuple[str, str] | None:
    """Return (platform, canonical profile URL) for a social link, or None."""
    try:
        parts = urlsplit(urljoin(base_url, href.strip()))
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    platform = _social_platform(parts.hostname)
    if platform is None:
        return None

    segments = [s for s in parts.path.split("/") if s]
    if segments and segments[0] in NON_PROFILE_SEGMENTS:
        return None

    host = parts.hostname.lower()
    if platform == "youtube":
        if host.endswith("youtu.be"):
            return ("youtube", f"https://www.youtube.com/watch?v={segments[0]}") if segments else None
        if len(segments) >= 2 and segments[0] in ("channel", "user", "c"):
            return "youtube", f"https://www.youtube.com/{segments[0]}/{segments[1]}"
        if segments and segments[0].startswith("@"):
            return "youtube", f"https://www.youtube.com/{segments[0]}"
        return None

    if not segments:
        return None
    first = segments[0]

    if platform == "facebook":
        if first == "profile.php":
            profile_id = parse_qs(parts.query).get("id")
            if not profile_id:
                return None
            return "facebook", f"https://www.facebook.com/profile.php?id={profile_id[0]}"
        return "facebook", f"https://www.facebook.com/{first}"
    if platform == "instagram":
        return "instagram", f"https://www.instagram.com/{first}"
    if platform == "linkedin":
        return "linkedin", "https://www.linkedin.com/" + "/".join(segments)
    if platform == "twitter":
        return "twitter", f"https://twitter.com/{first}"
    if platform == "tiktok":
        if not first.startswith("@"):
            return None
        return "tiktok", f"https://www.tiktok.com/{first}"
    return None


# ------------------ structured data ------------------

def _walk_json_ld(node, key: str) -> Iterator[str]:
    if isinstance(node, dict):
        for k, v in node.items():
            if k == key:
                if isinstance(v, str):
                    yield v
                elif isinstance(v, list):
                    yield from (item for item in v if isinstance(item, str))
            else:
                yield from _walk_json_ld(v, key)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_json_ld(item, key)


def structured_values(soup: BeautifulSoup, key: str) -> list[str]:
    """Values of schema.org `key` (email, telephone) from JSON-LD blocks and microdata."""
    values: list[str] = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except ValueError:
            continue
        values.extend(_walk_json_ld(data, key))

    for el in soup.find_all(attrs={"itemprop": key}):
        value = el.get("content") or el.get("href") or el.get_text(" ", strip=True)
        if value:
            values.append(value)
    return values


# ------------------ extraction entry points ------------------

def _as_soup(markup) -> BeautifulSoup:
    if isinstance(markup, BeautifulSoup):
        return markup
    return BeautifulSoup(markup or "", "html.parser")


def extract_emails(markup, source_url: str, text: str | None = None) -> list[ExtractedEmail]:
    soup = _as_soup(markup)
    found: dict[str, ExtractedEmail] = {}

    def add(raw: str, context: str | None = None) -> None:
        email = normalize_email(raw)
        if email and email not in found:
            found[email] = ExtractedEmail(value=email, source_url=source_url, context=context or None)

    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if href.lower().startswith("mailto:"):
            add(href, a.get_text(" ", strip=True))

    for value in structured_values(soup, "email"):
        add(value)

    content = text if text is not None else visible_text(_as_soup(str(soup)))
    for match in EMAIL_RE.finditer(content):
        add(match.group(0), extract_context(content, match.group(0), 30))
    for pattern, dot in OBFUSCATED_EMAIL_PATTERNS:
        for match in pattern.finditer(content):
            local, domain = match.groups()
            add(f"{local}@{'.'.join(dot.split(domain))}", extract_context(content, match.group(0), 30))

    return list(found.values())


def extract_phones(markup, source_url: str, text: str | None = None) -> list[ExtractedPhone]:
    soup = _as_soup(markup)
    found: dict[str, ExtractedPhone] = {}

    def add(raw: str, context: str | None = None) -> None:
        phone = normalize_phone(raw)
        if phone and phone not in found:
            found[phone] = ExtractedPhone(value=phone, source_url=source_url,
                                          kind=phone_kind(phone), context=context or None)

    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if href.lower().startswith("tel:"):
            add(href[4:].split("?", 1)[0], a.get_text(" ", strip=True))

    for value in structured_values(soup, "telephone"):
        add(value)

    content = text if text is not None else visible_text(_as_soup(str(soup)))
    for match in GREEK_PHONE_RE.finditer(content):
        add(match.group(0), extract_context(content, match.group(0), 30))

    return list(found.values())


def extract_social(markup, base_url: str) -> list[ExtractedSocial]:
    """At most one profile per platform; the first link on the page wins."""
    soup = _as_soup(markup)
    found: dict[str, ExtractedSocial] = {}
    for a in soup.find_all("a", href=True):
        social = canonical_social_url(a["href"], base_url)
        if social is None:
            continue
        platform, url = social
        if platform not in found:
            found[platform] = ExtractedSocial(platform=platform, url=url, source_url=base_url)
    return list(found.values())


@dataclass
class PageContacts:
    emails: list[ExtractedEmail] = field(default_factory=list)
    phones: list[ExtractedPhone] = field(default_factory=list)
    socials: list[ExtractedSocial] = field(default_factory=list)


def extract_contacts(markup: str, source_url: str, text: str | None = None,
                     include_social: bool = True) -> PageContacts:
    """Run every extractor over one page, parsing the markup once."""
    soup = _as_soup(markup)
    if text is None:
        text = visible_text(_as_soup(markup))
    return PageContacts(
        emails=extract_emails(soup, source_url, text),
        phones=extract_phones(soup, source_url, text),
        socials=extract_social(soup, source_url) if include_social else [],
    )
