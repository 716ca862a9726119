"""
URL normalization and validation helpers.

All functions here are pure. `normalize` is the only one that raises;
`resolve` and `canonicalize` swallow malformed input so that a single bad
href never breaks page parsing.
"""
from __future__ import annotations
import re
from functools import lru_cache
from urllib.parse import urljoin, urlsplit, urlunsplit

import idna

from .errors import InvalidUrl

BLOCKED_EXTENSIONS = {
    "pdf", "jpg", "jpeg", "png", "gif", "webp", "svg",
    "mp4", "mp3", "wav", "avi", "mov",
    "zip", "rar", "7z", "tar", "gz",
    "doc", "docx", "xls", "xlsx", "ppt", "pptx",
    "exe", "dmg", "deb", "rpm",
}

# page file names that a schemeless value like "contact.html" ends with
PAGE_EXTENSIONS = {"html", "htm", "shtml", "xhtml", "php", "asp", "aspx", "jsp", "cgi", "xml", "json", "txt"}

DEFAULT_PORTS = {"http": 80, "https": 443}

_WHITESPACE_RE = re.compile(r"\s")
_TLD_RE = re.compile(r"^(?:[^\W\d_]{2,63}|xn--[a-z0-9-]+)$")
_IPV4_RE = re.compile(r"^\d{1,3}(?:\.\d{1,3}){3}$")


def _looks_like_host(host: str) -> bool:
    """A schemeless value is a host only if it is dotted and ends in a TLD-like label, not a file extension."""
    if _IPV4_RE.match(host):
        return True
    if "." not in host:
        return False
    tld = host.rstrip(".").rsplit(".", 1)[-1]
    if not _TLD_RE.match(tld):
        return False
    return tld not in PAGE_EXTENSIONS and tld not in BLOCKED_EXTENSIONS


def _format_netloc(host: str, port: int | None, scheme: str) -> str:
    if ":" in host:
        host = f"[{host}]"  # IPv6 literal
    if port and port != DEFAULT_PORTS.get(scheme):
        return f"{host}:{port}"
    return host


def normalize(url: str) -> str:
    """Normalize an absolute URL: force https, strip the fragment, trim whitespace.

    Protocol-relative URLs (``//host/path``) and schemeless hosts
    (``example.gr/contact``) are accepted. Bare relative paths are rejected
    because there is no base to resolve them against.
    """
    if url is None:
        raise InvalidUrl("Empty URL")
    candidate = url.strip()
    if not candidate:
        raise InvalidUrl("Empty URL")

    if candidate.startswith("//"):
        candidate = "https:" + candidate
    elif candidate.startswith("/"):
        raise InvalidUrl(f"Relative URL without base: {url}")

    try:
        parts = urlsplit(candidate)
        scheme = parts.scheme.lower()
        if scheme not in ("http", "https"):
            # "example.gr" and "example.gr:8080/x" parse with an empty or dotted scheme
            if scheme and "." not in scheme:
                raise InvalidUrl(f"Unsupported scheme '{parts.scheme}': {url}")
            parts = urlsplit("https://" + candidate)
            if not _looks_like_host(parts.hostname or ""):
                raise InvalidUrl(f"Relative URL without base: {url}")
    except ValueError as e:
        raise InvalidUrl(f"Invalid URL {url}: {e}") from e

    netloc = parts.netloc
    if not netloc or _WHITESPACE_RE.search(netloc):
        raise InvalidUrl(f"Invalid host: {url}")
    try:
        host = parts.hostname
        port = parts.port
    except ValueError as e:
        raise InvalidUrl(f"Invalid URL {url}: {e}") from e
    if not host:
        raise InvalidUrl(f"Invalid host: {url}")

    # Keep userinfo as given; lowercase the host part only.
    if "@" in netloc:
        userinfo = netloc.rsplit("@", 1)[0]
        netloc = f"{userinfo}@{_format_netloc(host, port, 'https')}"
    else:
        netloc = _format_netloc(host, port, "https")

    path = parts.path or "/"
    return urlunsplit(("https", netloc, path, parts.query, ""))


def resolve(base: str, relative: str) -> str | None:
    """Resolve `relative` against `base` and normalize. Returns None on malformed input."""
    if relative is None:
        return None
    try:
        ref = relative.strip()
        if ref.startswith(("http://", "https://")):
            return normalize(ref)
        return normalize(urljoin(base, ref))
    except (InvalidUrl, ValueError):
        return None


def _host_of(value: str) -> str:
    """Hostname of a URL, or of a bare domain like ``www.example.gr``."""
    value = (value or "").strip().lower()
    if "://" not in value:
        value = "//" + value
    try:
        return (urlsplit(value).hostname or "").lower()
    except ValueError:
        return ""


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def same_registrable_domain(a: str, b: str) -> bool:
    """Hostname match after dropping a leading ``www.``; subdomains of either side match."""
    host_a = _host_of(a)
    host_b = _host_of(b)
    if not host_a or not host_b:
        return False
    if host_a == host_b:
        return True
    norm_a = _strip_www(host_a)
    norm_b = _strip_www(host_b)
    return norm_a == norm_b or norm_a.endswith("." + norm_b) or norm_b.endswith("." + norm_a)


def is_crawlable(url: str) -> bool:
    """Only http/https URLs that do not point at a binary/document file."""
    try:
        parts = urlsplit(url)
        if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
            return False
    except ValueError:
        return False

    last_segment = parts.path.lower().rsplit("/", 1)[-1]
    if "." in last_segment:
        extension = last_segment.rsplit(".", 1)[1]
        if extension in BLOCKED_EXTENSIONS:
            return False
    return True


@lru_cache(maxsize=10000)
def canonicalize(url: str) -> str:
    """
    Canonical form used as the visited-set key:
    - lowercase scheme and host (punycode for international domains)
    - default port stripped
    - trailing slash removed except for the root path
    - query and fragment removed

    Cached with LRU cache (10,000 entries), the URL set of one site repeats a lot.
    """
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
        port = parts.port
    except (ValueError, AttributeError):
        return url
    if not parts.scheme or not host:
        return url

    scheme = parts.scheme.lower()
    try:
        host = idna.encode(host.lower()).decode("ascii")
    except (idna.IDNAError, UnicodeError):
        host = host.lower()

    path = parts.path.rstrip("/") or "/"
    return urlunsplit((scheme, _format_netloc(host, port, scheme), path, "", ""))


def extract_domain(url: str) -> str | None:
    """Lowercased hostname of `url`, or None if it has none."""
    host = _host_of(url)
    return host or None
