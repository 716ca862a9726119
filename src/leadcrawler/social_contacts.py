"""
Contact pages on social profiles.

Facebook pages expose a `directory_contact_info` view and LinkedIn
companies an `about` view; both often list an email or phone that the
business website itself does not. Fetch failures are logged and skipped.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from .errors import FetchError
from .extractors import ExtractedEmail, ExtractedPhone, extract_emails, extract_phones

logger = logging.getLogger(__name__)


@dataclass
class SocialContactResult:
    emails: list[ExtractedEmail] = field(default_factory=list)
    phones: list[ExtractedPhone] = field(default_factory=list)
    pages_fetched: int = 0
    errors: list[str] = field(default_factory=list)


def social_identifier(url: str, platform: str) -> str | None:
    """Page name for facebook, company slug for linkedin."""
    try:
        segments = [s for s in urlsplit(url).path.split("/") if s]
    except ValueError:
        return None
    if not segments:
        return None
    if platform == "facebook":
        if segments[0] == "profile.php":
            return None
        return segments[0]
    if platform == "linkedin":
        if len(segments) >= 2 and segments[0] == "company":
            return segments[1]
        return segments[-1]
    return None


def contact_info_url(url: str, platform: str) -> str | None:
    identifier = social_identifier(url, platform)
    if not identifier:
        return None
    if platform == "facebook":
        return f"https://www.facebook.com/{identifier}/directory_contact_info"
    if platform == "linkedin":
        return f"https://www.linkedin.com/company/{identifier}/about/"
    return None


async def follow_social_profiles(fetcher, social: dict[str, str]) -> SocialContactResult:
    """Fetch the contact views of the facebook/linkedin profiles in `social`."""
    result = SocialContactResult()
    for platform in ("facebook", "linkedin"):
        profile = social.get(platform)
        if not profile:
            continue
        url = contact_info_url(profile, platform)
        if url is None:
            continue

        try:
            page = await fetcher.fetch(url)
        except FetchError as e:
            logger.debug("Social contact page %s failed: %s", url, e.message)
            result.errors.append(f"{url}: {e.message}")
            continue
        if page.status != 200:
            logger.debug("Social contact page %s returned HTTP %s", url, page.status)
            result.errors.append(f"{url}: HTTP {page.status}")
            continue

        result.pages_fetched += 1
        result.emails.extend(extract_emails(page.body, url))
        result.phones.extend(extract_phones(page.body, url))
    return result
