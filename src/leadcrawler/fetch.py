"""
Bounded page fetching.

`HttpFetcher` retrieves one URL with a hard wall-clock timeout, a hard
response-size ceiling and a content-type filter. It owns a single HTTP
client for its lifetime (open once, share across workers, close on
shutdown). `RenderingFetcher` satisfies the same contract through a
headless browser and is only used behind `FallbackFetcher`.

No retries happen here; the orchestrator decides what a failure means.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import aiohttp
import httpx

from .config import FetchConfig
from .errors import FetchTimeout, NetworkError, TooLarge, UnsupportedType

logger = logging.getLogger(__name__)

ACCEPTED_CONTENT_TYPES = ("text/html", "text/plain")

# Statuses that usually mean bot protection rather than a missing page
RENDER_RETRY_STATUSES = {401, 403, 429, 503}


@dataclass
class FetchResult:
    url: str
    final_url: str
    status: int
    content_type: str
    body: str


class Fetcher(Protocol):
    async def fetch(self, url: str) -> FetchResult: ...


def _get_compression_headers() -> Dict[str, str]:
    """Accept-Encoding advertising brotli; httpx decodes br through the brotli package."""
    return {"Accept-Encoding": "gzip, deflate, br"}


def _build_headers(cfg: FetchConfig) -> Dict[str, str]:
    return {
        "User-Agent": cfg.user_agent,
        "Accept": "text/html,text/plain,*/*;q=0.1",
        "Accept-Language": cfg.accept_language,
        **_get_compression_headers(),
    }


def _check_content_type(url: str, content_type: str) -> None:
    ct = (content_type or "").lower()
    if not any(accepted in ct for accepted in ACCEPTED_CONTENT_TYPES):
        raise UnsupportedType(url, f"Unsupported content type: {content_type or 'unknown'}")


def _check_content_length(url: str, content_length: Optional[str], max_size: int) -> None:
    if not content_length:
        return
    try:
        length = int(content_length)
    except ValueError:
        return
    if length > max_size:
        raise TooLarge(url, f"Response too large: {length} bytes")


def _decode_body(content: bytes, charset: Optional[str]) -> str:
    try:
        return content.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def _resolve_backend(cfg: FetchConfig) -> str:
    backend = (cfg.http_backend or "auto").lower()
    if backend == "auto":
        return "httpx" if cfg.enable_http2 else "aiohttp"
    return backend


class HttpFetcher:
    """Plain HTTP fetcher backed by httpx (default) or aiohttp."""

    def __init__(self, cfg: FetchConfig | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.cfg = cfg or FetchConfig()
        self._transport = transport
        # An injected transport only makes sense for httpx
        self.backend = "httpx" if transport is not None else _resolve_backend(self.cfg)
        self._client: httpx.AsyncClient | None = None
        self._session: aiohttp.ClientSession | None = None

    async def open(self) -> None:
        if self._client is not None or self._session is not None:
            return
        headers = _build_headers(self.cfg)
        if self.backend == "aiohttp":
            self._session = aiohttp.ClientSession(headers=headers)
        else:
            self._client = httpx.AsyncClient(
                http2=self.cfg.enable_http2,
                headers=headers,
                timeout=httpx.Timeout(self.cfg.timeout),
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpFetcher":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch one URL. Raises FetchTimeout, TooLarge, UnsupportedType or NetworkError."""
        await self.open()
        fetch_coro = self._fetch_aiohttp(url) if self.backend == "aiohttp" else self._fetch_httpx(url)
        try:
            return await asyncio.wait_for(fetch_coro, timeout=self.cfg.timeout)
        except asyncio.TimeoutError as e:
            raise FetchTimeout(url, f"Request timeout after {self.cfg.timeout:g}s") from e

    async def _fetch_httpx(self, url: str) -> FetchResult:
        max_size = self.cfg.max_size
        try:
            async with self._client.stream("GET", url) as response:
                content_type = response.headers.get("content-type", "")
                _check_content_type(url, content_type)
                _check_content_length(url, response.headers.get("content-length"), max_size)

                buffer = bytearray()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > max_size:
                        raise TooLarge(url, f"Response exceeded size limit: {len(buffer)} bytes")

                return FetchResult(
                    url=url,
                    final_url=str(response.url),
                    status=response.status_code,
                    content_type=content_type,
                    body=_decode_body(bytes(buffer), response.charset_encoding),
                )
        except httpx.TimeoutException as e:
            raise FetchTimeout(url, f"Request timeout after {self.cfg.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(url, str(e) or e.__class__.__name__) from e

    async def _fetch_aiohttp(self, url: str) -> FetchResult:
        max_size = self.cfg.max_size
        try:
            async with self._session.get(url, allow_redirects=True) as resp:
                content_type = resp.headers.get("Content-Type", "")
                _check_content_type(url, content_type)
                _check_content_length(url, resp.headers.get("Content-Length"), max_size)

                buffer = bytearray()
                async for chunk in resp.content.iter_chunked(64 * 1024):
                    buffer.extend(chunk)
                    if len(buffer) > max_size:
                        raise TooLarge(url, f"Response exceeded size limit: {len(buffer)} bytes")

                return FetchResult(
                    url=url,
                    final_url=str(resp.url),
                    status=resp.status,
                    content_type=content_type,
                    body=_decode_body(bytes(buffer), resp.charset),
                )
        except aiohttp.ClientError as e:
            raise NetworkError(url, str(e) or e.__class__.__name__) from e


# ---- JS rendering path via Playwright ----
# Usage: pip install .[js] && playwright install chromium
class RenderingFetcher:
    """Headless-browser fetcher. The browser is launched on first use and kept until close()."""

    def __init__(self, cfg: FetchConfig | None = None):
        self.cfg = cfg or FetchConfig()
        self._playwright = None
        self._browser = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        async with self._lock:
            if self._browser is not None:
                return
            from playwright.async_api import async_playwright
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=True)
            logger.info("Launched headless browser for rendering fallback")

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def fetch(self, url: str) -> FetchResult:
        try:
            await self.open()
        except ImportError as e:
            raise NetworkError(url, "Rendering fallback unavailable: playwright is not installed") from e

        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        context = await self._browser.new_context(user_agent=self.cfg.user_agent)
        try:
            page = await context.new_page()
            resp = await page.goto(url, timeout=self.cfg.timeout * 1000, wait_until="networkidle")
            content_type = resp.headers.get("content-type", "") if resp else "text/html"
            _check_content_type(url, content_type)
            html = await page.content()
            if len(html.encode("utf-8")) > self.cfg.max_size:
                raise TooLarge(url, f"Rendered page exceeded size limit: {len(html)} characters")
            return FetchResult(
                url=url,
                final_url=page.url,
                status=resp.status if resp else 0,
                content_type=content_type,
                body=html,
            )
        except PlaywrightTimeoutError as e:
            raise FetchTimeout(url, f"Render timeout after {self.cfg.timeout:g}s") from e
        except PlaywrightError as e:
            raise NetworkError(url, str(e)) from e
        finally:
            await context.close()


class FallbackFetcher:
    """Try `primary`; re-fetch through `fallback` on network errors or bot-protection statuses."""

    def __init__(self, primary, fallback):
        self.primary = primary
        self.fallback = fallback

    async def open(self) -> None:
        await self.primary.open()

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()

    async def __aenter__(self) -> "FallbackFetcher":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def fetch(self, url: str) -> FetchResult:
        try:
            result = await self.primary.fetch(url)
        except NetworkError as e:
            logger.debug("Primary fetch failed for %s (%s), retrying with renderer", url, e.message)
            return await self.fallback.fetch(url)
        if result.status in RENDER_RETRY_STATUSES:
            logger.debug("Primary fetch for %s returned %s, retrying with renderer", url, result.status)
            return await self.fallback.fetch(url)
        return result


def build_fetcher(cfg: FetchConfig, render_fallback: bool = False):
    """Fetcher for a crawl run: plain HTTP, optionally backed by the rendering engine."""
    fetcher = HttpFetcher(cfg)
    if render_fallback:
        return FallbackFetcher(fetcher, RenderingFetcher(cfg))
    return fetcher
