from __future__ import annotations
import os
import random
from dataclasses import dataclass

def _get_env_var(primary: str, fallback: str, default: str = None):
    """Get environment variable, checking primary name first, then fallback name.

    Args:
        primary: Primary environment variable name (e.g., LEADCRAWLER_DB)
        fallback: Fallback environment variable name (e.g., LEADS_DB)
        default: Default value if neither is set

    Returns:
        Environment variable value or default
    """
    value = os.getenv(primary)
    if value is not None:
        return value
    value = os.getenv(fallback)
    if value is not None:
        return value
    return default

DATA_DIR = _get_env_var("LEADCRAWLER_DATA", "LEADS_DATA", os.path.abspath("./data"))
DB_PATH = _get_env_var("LEADCRAWLER_DB", "LEADS_DB", os.path.join(DATA_DIR, "leadcrawler.db"))
EXPORTS_DIR = os.path.join(DATA_DIR, "exports")

# Global safety limits. These hold for every plan, internal users included.
MAX_PAGES_PER_CRAWL = 50
MAX_CRAWL_DEPTH = 10
MAX_CONCURRENT_CRAWLS = 10

DEFAULT_TIMEOUT = 12.0  # seconds
MAX_RESPONSE_SIZE = int(1.5 * 1024 * 1024)  # 1.5MB

# User agent strings for different scenarios
USER_AGENTS = {
    "default": "LeadCrawler/1.0 (+https://example.com/bot)",
    "chrome": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "firefox": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "safari": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "mobile": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
}

def get_user_agent(ua_type: str = "default") -> str:
    """Get a user agent string by type or return a random one if 'random' is specified."""
    if ua_type == "random":
        return random.choice(list(USER_AGENTS.values()))
    return USER_AGENTS.get(ua_type, USER_AGENTS["default"])

@dataclass
class FetchConfig:
    user_agent: str = os.getenv("LEADCRAWLER_UA", USER_AGENTS["default"])
    timeout: float = float(os.getenv("LEADCRAWLER_TIMEOUT", str(DEFAULT_TIMEOUT)))
    max_size: int = int(os.getenv("LEADCRAWLER_MAX_RESPONSE_SIZE", str(MAX_RESPONSE_SIZE)))
    http_backend: str = os.getenv("LEADCRAWLER_HTTP_BACKEND", "auto")  # "auto", "httpx", "aiohttp"
    enable_http2: bool = os.getenv("LEADCRAWLER_HTTP2", "1") == "1"
    accept_language: str = os.getenv("LEADCRAWLER_ACCEPT_LANGUAGE", "en-US,en;q=0.9,el;q=0.8")

    def __post_init__(self):
        self.http_backend = (self.http_backend or "auto").lower()

@dataclass
class CrawlOptions:
    """Per-run crawl ceilings. Plan limits are applied on top of these, never instead."""
    max_pages: int = int(os.getenv("LEADCRAWLER_MAX_PAGES", "15"))
    max_depth: int = int(os.getenv("LEADCRAWLER_MAX_DEPTH", "2"))
    concurrency: int = int(os.getenv("LEADCRAWLER_CONCURRENCY", "3"))
    per_request_timeout: float = float(os.getenv("LEADCRAWLER_TIMEOUT", str(DEFAULT_TIMEOUT)))
    inter_request_delay: float = float(os.getenv("LEADCRAWLER_DELAY", "0.5"))
    max_response_size: int = int(os.getenv("LEADCRAWLER_MAX_RESPONSE_SIZE", str(MAX_RESPONSE_SIZE)))
    follow_social_profiles: bool = os.getenv("LEADCRAWLER_FOLLOW_SOCIAL", "0") == "1"
    render_fallback: bool = os.getenv("LEADCRAWLER_RENDER_FALLBACK", "0") == "1"

    def fetch_config(self, user_agent: str | None = None) -> FetchConfig:
        cfg = FetchConfig(timeout=self.per_request_timeout, max_size=self.max_response_size)
        if user_agent:
            cfg.user_agent = user_agent
        return cfg

def apply_safety_caps(max_pages: int | None = None, max_depth: int | None = None,
                      concurrency: int | None = None) -> tuple[int, int, int]:
    """Clamp requested crawl parameters to the global safety limits."""
    pages = MAX_PAGES_PER_CRAWL if max_pages is None else max(0, min(max_pages, MAX_PAGES_PER_CRAWL))
    depth = MAX_CRAWL_DEPTH if max_depth is None else max(0, min(max_depth, MAX_CRAWL_DEPTH))
    workers = 1 if concurrency is None else max(1, min(concurrency, MAX_CONCURRENT_CRAWLS))
    return pages, depth, workers

def get_export_dir(dataset_id: str, base_dir: str | None = None) -> str:
    """Directory that holds export files for a dataset."""
    path = os.path.join(base_dir or EXPORTS_DIR, dataset_id)
    os.makedirs(path, exist_ok=True)
    return path
