"""
Exception types raised by the fetch layer and the exporter.

The crawl orchestrator and the dataset scheduler turn these into data
(error entries, failed jobs); they never propagate past a dataset batch.
"""

class LeadCrawlerError(Exception):
    """Base class for all leadcrawler errors."""

class InvalidUrl(LeadCrawlerError):
    """A URL could not be normalized into an absolute http(s) URL."""

class FetchError(LeadCrawlerError):
    """A single page could not be retrieved."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url
        self.message = message

class FetchTimeout(FetchError):
    pass

class TooLarge(FetchError):
    pass

class UnsupportedType(FetchError):
    pass

class NetworkError(FetchError):
    pass

class ExportError(LeadCrawlerError):
    """An export request was invalid (unknown dataset, format or tier)."""
