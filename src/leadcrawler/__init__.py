"""Contact discovery crawler for business websites."""

__version__ = "0.1.0"
