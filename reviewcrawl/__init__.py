"""reviewcrawl — OpenTable restaurant review crawler."""

__version__ = "0.1.0"
