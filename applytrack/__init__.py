"""applytrack - job application tracker with email ingestion and web enrichment."""

__version__ = "0.1.0"
