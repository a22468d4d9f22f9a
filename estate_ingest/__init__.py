"""estate-ingest: listing ingestion, deduplication and opt-out processing."""

__all__ = ["__version__"]

__version__ = "0.1.0"
