"""Data layer: ingestion pipeline and storage adapters."""
