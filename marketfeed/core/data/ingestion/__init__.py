"""Market data ingestion pipeline."""

from __future__ import annotations

from marketfeed.core.data.ingestion.batch_job import BatchJobRunner, normalize_identifiers, partition
from marketfeed.core.data.ingestion.mappers import map_etf_records, map_index_records
from marketfeed.core.data.ingestion.orchestrator import FeedDefinition, IngestionOrchestrator
from marketfeed.core.data.ingestion.validator import (
    ValidationResult,
    check_etf,
    check_indices,
    validate_etf,
    validate_indices,
)

__all__ = [
    "BatchJobRunner",
    "FeedDefinition",
    "IngestionOrchestrator",
    "ValidationResult",
    "check_etf",
    "check_indices",
    "map_etf_records",
    "map_index_records",
    "normalize_identifiers",
    "partition",
    "validate_etf",
    "validate_indices",
]
