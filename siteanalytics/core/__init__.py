# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no I/O.

This module contains:
- Vocabularies, limits and error codes (constants, errors)
- Domain models (TrackedEvent, QueryRequest, ExperimentConfig, Exposure)
- Session merge statements (SessionProcessor)
- Flexible query compilation (QueryBuilder)
- Bucket hashing and the experiment assignment engine

All code here is storage-agnostic and easily unit-testable.
"""

from siteanalytics.core.errors import AnalyticsError, ErrorCode, error_response
from siteanalytics.core.experiments import ExperimentContext, VariantElement
from siteanalytics.core.hashing import assign_variant, bucket_for, inline_variants, string_hash
from siteanalytics.core.models import (
    ExperimentConfig,
    Exposure,
    QueryFilter,
    QueryRequest,
    TrackedEvent,
    Variant,
)
from siteanalytics.core.query_builder import CompiledQuery, QueryBuilder
from siteanalytics.core.session_processor import SessionDelta, SessionProcessor

__all__ = [
    "AnalyticsError",
    "CompiledQuery",
    "ErrorCode",
    "ExperimentConfig",
    "ExperimentContext",
    "Exposure",
    "QueryBuilder",
    "QueryFilter",
    "QueryRequest",
    "SessionDelta",
    "SessionProcessor",
    "TrackedEvent",
    "Variant",
    "VariantElement",
    "assign_variant",
    "bucket_for",
    "error_response",
    "inline_variants",
    "string_hash",
]
