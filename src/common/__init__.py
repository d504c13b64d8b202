# ABOUTME: Makes the shared common package importable across scoring domains.
# ABOUTME: Re-exports the error taxonomy, normalization kernel and record store.

from .errors import AnalyticsError, InvalidInputError, NotFoundError, StoreConflictError
from .normalization import MetricWeight, categorize, clamp, normalize, round_half_up, weighted_percentage
from .store import InMemoryRecordStore, RecordStore

__all__ = [
    "AnalyticsError",
    "InMemoryRecordStore",
    "InvalidInputError",
    "MetricWeight",
    "NotFoundError",
    "RecordStore",
    "StoreConflictError",
    "categorize",
    "clamp",
    "normalize",
    "round_half_up",
    "weighted_percentage",
]
