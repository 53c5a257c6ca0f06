from __future__ import annotations

from .base import AdapterError, AdapterQuery, DataAdapter, FetchResult, Unavailable
from .static import FailingAdapter, StaticDataAdapter, UnavailableAdapter

__all__ = [
    "AdapterError",
    "AdapterQuery",
    "DataAdapter",
    "FailingAdapter",
    "FetchResult",
    "StaticDataAdapter",
    "Unavailable",
    "UnavailableAdapter",
]
