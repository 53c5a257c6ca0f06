"""
Farm context intake for the risk pipeline.

Design intent:
- Reject only structurally unusable identity/location input.
- Degrade everything else into explicit, provenance-tagged fallbacks.
"""
from __future__ import annotations

from .validator import (
    ContextValidationError,
    DataQualityIndicator,
    NormalizedFarmContext,
    QualityReport,
    validate_farm_context,
)

__all__ = [
    "ContextValidationError",
    "DataQualityIndicator",
    "NormalizedFarmContext",
    "QualityReport",
    "validate_farm_context",
]
