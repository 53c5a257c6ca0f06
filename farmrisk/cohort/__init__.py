from .anonymizer import (
    AggregateStats,
    AnonymizedCohort,
    CohortRebuilder,
    CohortSnapshot,
    CohortSnapshotStore,
    LookupResult,
    NotAvailable,
    build_cohort_snapshot,
    empty_snapshot,
)

__all__ = [
    "AggregateStats",
    "AnonymizedCohort",
    "CohortRebuilder",
    "CohortSnapshot",
    "CohortSnapshotStore",
    "LookupResult",
    "NotAvailable",
    "build_cohort_snapshot",
    "empty_snapshot",
]
