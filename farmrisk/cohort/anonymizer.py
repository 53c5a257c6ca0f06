from __future__ import annotations

"""
Privacy-floor peer cohorts.

Design intent:
- Cluster cohort source records on generalized attributes only (region bucket,
  crop pattern, input philosophy).
- Every published cluster holds at least k farms and at least l distinct
  outcomes; violating clusters are merged into their nearest same-region
  neighbour until the floors hold, and a regional catch-all that still
  violates is suppressed.
- Snapshots are immutable and published with one reference swap, so readers
  never see a half-built view.
"""

import datetime as _dt
import hashlib
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence, Union

import numpy as np

from farmrisk.context.regional_defaults import normalize_region
from farmrisk.internal_core.repositories import CohortSourceRecord, CohortSourceRepository

logger = logging.getLogger(__name__)

GENERALIZED = "*"


@dataclass(frozen=True)
class AggregateStats:
    cluster_id: str
    snapshot_id: str
    region: str
    crop_pattern: str
    input_philosophy: str
    farm_count: int
    mean_farm_size_ha: float
    outcome_proportions: dict[str, float]
    practice_proportions: dict[str, float]


@dataclass(frozen=True)
class NotAvailable:
    reason: str


LookupResult = Union[AggregateStats, NotAvailable]


@dataclass(frozen=True)
class AnonymizedCohort:
    cluster_id: str
    region: str
    crop_pattern: str
    input_philosophy: str
    farm_count: int
    distinct_outcomes: int
    mean_farm_size_ha: float
    outcome_proportions: dict[str, float]
    practice_proportions: dict[str, float]
    covers: frozenset[tuple[str, str]] = field(default_factory=frozenset)


@dataclass(frozen=True)
class CohortSnapshot:
    snapshot_id: str
    built_at: str
    min_k: int
    min_l: int
    cohorts: tuple[AnonymizedCohort, ...]
    source_farms: int
    suppressed_farms: int

    def lookup(self, region: str, pattern: str, input_philosophy: Optional[str] = None) -> LookupResult:
        region_key = normalize_region(region)
        pattern_key = _pattern_key(pattern)
        matches = [
            cohort
            for cohort in self.cohorts
            if cohort.region == region_key and any(crop == pattern_key for crop, _ in cohort.covers)
        ]
        if not matches:
            return NotAvailable(reason="no_cohort_meets_privacy_floor")
        if input_philosophy:
            preferred = [
                cohort for cohort in matches if (pattern_key, input_philosophy) in cohort.covers
            ]
            matches = preferred or matches
        best = sorted(matches, key=lambda item: (-item.farm_count, item.cluster_id))[0]
        return AggregateStats(
            cluster_id=best.cluster_id,
            snapshot_id=self.snapshot_id,
            region=best.region,
            crop_pattern=best.crop_pattern,
            input_philosophy=best.input_philosophy,
            farm_count=best.farm_count,
            mean_farm_size_ha=best.mean_farm_size_ha,
            outcome_proportions=dict(best.outcome_proportions),
            practice_proportions=dict(best.practice_proportions),
        )

    def summary(self) -> dict[str, object]:
        return {
            "snapshot_id": self.snapshot_id,
            "built_at": self.built_at,
            "min_k": self.min_k,
            "min_l": self.min_l,
            "cohort_count": len(self.cohorts),
            "source_farms": self.source_farms,
            "suppressed_farms": self.suppressed_farms,
            "regions": sorted({cohort.region for cohort in self.cohorts}),
        }


@dataclass
class _Cluster:
    region: str
    crop_pattern: str
    input_philosophy: str
    records: list[CohortSourceRecord]
    covers: set[tuple[str, str]]

    def distinct_outcomes(self) -> int:
        return len({item.outcome for item in self.records})

    def violates(self, min_k: int, min_l: int) -> bool:
        return len(self.records) < min_k or self.distinct_outcomes() < min_l

    def sort_key(self) -> tuple[int, str, str]:
        return (len(self.records), self.crop_pattern, self.input_philosophy)


def build_cohort_snapshot(
    records: Sequence[CohortSourceRecord],
    *,
    min_k: int = 5,
    min_l: int = 2,
) -> CohortSnapshot:
    if min_k < 1 or min_l < 1:
        raise ValueError("min_k and min_l must be >= 1")

    outcome_vocab = sorted({item.outcome for item in records})
    practice_vocab = sorted({item.chosen_practice for item in records})
    max_size = max((float(item.farm_size_ha) for item in records), default=1.0) or 1.0

    by_region: dict[str, list[_Cluster]] = {}
    for cluster in _initial_clusters(records):
        by_region.setdefault(cluster.region, []).append(cluster)

    published: list[AnonymizedCohort] = []
    suppressed = 0
    for region in sorted(by_region):
        clusters, dropped = _enforce_floors(
            by_region[region],
            min_k=min_k,
            min_l=min_l,
            outcome_vocab=outcome_vocab,
            practice_vocab=practice_vocab,
            max_size=max_size,
        )
        suppressed += dropped
        published.extend(_to_cohort(cluster) for cluster in clusters)

    published.sort(key=lambda item: item.cluster_id)
    digest = hashlib.sha1(
        "|".join(f"{item.cluster_id}:{item.farm_count}" for item in published).encode("utf-8")
        + f"|k={min_k}|l={min_l}".encode("utf-8")
    ).hexdigest()[:12]
    return CohortSnapshot(
        snapshot_id=f"cohort-{digest}",
        built_at=_dt.datetime.now(_dt.timezone.utc).isoformat(),
        min_k=min_k,
        min_l=min_l,
        cohorts=tuple(published),
        source_farms=len(records),
        suppressed_farms=suppressed,
    )


def empty_snapshot(min_k: int = 5, min_l: int = 2) -> CohortSnapshot:
    return CohortSnapshot(
        snapshot_id="cohort-empty",
        built_at="",
        min_k=min_k,
        min_l=min_l,
        cohorts=(),
        source_farms=0,
        suppressed_farms=0,
    )


def _initial_clusters(records: Iterable[CohortSourceRecord]) -> list[_Cluster]:
    grouped: dict[tuple[str, str, str], list[CohortSourceRecord]] = {}
    for item in records:
        key = (normalize_region(item.region), _pattern_key(item.crop_pattern), item.input_philosophy.strip().lower())
        grouped.setdefault(key, []).append(item)
    return [
        _Cluster(region=region, crop_pattern=crop, input_philosophy=philosophy, records=items, covers={(crop, philosophy)})
        for (region, crop, philosophy), items in sorted(grouped.items())
    ]


def _enforce_floors(
    clusters: list[_Cluster],
    *,
    min_k: int,
    min_l: int,
    outcome_vocab: list[str],
    practice_vocab: list[str],
    max_size: float,
) -> tuple[list[_Cluster], int]:
    working = list(clusters)
    while True:
        violating = [item for item in working if item.violates(min_k, min_l)]
        if not violating:
            return working, 0
        if len(working) == 1:
            # Regional catch-all still below the floor: publish nothing for the region.
            return [], len(working[0].records)
        smallest = min(violating, key=lambda item: item.sort_key())
        others = [item for item in working if item is not smallest]
        target = _nearest(smallest, others, outcome_vocab, practice_vocab, max_size)
        working = [item for item in others if item is not target]
        working.append(_merge(smallest, target))


def _features(cluster: _Cluster, outcome_vocab: list[str], practice_vocab: list[str], max_size: float) -> np.ndarray:
    count = len(cluster.records)
    sizes = np.array([float(item.farm_size_ha) for item in cluster.records], dtype=float)
    outcomes = Counter(item.outcome for item in cluster.records)
    practices = Counter(item.chosen_practice for item in cluster.records)
    vector = [float(sizes.mean()) / max_size if count else 0.0]
    vector.extend(outcomes.get(name, 0) / count for name in outcome_vocab)
    vector.extend(practices.get(name, 0) / count for name in practice_vocab)
    return np.array(vector, dtype=float)


def _nearest(
    source: _Cluster,
    candidates: list[_Cluster],
    outcome_vocab: list[str],
    practice_vocab: list[str],
    max_size: float,
) -> _Cluster:
    origin = _features(source, outcome_vocab, practice_vocab, max_size)
    scored = []
    for candidate in candidates:
        # Categorical mismatches dominate the numeric distance.
        mismatch = float(candidate.crop_pattern != source.crop_pattern) + float(
            candidate.input_philosophy != source.input_philosophy
        )
        distance = mismatch + float(
            np.linalg.norm(origin - _features(candidate, outcome_vocab, practice_vocab, max_size))
        )
        scored.append((distance, candidate.sort_key(), candidate))
    scored.sort(key=lambda item: (item[0], item[1]))
    return scored[0][2]


def _merge(left: _Cluster, right: _Cluster) -> _Cluster:
    return _Cluster(
        region=left.region,
        crop_pattern=left.crop_pattern if left.crop_pattern == right.crop_pattern else GENERALIZED,
        input_philosophy=left.input_philosophy if left.input_philosophy == right.input_philosophy else GENERALIZED,
        records=left.records + right.records,
        covers=left.covers | right.covers,
    )


def _to_cohort(cluster: _Cluster) -> AnonymizedCohort:
    count = len(cluster.records)
    covers = frozenset(cluster.covers)
    cluster_id = "c-" + hashlib.sha1(
        (cluster.region + "|" + ";".join(f"{crop}/{phil}" for crop, phil in sorted(covers))).encode("utf-8")
    ).hexdigest()[:10]
    sizes = np.array([float(item.farm_size_ha) for item in cluster.records], dtype=float)
    return AnonymizedCohort(
        cluster_id=cluster_id,
        region=cluster.region,
        crop_pattern=cluster.crop_pattern,
        input_philosophy=cluster.input_philosophy,
        farm_count=count,
        distinct_outcomes=cluster.distinct_outcomes(),
        mean_farm_size_ha=round(float(sizes.mean()), 3),
        outcome_proportions=_proportions(item.outcome for item in cluster.records),
        practice_proportions=_proportions(item.chosen_practice for item in cluster.records),
        covers=covers,
    )


def _proportions(values: Iterable[str]) -> dict[str, float]:
    counts = Counter(values)
    total = sum(counts.values())
    return {name: round(count / total, 4) for name, count in sorted(counts.items())} if total else {}


def _pattern_key(pattern: str) -> str:
    return "_".join(str(pattern or "").strip().lower().split())


class CohortSnapshotStore:
    """Holds the current snapshot; readers take the reference without locking."""

    def __init__(self, initial: Optional[CohortSnapshot] = None):
        self._snapshot = initial or empty_snapshot()
        self._publish_lock = threading.Lock()

    def current(self) -> CohortSnapshot:
        return self._snapshot

    def publish(self, snapshot: CohortSnapshot) -> CohortSnapshot:
        with self._publish_lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(
            "cohort_snapshot_published snapshot_id=%s previous=%s cohorts=%s suppressed=%s",
            snapshot.snapshot_id,
            previous.snapshot_id,
            len(snapshot.cohorts),
            snapshot.suppressed_farms,
        )
        return previous

    def lookup(self, region: str, pattern: str, input_philosophy: Optional[str] = None) -> LookupResult:
        return self.current().lookup(region, pattern, input_philosophy)


class CohortRebuilder(threading.Thread):
    """Background writer that rebuilds and republishes the cohort snapshot."""

    def __init__(
        self,
        store: CohortSnapshotStore,
        repository: CohortSourceRepository,
        *,
        min_k: int = 5,
        min_l: int = 2,
        interval_sec: float = 3600.0,
        on_publish: Optional[Callable[[CohortSnapshot], None]] = None,
    ):
        super().__init__(name="cohort-rebuilder", daemon=True)
        self._store = store
        self._repository = repository
        self._min_k = min_k
        self._min_l = min_l
        self._interval_sec = max(float(interval_sec), 0.01)
        self._on_publish = on_publish
        self._stop_event = threading.Event()

    def rebuild_once(self) -> CohortSnapshot:
        snapshot = build_cohort_snapshot(
            self._repository.list_records(),
            min_k=self._min_k,
            min_l=self._min_l,
        )
        self._store.publish(snapshot)
        if self._on_publish is not None:
            self._on_publish(snapshot)
        return snapshot

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.rebuild_once()
            except Exception as exc:
                # A failed rebuild keeps the previous snapshot published.
                logger.warning("cohort_rebuild_failed error=%s", str(exc))
            self._stop_event.wait(self._interval_sec)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
