from __future__ import annotations

"""
Read-side repository interfaces owned by the storage collaborator.

Design intent:
- The pipeline only reads farm contexts, historical weather and cohort source records.
- In-memory implementations back local runs and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import RLock
from typing import Iterable, Optional, Sequence

from .contracts import FarmContext


@dataclass(frozen=True)
class HistoricalRainfall:
    region: str
    season: str
    mean_mm: float
    std_mm: float
    years: int


@dataclass(frozen=True)
class CohortSourceRecord:
    farm_id: str
    region: str
    district: str
    crop_pattern: str
    input_philosophy: str
    farm_size_ha: float
    outcome: str
    chosen_practice: str


class FarmContextRepository(ABC):
    @abstractmethod
    def get(self, farm_id: str) -> Optional[FarmContext]: ...


class HistoricalWeatherRepository(ABC):
    @abstractmethod
    def seasonal_rainfall(self, region: str, season: str) -> Optional[HistoricalRainfall]: ...


class CohortSourceRepository(ABC):
    @abstractmethod
    def list_records(self) -> list[CohortSourceRecord]: ...


class InMemoryFarmContextRepository(FarmContextRepository):
    def __init__(self, contexts: Iterable[FarmContext] = ()):
        self._lock = RLock()
        self._contexts = {item.farm_id: item for item in contexts}

    def put(self, context: FarmContext) -> None:
        with self._lock:
            self._contexts[context.farm_id] = context

    def get(self, farm_id: str) -> Optional[FarmContext]:
        with self._lock:
            return self._contexts.get(farm_id)


class InMemoryHistoricalWeatherRepository(HistoricalWeatherRepository):
    def __init__(self, rows: Iterable[HistoricalRainfall] = ()):
        self._rows = {(row.region.lower(), row.season.lower()): row for row in rows}

    def seasonal_rainfall(self, region: str, season: str) -> Optional[HistoricalRainfall]:
        return self._rows.get((str(region).strip().lower(), str(season).strip().lower()))


class InMemoryCohortSourceRepository(CohortSourceRepository):
    def __init__(self, records: Sequence[CohortSourceRecord] = ()):
        self._lock = RLock()
        self._records = list(records)

    def extend(self, records: Iterable[CohortSourceRecord]) -> None:
        with self._lock:
            self._records.extend(records)

    def list_records(self) -> list[CohortSourceRecord]:
        with self._lock:
            return list(self._records)
