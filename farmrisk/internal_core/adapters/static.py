from __future__ import annotations

from typing import Any, Mapping

from .base import AdapterError, AdapterQuery, DataAdapter, FetchResult, Unavailable


class StaticDataAdapter(DataAdapter):
    """Serves preset payloads keyed by (region, season); used for local runs and tests."""

    def __init__(self, adapter_name: str, payloads: Mapping[tuple[str, str], Mapping[str, Any]]):
        self._adapter_name = adapter_name
        self._payloads = {
            (str(region).strip().lower(), str(season).strip().lower()): dict(payload)
            for (region, season), payload in payloads.items()
        }
        self.calls = 0

    def fetch(self, query: AdapterQuery) -> FetchResult:
        self.calls += 1
        key = (query.region.strip().lower(), query.season.strip().lower())
        payload = self._payloads.get(key)
        if payload is None:
            return Unavailable(reason="no_data_for_region_season", adapter_name=self._adapter_name)
        return dict(payload)

    def name(self) -> str:
        return self._adapter_name


class UnavailableAdapter(DataAdapter):
    def __init__(self, adapter_name: str = "unavailable", reason: str = "not_configured"):
        self._adapter_name = adapter_name
        self._reason = reason

    def fetch(self, query: AdapterQuery) -> FetchResult:
        return Unavailable(reason=self._reason, adapter_name=self._adapter_name)

    def name(self) -> str:
        return self._adapter_name


class FailingAdapter(DataAdapter):
    def __init__(self, adapter_name: str = "failing", message: str = "upstream source failed"):
        self._adapter_name = adapter_name
        self._message = message

    def fetch(self, query: AdapterQuery) -> FetchResult:
        raise AdapterError("FETCH_FAILED", self._message, self._adapter_name)

    def name(self) -> str:
        return self._adapter_name
