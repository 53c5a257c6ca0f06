from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Union


class AdapterError(RuntimeError):
    def __init__(self, code: str, message: str, adapter_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.adapter_name = adapter_name


@dataclass(frozen=True)
class Unavailable:
    reason: str
    adapter_name: str = ""


@dataclass(frozen=True)
class AdapterQuery:
    region: str
    season: str
    crop: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


FetchResult = Union[dict[str, Any], Unavailable]


class DataAdapter(ABC):
    @abstractmethod
    def fetch(self, query: AdapterQuery) -> FetchResult: ...

    @abstractmethod
    def name(self) -> str: ...
