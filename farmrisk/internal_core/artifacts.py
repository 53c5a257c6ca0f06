from __future__ import annotations

"""
Versioned model artifact boundary.

Design intent:
- Analyzers consume trained artifacts through one narrow predict contract.
- Artifacts are swappable at runtime; every factor records the version used.
- Training lives outside this package.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import RLock
from typing import Mapping, Optional


@dataclass(frozen=True)
class ModelPrediction:
    label: str
    score: float
    model_version: str


class ModelArtifact(ABC):
    @abstractmethod
    def predict(self, features: Mapping[str, float]) -> ModelPrediction: ...

    @abstractmethod
    def version(self) -> str: ...


class ModelRegistry:
    def __init__(self, artifacts: Optional[Mapping[str, ModelArtifact]] = None):
        self._lock = RLock()
        self._artifacts: dict[str, ModelArtifact] = dict(artifacts or {})

    def register(self, name: str, artifact: ModelArtifact) -> None:
        with self._lock:
            self._artifacts[name] = artifact

    def get(self, name: str) -> Optional[ModelArtifact]:
        with self._lock:
            return self._artifacts.get(name)

    def snapshot(self) -> dict[str, ModelArtifact]:
        with self._lock:
            return dict(self._artifacts)

    def versions(self) -> dict[str, str]:
        with self._lock:
            return {name: artifact.version() for name, artifact in sorted(self._artifacts.items())}
