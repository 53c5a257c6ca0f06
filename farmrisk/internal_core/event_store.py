from __future__ import annotations

import datetime as _dt
import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional

from .contracts import AuditEvent, OutcomeEvent, PredictionRecord

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


class InMemoryEventStore:
    """
    Append-only sink for audit events, emitted predictions and outcome events.

    Predictions are keyed by prediction id so that a later outcome can be tied
    back to the model versions that produced the assessment.
    """

    def __init__(
        self,
        outcome_log_path: Optional[Path] = None,
        max_audit_events: int = 5000,
        max_predictions: int = 20000,
    ):
        self._lock = RLock()
        self._outcome_log_path = outcome_log_path
        self._max_audit_events = max_audit_events
        self._max_predictions = max_predictions
        self._audit_events: List[AuditEvent] = []
        self._predictions: Dict[str, PredictionRecord] = {}
        self._outcomes: List[OutcomeEvent] = []

    def append_audit_event(self, event: AuditEvent) -> None:
        with self._lock:
            self._audit_events.append(event)
            overflow = len(self._audit_events) - self._max_audit_events
            if overflow > 0:
                del self._audit_events[:overflow]

    def audit_events(self, request_id: Optional[str] = None) -> List[AuditEvent]:
        with self._lock:
            if request_id is None:
                return list(self._audit_events)
            return [item for item in self._audit_events if item.request_id == request_id]

    def record_prediction(
        self,
        *,
        prediction_id: str,
        farm_id: str,
        level: str,
        confidence: float,
        model_versions: Dict[str, str],
    ) -> PredictionRecord:
        record = PredictionRecord(
            prediction_id=prediction_id,
            farm_id=farm_id,
            level=level,  # type: ignore[arg-type]
            confidence=confidence,
            model_versions=dict(model_versions),
            recorded_at=_now_iso(),
        )
        with self._lock:
            existing = self._predictions.get(prediction_id)
            if existing is not None:
                return existing
            self._predictions[prediction_id] = record
            # Oldest predictions go first; outcomes for them then raise KeyError.
            while len(self._predictions) > self._max_predictions:
                del self._predictions[next(iter(self._predictions))]
            return record

    def get_prediction(self, prediction_id: str) -> PredictionRecord:
        with self._lock:
            record = self._predictions.get(prediction_id)
            if record is None:
                raise KeyError(f"Unknown prediction_id: {prediction_id}")
            return record

    def record_outcome(
        self,
        prediction_id: str,
        actual_outcome: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> OutcomeEvent:
        prediction = self.get_prediction(prediction_id)
        event = OutcomeEvent(
            prediction_id=prediction_id,
            actual_outcome=actual_outcome,
            farm_id=prediction.farm_id,
            predicted_level=prediction.level,
            model_versions=dict(prediction.model_versions),
            recorded_at=_now_iso(),
            meta=dict(meta or {}),
        )
        with self._lock:
            self._outcomes.append(event)
        self._append_outcome_log(event)
        return event

    def outcomes(self) -> List[OutcomeEvent]:
        with self._lock:
            return list(self._outcomes)

    def _append_outcome_log(self, event: OutcomeEvent) -> None:
        if self._outcome_log_path is None:
            return
        try:
            self._outcome_log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._outcome_log_path, "a", encoding="utf-8") as handle:
                handle.write(json.dumps(event.model_dump(), ensure_ascii=False) + "\n")
        except OSError as exc:
            # The in-memory copy is authoritative; the file is a convenience sink.
            logger.warning(
                "outcome_log_write_failed path=%s error=%s",
                str(self._outcome_log_path),
                str(exc),
            )
