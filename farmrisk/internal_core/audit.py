from __future__ import annotations

import datetime as _dt
import logging
import re
from typing import Optional

from .contracts import AuditEvent, AuditEventType
from .event_store import InMemoryEventStore

logger = logging.getLogger(__name__)

MAX_DETAIL_CHARS = 200
REDACTED = "<redacted>"

# Farm record fields that identify a household or its finances.
_PRIVATE_FIELDS = (
    "farm_id",
    "district",
    "village",
    "latitude",
    "longitude",
    "working_capital",
    "household_workers",
    "hired_workers",
    "farm_size_ha",
)
_PRIVATE_PAIR = re.compile(r"\b(" + "|".join(_PRIVATE_FIELDS) + r")\s*[=:]\s*[^\s,;]+", re.IGNORECASE)
_COORDINATE_PAIR = re.compile(r"-?\d{1,3}\.\d{3,}\s*,\s*-?\d{1,3}\.\d{3,}")


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _sanitize_detail(detail: str) -> str:
    # Ids and codes only; farm fields and coordinates are masked before storage.
    detail = (detail or "").replace("\n", " ").strip()
    detail = _PRIVATE_PAIR.sub(lambda match: f"{match.group(1)}={REDACTED}", detail)
    detail = _COORDINATE_PAIR.sub(REDACTED, detail)
    if len(detail) > MAX_DETAIL_CHARS:
        detail = detail[:MAX_DETAIL_CHARS] + "..."
    return detail


def log_event(
    store: InMemoryEventStore,
    request_id: str,
    event_type: AuditEventType,
    code: str,
    detail: str,
    duration_ms: Optional[int] = None,
) -> None:
    event = AuditEvent(
        ts_iso=_ts_iso(),
        request_id=request_id,
        type=event_type,
        code=code,
        detail=_sanitize_detail(detail),
        duration_ms=duration_ms,
    )
    store.append_audit_event(event)
    logger.debug("audit_event request_id=%s type=%s code=%s", request_id, event_type, code)
