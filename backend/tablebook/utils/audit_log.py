from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.confirmed",
    "reservation.cancelled",
    "reservation.reactivated",
    "reservation.reminded",
]
AuditInitiator = Literal["customer", "staff", "system"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def status_change_action(status_from: Any, status_to: Any) -> AuditAction:
    previous = _enum_to_str(status_from)
    target = _enum_to_str(status_to)
    if target == "cancelled":
        return "reservation.cancelled"
    if previous == "cancelled":
        return "reservation.reactivated"
    return "reservation.confirmed"


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    reservation_id: int,
    reservation_date: Optional[str],
    reservation_time: Optional[str],
    guests: Optional[int],
    status_from: Any,
    status_to: Any,
    actor: Optional[str] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "actor": actor,
        "request_id": get_request_id(),
        "reservation_id": reservation_id,
        "date": reservation_date,
        "time": reservation_time,
        "guests": guests,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("failed to emit audit log") from exc
