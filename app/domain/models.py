from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from app.domain.states import BackendActionStatus


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_ts(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class CheckRecord:
    user_id: str
    request_type: str
    service_type: str
    guarantee_status: str
    blocking_reasons: list[dict[str, Any]]
    backend_actions: list[dict[str, Any]]
    check_details: dict[str, Any]
    kiosk_id: str | None = None
    citizen_acknowledged: bool = False
    acknowledged_at: str | None = None
    request_submitted: bool = False
    submitted_at: str | None = None
    linked_request_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: str = field(default_factory=utc_now)

    def to_row(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RequestLock:
    user_id: str
    service_type: str
    request_type: str
    lock_key: str
    expires_at: str
    linked_request_id: str | None = None
    is_active: bool = True
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: str = field(default_factory=utc_now)

    def to_row(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueuedBackendAction:
    sigm_log_id: str
    user_id: str
    service_type: str
    request_type: str
    action_type: str
    action_required: str
    action_required_hi: str
    priority: int
    action_details: dict[str, Any]
    scheduled_for: str | None = None
    status: str = BackendActionStatus.PENDING.value
    assigned_to: str | None = None
    notes: str | None = None
    completed_at: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: str = field(default_factory=utc_now)

    def to_row(self) -> dict[str, Any]:
        return asdict(self)
