from __future__ import annotations

from enum import Enum


class RequestType(str, Enum):
    BILL_PAYMENT = "BILL_PAYMENT"
    NEW_CONNECTION = "NEW_CONNECTION"
    COMPLAINT_REGISTRATION = "COMPLAINT_REGISTRATION"
    DOCUMENT_REQUEST = "DOCUMENT_REQUEST"
    METER_READING = "METER_READING"


class ServiceType(str, Enum):
    ELECTRICITY = "ELECTRICITY"
    GAS = "GAS"
    WATER = "WATER"
    MUNICIPAL = "MUNICIPAL"


class GuaranteeStatus(str, Enum):
    GUARANTEED = "GUARANTEED"
    NOT_GUARANTEED = "NOT_GUARANTEED"
    BLOCKED = "BLOCKED"


class ReasonCategory(str, Enum):
    DOCUMENT = "DOCUMENT"
    SERVICE = "SERVICE"
    BACKEND = "BACKEND"
    DUPLICATE = "DUPLICATE"
    OTHER = "OTHER"


class Severity(str, Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


class CheckState(str, Enum):
    CREATED = "CREATED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    SUBMITTED = "SUBMITTED"


class BackendActionStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ALLOWED_TRANSITIONS: dict[CheckState, set[CheckState]] = {
    CheckState.CREATED: {CheckState.ACKNOWLEDGED},
    CheckState.ACKNOWLEDGED: {CheckState.SUBMITTED},
    CheckState.SUBMITTED: set(),
}
