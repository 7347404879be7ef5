from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.domain.states import GuaranteeStatus, ReasonCategory, RequestType, ServiceType, Severity


class ValidationResult(BaseModel):
    passed: bool
    details: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _passed_iff_no_issues(self) -> "ValidationResult":
        if self.passed != (not self.issues):
            raise ValueError("passed must be true exactly when there are no issues")
        return self

    @classmethod
    def from_findings(cls, details: list[str], issues: list[str]) -> "ValidationResult":
        return cls(passed=not issues, details=list(details), issues=list(issues))


class BlockingReason(BaseModel):
    code: str
    message: str
    message_hi: str
    category: ReasonCategory
    severity: Severity
    resolution_hint: str | None = None
    resolution_hint_hi: str | None = None


class BackendAction(BaseModel):
    action_type: str
    description: str
    description_hi: str
    priority: int
    scheduled_for: datetime | None = None
    estimated_completion: str | None = None
    estimated_completion_hi: str | None = None


class CitizenMessage(BaseModel):
    title: str
    title_hi: str
    message: str
    message_hi: str


class CheckDetails(BaseModel):
    document_validation: ValidationResult
    service_availability: ValidationResult
    backend_dependencies: ValidationResult
    duplicate_check: ValidationResult
    timestamp: datetime


class GuaranteeCheckResult(BaseModel):
    guarantee_status: GuaranteeStatus
    request_type: RequestType
    service_type: ServiceType
    blocking_reasons: list[BlockingReason] = Field(default_factory=list)
    backend_actions: list[BackendAction] = Field(default_factory=list)
    check_details: CheckDetails
    citizen_message: CitizenMessage


class LockStatus(BaseModel):
    is_locked: bool
    lock_key: str
    existing_request_id: str | None = None
    message: str | None = None
    message_hi: str | None = None
