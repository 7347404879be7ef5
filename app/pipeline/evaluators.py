from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.contracts.payloads import BillPaymentData, CheckRequest, ComplaintData, NewConnectionData
from app.contracts.schemas import ValidationResult
from app.domain.request_types import RequestTypeConfig
from app.domain.states import RequestType
from app.infra.repositories import SigmRepository

MISSING_DOCUMENT = "MISSING_DOCUMENT"
SERVICE_DISRUPTED = "SERVICE_DISRUPTED"
AREA_NOT_SERVICEABLE = "AREA_NOT_SERVICEABLE"
TECHNICIAN_QUEUE_HIGH = "TECHNICIAN_QUEUE_HIGH"
SUPPORT_QUEUE_HIGH = "SUPPORT_QUEUE_HIGH"
DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
DUPLICATE_CONNECTION = "DUPLICATE_CONNECTION"
DUPLICATE_COMPLAINT = "DUPLICATE_COMPLAINT"


def issue(code: str, detail: str | None = None) -> str:
    return f"{code}:{detail}" if detail is not None else code


def split_issue(raw: str) -> tuple[str, str | None]:
    code, sep, detail = raw.partition(":")
    return code, (detail if sep else None)


@dataclass(frozen=True)
class CriteriaEvaluators:
    """The four independent pre-submission checks.

    Each method reads the store once or twice and returns a fresh ValidationResult,
    so any subset can run concurrently against the same request.
    """

    repo: SigmRepository
    technician_queue_threshold: int = 50
    support_queue_threshold: int = 100
    serviceable_pincodes: frozenset[str] = frozenset()
    default_region: str = "Assam"
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)

    def validate_documents(self, request: CheckRequest, config: RequestTypeConfig) -> ValidationResult:
        details: list[str] = []
        issues: list[str] = []

        if not config.required_documents:
            details.append("No documents required for this request type")
            return ValidationResult.from_findings(details, issues)

        # Only connection applications are checked against uploaded documents.
        if request.request_type != RequestType.NEW_CONNECTION:
            return ValidationResult.from_findings(details, issues)

        required = sorted(config.required_documents)
        details.append(f"Checking for required documents: {', '.join(required)}")
        uploaded = self.repo.list_user_document_types(request.user_id)
        for kind in required:
            if kind in uploaded:
                details.append(f"Found: {kind}")
            else:
                issues.append(issue(MISSING_DOCUMENT, kind))
        return ValidationResult.from_findings(details, issues)

    def check_service_availability(self, request: CheckRequest, config: RequestTypeConfig) -> ValidationResult:
        details: list[str] = []
        issues: list[str] = []

        alert = self.repo.find_active_alert(request.service_type.value, severity="critical")
        if alert:
            issues.append(issue(SERVICE_DISRUPTED, str(alert.get("title") or "Service disruption")))
            details.append(f"Active alert: {alert.get('id')}")
        else:
            details.append("No service disruptions in your area")

        data = request.data
        if config.service_area_check and isinstance(data, NewConnectionData) and data.pincode:
            if data.pincode in self.serviceable_pincodes:
                details.append(f"Area {data.pincode} is serviceable")
            else:
                issues.append(issue(AREA_NOT_SERVICEABLE, data.pincode))

        return ValidationResult.from_findings(details, issues)

    def check_backend_dependencies(self, request: CheckRequest, config: RequestTypeConfig) -> ValidationResult:
        details: list[str] = []
        issues: list[str] = []
        service_type = request.service_type.value

        if config.technician_required:
            data = request.data
            region = (data.state if isinstance(data, NewConnectionData) else None) or self.default_region
            pending = self.repo.count_pending_connections(service_type, region)
            if pending > self.technician_queue_threshold:
                issues.append(TECHNICIAN_QUEUE_HIGH)
                details.append(f"{pending} pending connection requests in queue")
            else:
                details.append("Technicians available for timely installation")

        if request.request_type == RequestType.BILL_PAYMENT:
            details.append("Payment gateway operational")

        if request.request_type == RequestType.COMPLAINT_REGISTRATION:
            open_count = self.repo.count_open_grievances(service_type)
            if open_count > self.support_queue_threshold:
                issues.append(SUPPORT_QUEUE_HIGH)
                details.append(f"{open_count} pending grievances in queue")
            else:
                details.append("Support staff available for prompt resolution")

        return ValidationResult.from_findings(details, issues)

    def check_duplicates(self, request: CheckRequest, config: RequestTypeConfig) -> ValidationResult:
        details: list[str] = []
        issues: list[str] = []
        window_start = self.clock() - timedelta(hours=config.duplicate_check_window)
        service_type = request.service_type.value
        data = request.data

        if isinstance(data, BillPaymentData) and data.bill_id:
            payment = self.repo.find_active_payment(data.bill_id)
            if payment:
                issues.append(issue(DUPLICATE_PAYMENT, str(payment.get("id"))))
        elif isinstance(data, NewConnectionData):
            connection = self.repo.find_pending_connection(
                request.user_id, service_type, window_start, address=data.address
            )
            if connection:
                ref = connection.get("connection_no") or connection.get("id")
                issues.append(issue(DUPLICATE_CONNECTION, str(ref)))
        elif isinstance(data, ComplaintData) and data.category:
            grievance = self.repo.find_open_grievance(request.user_id, service_type, data.category, window_start)
            if grievance:
                ref = grievance.get("ticket_no") or grievance.get("id")
                issues.append(issue(DUPLICATE_COMPLAINT, str(ref)))

        if not issues:
            details.append("No duplicate requests found")
        return ValidationResult.from_findings(details, issues)
