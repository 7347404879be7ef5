from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping

from app.contracts.schemas import BackendAction, BlockingReason, ValidationResult
from app.domain.states import ReasonCategory, Severity
from app.pipeline.evaluators import (
    AREA_NOT_SERVICEABLE,
    DUPLICATE_COMPLAINT,
    DUPLICATE_CONNECTION,
    DUPLICATE_PAYMENT,
    MISSING_DOCUMENT,
    SERVICE_DISRUPTED,
    SUPPORT_QUEUE_HIGH,
    TECHNICIAN_QUEUE_HIGH,
    split_issue,
)

DOCUMENT_LABELS_HI = {
    "ID_PROOF": "पहचान प्रमाण",
    "ADDRESS_PROOF": "पता प्रमाण",
}

ReasonBuilder = Callable[[str | None], BlockingReason]


def _missing_document(kind: str | None) -> BlockingReason:
    kind = kind or "DOCUMENT"
    label = kind.replace("_", " ").lower()
    return BlockingReason(
        code="MISSING_DOCUMENT",
        message=f"Please upload {label} before proceeding",
        message_hi=f"कृपया आगे बढ़ने से पहले {DOCUMENT_LABELS_HI.get(kind, 'आवश्यक दस्तावेज')} अपलोड करें",
        category=ReasonCategory.DOCUMENT,
        severity=Severity.ERROR,
        resolution_hint="You can upload documents from your profile or at the Help Desk",
        resolution_hint_hi="आप अपनी प्रोफ़ाइल या हेल्प डेस्क पर दस्तावेज अपलोड कर सकते हैं",
    )


def _service_disrupted(title: str | None) -> BlockingReason:
    return BlockingReason(
        code="SERVICE_UNAVAILABLE",
        message=f"Service currently disrupted in your area: {title or 'outage'}",
        message_hi="सेवा वर्तमान में बाधित है",
        category=ReasonCategory.SERVICE,
        severity=Severity.ERROR,
        resolution_hint="Restoration work is in progress. Please try again once service resumes.",
        resolution_hint_hi="मरम्मत कार्य जारी है। सेवा बहाल होने पर पुनः प्रयास करें।",
    )


def _area_not_serviceable(pincode: str | None) -> BlockingReason:
    return BlockingReason(
        code="SERVICE_UNAVAILABLE",
        message=f"Service not yet available in your area (PIN: {pincode})",
        message_hi=f"आपके क्षेत्र में सेवा अभी उपलब्ध नहीं है (पिन: {pincode})",
        category=ReasonCategory.SERVICE,
        severity=Severity.ERROR,
        resolution_hint="Service expansion is in progress. Check back later.",
        resolution_hint_hi="सेवा विस्तार जारी है। बाद में पुनः जांचें।",
    )


def _duplicate_payment(_ref: str | None) -> BlockingReason:
    return BlockingReason(
        code="DUPLICATE_PAYMENT",
        message="A payment for this bill is already in process or completed",
        message_hi="इस बिल के लिए भुगतान पहले से प्रक्रिया में है या पूरा हो गया है",
        category=ReasonCategory.DUPLICATE,
        severity=Severity.ERROR,
    )


def _duplicate_connection(ref: str | None) -> BlockingReason:
    return BlockingReason(
        code="DUPLICATE_CONNECTION",
        message=f"You already have a pending connection application ({ref})",
        message_hi=f"आपका पहले से एक लंबित कनेक्शन आवेदन है ({ref})",
        category=ReasonCategory.DUPLICATE,
        severity=Severity.ERROR,
        resolution_hint="Check your existing application status in My Connections",
        resolution_hint_hi="मेरे कनेक्शन में अपने मौजूदा आवेदन की स्थिति जांचें",
    )


def _duplicate_complaint(ref: str | None) -> BlockingReason:
    # A repeat complaint is surfaced, not blocked: the citizen may add detail to the open ticket.
    return BlockingReason(
        code="DUPLICATE_COMPLAINT",
        message=f"A similar complaint is already being processed ({ref})",
        message_hi=f"इसी तरह की शिकायत पहले से संसाधित हो रही है ({ref})",
        category=ReasonCategory.DUPLICATE,
        severity=Severity.WARNING,
        resolution_hint="You can track your existing complaint or add more details to it",
        resolution_hint_hi="आप अपनी मौजूदा शिकायत को ट्रैक कर सकते हैं या उसमें और विवरण जोड़ सकते हैं",
    )


def _technician_queue_high(_detail: str | None) -> BlockingReason:
    return BlockingReason(
        code="HIGH_DEMAND",
        message="Due to high demand, installation may take longer than usual",
        message_hi="उच्च मांग के कारण, स्थापना में सामान्य से अधिक समय लग सकता है",
        category=ReasonCategory.BACKEND,
        severity=Severity.WARNING,
        resolution_hint="Your request will be queued and processed in order",
        resolution_hint_hi="आपका अनुरोध कतार में जोड़ा जाएगा और क्रम में संसाधित किया जाएगा",
    )


def _support_queue_high(_detail: str | None) -> BlockingReason:
    return BlockingReason(
        code="HIGH_SUPPORT_LOAD",
        message="Response time may be longer due to high volume of complaints",
        message_hi="शिकायतों की अधिक संख्या के कारण प्रतिक्रिया समय अधिक हो सकता है",
        category=ReasonCategory.BACKEND,
        severity=Severity.WARNING,
        resolution_hint="Your complaint will be addressed based on priority",
        resolution_hint_hi="आपकी शिकायत प्राथमिकता के आधार पर संबोधित की जाएगी",
    )


REASON_TABLE: Mapping[str, ReasonBuilder] = MappingProxyType(
    {
        MISSING_DOCUMENT: _missing_document,
        SERVICE_DISRUPTED: _service_disrupted,
        AREA_NOT_SERVICEABLE: _area_not_serviceable,
        TECHNICIAN_QUEUE_HIGH: _technician_queue_high,
        SUPPORT_QUEUE_HIGH: _support_queue_high,
        DUPLICATE_PAYMENT: _duplicate_payment,
        DUPLICATE_CONNECTION: _duplicate_connection,
        DUPLICATE_COMPLAINT: _duplicate_complaint,
    }
)

ACTION_TABLE: Mapping[str, BackendAction] = MappingProxyType(
    {
        TECHNICIAN_QUEUE_HIGH: BackendAction(
            action_type="SCHEDULE_TECHNICIAN",
            description="Schedule technician visit for new connection installation",
            description_hi="नए कनेक्शन स्थापना के लिए तकनीशियन का दौरा शेड्यूल करें",
            priority=3,
            estimated_completion="Within 7-10 working days",
            estimated_completion_hi="7-10 कार्य दिवसों के भीतर",
        ),
        SUPPORT_QUEUE_HIGH: BackendAction(
            action_type="QUEUE_FOR_REVIEW",
            description="Queue complaint for priority review by support team",
            description_hi="सहायता टीम द्वारा प्राथमिकता समीक्षा के लिए शिकायत कतार में जोड़ें",
            priority=5,
            estimated_completion="Initial response within 2-3 working days",
            estimated_completion_hi="प्रारंभिक प्रतिक्रिया 2-3 कार्य दिवसों के भीतर",
        ),
    }
)


def _unmapped(code: str, detail: str | None) -> BlockingReason:
    if code.startswith("DUPLICATE_"):
        return BlockingReason(
            code="DUPLICATE_REQUEST",
            message="A similar request already exists",
            message_hi="इसी तरह का अनुरोध पहले से मौजूद है",
            category=ReasonCategory.DUPLICATE,
            severity=Severity.WARNING,
        )
    return BlockingReason(
        code=code,
        message=f"Additional check reported: {detail or code}",
        message_hi=f"अतिरिक्त जांच में समस्या मिली: {detail or code}",
        category=ReasonCategory.OTHER,
        severity=Severity.WARNING,
    )


@dataclass
class CompiledIssues:
    blocking_reasons: list[BlockingReason] = field(default_factory=list)
    backend_actions: list[BackendAction] = field(default_factory=list)


def compile_issues(*results: ValidationResult) -> CompiledIssues:
    """Translate evaluator issues into reasons and actions, one reason per issue, in input order."""
    compiled = CompiledIssues()
    for result in results:
        for raw in result.issues:
            code, detail = split_issue(raw)
            builder = REASON_TABLE.get(code)
            reason = builder(detail) if builder else _unmapped(code, detail)
            compiled.blocking_reasons.append(reason)
            action = ACTION_TABLE.get(code)
            if action is not None:
                compiled.backend_actions.append(action.model_copy())
    return compiled
