from __future__ import annotations

from app.contracts.schemas import BackendAction, BlockingReason, CitizenMessage
from app.domain.states import GuaranteeStatus, ReasonCategory, Severity

BLOCKING_CATEGORIES = {ReasonCategory.DOCUMENT, ReasonCategory.SERVICE, ReasonCategory.DUPLICATE}


def resolve_status(
    blocking_reasons: list[BlockingReason],
    backend_actions: list[BackendAction],
) -> GuaranteeStatus:
    # Order matters: a blocking error wins over any backend signal.
    if any(r.severity == Severity.ERROR and r.category in BLOCKING_CATEGORIES for r in blocking_reasons):
        return GuaranteeStatus.BLOCKED

    if backend_actions or any(r.category == ReasonCategory.BACKEND for r in blocking_reasons):
        return GuaranteeStatus.NOT_GUARANTEED

    return GuaranteeStatus.GUARANTEED


def compose_citizen_message(
    status: GuaranteeStatus,
    blocking_reasons: list[BlockingReason],
    backend_actions: list[BackendAction],
) -> CitizenMessage:
    if status == GuaranteeStatus.GUARANTEED:
        return CitizenMessage(
            title="Guaranteed: This request will be completed without any repeat visit.",
            title_hi="गारंटीड: यह अनुरोध बिना किसी दोबारा आने के पूरा होगा।",
            message="All requirements are met. Your request will be processed immediately upon submission.",
            message_hi="सभी आवश्यकताएं पूरी हैं। सबमिशन के तुरंत बाद आपका अनुरोध संसाधित किया जाएगा।",
        )

    if status == GuaranteeStatus.NOT_GUARANTEED:
        first = backend_actions[0] if backend_actions else None
        eta = (first.estimated_completion if first else None) or "may take additional time"
        eta_hi = (first.estimated_completion_hi if first else None) or "अतिरिक्त समय लग सकता है"
        return CitizenMessage(
            title="Not Guaranteed: Additional backend action required, but no re-application needed.",
            title_hi="गारंटी नहीं: अतिरिक्त बैकएंड कार्रवाई आवश्यक है, लेकिन दोबारा आवेदन की जरूरत नहीं।",
            message=f"Your request will be accepted, but {eta}. You will NOT need to restart or resubmit this request.",
            message_hi=(
                f"आपका अनुरोध स्वीकार किया जाएगा, लेकिन {eta_hi}। "
                "आपको इस अनुरोध को दोबारा शुरू या फिर से जमा करने की जरूरत नहीं होगी।"
            ),
        )

    primary = next((r for r in blocking_reasons if r.severity == Severity.ERROR), None)
    return CitizenMessage(
        title="Cannot Proceed: Action Required",
        title_hi="आगे नहीं बढ़ सकते: कार्रवाई आवश्यक",
        message=primary.message if primary else "Please resolve the issues shown before proceeding.",
        message_hi=primary.message_hi if primary else "कृपया आगे बढ़ने से पहले दिखाई गई समस्याओं का समाधान करें।",
    )
