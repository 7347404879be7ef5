from __future__ import annotations

import pytest

from app.contracts.schemas import BackendAction, BlockingReason
from app.domain.states import GuaranteeStatus, ReasonCategory, Severity
from app.pipeline.compiler import ACTION_TABLE
from app.pipeline.resolution import compose_citizen_message, resolve_status


def _reason(category: ReasonCategory, severity: Severity, code: str = "X", message: str = "msg") -> BlockingReason:
    return BlockingReason(
        code=code,
        message=message,
        message_hi=f"{message}-hi",
        category=category,
        severity=severity,
    )


def test_no_reasons_is_guaranteed():
    assert resolve_status([], []) == GuaranteeStatus.GUARANTEED


@pytest.mark.parametrize("category", [ReasonCategory.DOCUMENT, ReasonCategory.SERVICE, ReasonCategory.DUPLICATE])
def test_blocking_category_error_blocks(category):
    assert resolve_status([_reason(category, Severity.ERROR)], []) == GuaranteeStatus.BLOCKED


def test_backend_warning_downgrades_to_not_guaranteed():
    reasons = [_reason(ReasonCategory.BACKEND, Severity.WARNING)]
    assert resolve_status(reasons, []) == GuaranteeStatus.NOT_GUARANTEED


def test_backend_error_does_not_block():
    reasons = [_reason(ReasonCategory.BACKEND, Severity.ERROR)]
    assert resolve_status(reasons, []) == GuaranteeStatus.NOT_GUARANTEED


def test_backend_actions_alone_downgrade():
    assert resolve_status([], [ACTION_TABLE["TECHNICIAN_QUEUE_HIGH"]]) == GuaranteeStatus.NOT_GUARANTEED


def test_duplicate_error_wins_over_backend_warning():
    reasons = [
        _reason(ReasonCategory.BACKEND, Severity.WARNING),
        _reason(ReasonCategory.DUPLICATE, Severity.ERROR),
    ]
    actions = [ACTION_TABLE["TECHNICIAN_QUEUE_HIGH"]]
    assert resolve_status(reasons, actions) == GuaranteeStatus.BLOCKED


def test_non_backend_warnings_stay_guaranteed():
    reasons = [
        _reason(ReasonCategory.DUPLICATE, Severity.WARNING),
        _reason(ReasonCategory.OTHER, Severity.WARNING),
    ]
    assert resolve_status(reasons, []) == GuaranteeStatus.GUARANTEED


def test_other_category_error_does_not_block():
    assert resolve_status([_reason(ReasonCategory.OTHER, Severity.ERROR)], []) == GuaranteeStatus.GUARANTEED


def test_guaranteed_message_is_fixed():
    msg = compose_citizen_message(GuaranteeStatus.GUARANTEED, [], [])
    assert msg.title.startswith("Guaranteed")
    assert msg.title_hi.startswith("गारंटीड")


def test_not_guaranteed_message_uses_first_action_estimate():
    actions = [ACTION_TABLE["TECHNICIAN_QUEUE_HIGH"], ACTION_TABLE["SUPPORT_QUEUE_HIGH"]]
    msg = compose_citizen_message(GuaranteeStatus.NOT_GUARANTEED, [], actions)
    assert "Within 7-10 working days" in msg.message
    assert "2-3" not in msg.message
    assert "7-10 कार्य दिवसों के भीतर" in msg.message_hi
    assert "NOT need to restart or resubmit" in msg.message


def test_not_guaranteed_message_without_actions_falls_back():
    msg = compose_citizen_message(GuaranteeStatus.NOT_GUARANTEED, [], [])
    assert "may take additional time" in msg.message
    assert "अतिरिक्त समय लग सकता है" in msg.message_hi


def test_blocked_message_uses_first_error_reason():
    reasons = [
        _reason(ReasonCategory.DUPLICATE, Severity.WARNING, message="warning first"),
        _reason(ReasonCategory.DOCUMENT, Severity.ERROR, message="upload id"),
        _reason(ReasonCategory.SERVICE, Severity.ERROR, message="area closed"),
    ]
    msg = compose_citizen_message(GuaranteeStatus.BLOCKED, reasons, [])
    assert msg.message == "upload id"
    assert msg.message_hi == "upload id-hi"


def test_blocked_message_without_error_falls_back():
    msg = compose_citizen_message(GuaranteeStatus.BLOCKED, [], [])
    assert msg.message == "Please resolve the issues shown before proceeding."


def test_backend_action_estimate_can_be_absent():
    action = BackendAction(action_type="NOTIFY", description="d", description_hi="d-hi", priority=1)
    msg = compose_citizen_message(GuaranteeStatus.NOT_GUARANTEED, [], [action])
    assert "may take additional time" in msg.message
