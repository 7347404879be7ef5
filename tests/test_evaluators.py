from __future__ import annotations

from datetime import timedelta

import pytest

from app.domain.request_types import config_for
from app.pipeline.evaluators import CriteriaEvaluators, split_issue


@pytest.fixture
def evaluators(repo, clock) -> CriteriaEvaluators:
    return CriteriaEvaluators(
        repo=repo,
        technician_queue_threshold=50,
        support_queue_threshold=100,
        serviceable_pincodes=frozenset({"781001", "781005"}),
        default_region="Assam",
        clock=clock,
    )


def _run(evaluators, method, request):
    return getattr(evaluators, method)(request, config_for(request.request_type))


def test_split_issue_keeps_colons_in_detail():
    assert split_issue("SERVICE_DISRUPTED:Outage: north") == ("SERVICE_DISRUPTED", "Outage: north")
    assert split_issue("TECHNICIAN_QUEUE_HIGH") == ("TECHNICIAN_QUEUE_HIGH", None)


def test_documents_not_required_for_bill_payment(evaluators, make_request):
    result = _run(evaluators, "validate_documents", make_request("BILL_PAYMENT", billId="B1"))
    assert result.passed
    assert result.details == ["No documents required for this request type"]


def test_missing_documents_reported_per_kind(evaluators, make_request, seed):
    seed.documents("user-1", "ID_PROOF")
    result = _run(evaluators, "validate_documents", make_request("NEW_CONNECTION", pincode="781001"))
    assert not result.passed
    assert result.issues == ["MISSING_DOCUMENT:ADDRESS_PROOF"]
    assert "Found: ID_PROOF" in result.details


def test_documents_of_other_users_do_not_count(evaluators, make_request, seed):
    seed.documents("someone-else", "ID_PROOF", "ADDRESS_PROOF")
    result = _run(evaluators, "validate_documents", make_request("NEW_CONNECTION"))
    assert result.issues == ["MISSING_DOCUMENT:ADDRESS_PROOF", "MISSING_DOCUMENT:ID_PROOF"]


def test_document_request_is_not_checked_against_uploads(evaluators, make_request):
    result = _run(evaluators, "validate_documents", make_request("DOCUMENT_REQUEST", documentType="BIRTH"))
    assert result.passed
    assert result.details == []


def test_critical_alert_disrupts_service(evaluators, make_request, seed):
    seed.alert("ELECTRICITY", "Transformer failure")
    result = _run(evaluators, "check_service_availability", make_request("BILL_PAYMENT", billId="B1"))
    assert result.issues == ["SERVICE_DISRUPTED:Transformer failure"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"severity": "warning"},
        {"is_active": False},
    ],
)
def test_non_critical_or_inactive_alerts_are_ignored(evaluators, make_request, seed, kwargs):
    seed.alert("ELECTRICITY", "Planned maintenance", **kwargs)
    result = _run(evaluators, "check_service_availability", make_request("BILL_PAYMENT", billId="B1"))
    assert result.passed


def test_alert_for_other_service_is_ignored(evaluators, make_request, seed):
    seed.alert("WATER", "Pipe burst")
    result = _run(evaluators, "check_service_availability", make_request("BILL_PAYMENT", billId="B1"))
    assert result.passed


def test_unserviceable_pincode(evaluators, make_request):
    result = _run(evaluators, "check_service_availability", make_request("NEW_CONNECTION", pincode="781099"))
    assert result.issues == ["AREA_NOT_SERVICEABLE:781099"]


def test_numeric_pincode_is_coerced(evaluators, make_request):
    result = _run(evaluators, "check_service_availability", make_request("NEW_CONNECTION", pincode=781005))
    assert result.passed
    assert "Area 781005 is serviceable" in result.details


def test_missing_pincode_skips_area_check(evaluators, make_request):
    result = _run(evaluators, "check_service_availability", make_request("NEW_CONNECTION"))
    assert result.passed


def test_technician_queue_over_threshold(evaluators, make_request, seed):
    for i in range(51):
        seed.connection(f"other-{i}")
    result = _run(evaluators, "check_backend_dependencies", make_request("NEW_CONNECTION", pincode="781001"))
    assert result.issues == ["TECHNICIAN_QUEUE_HIGH"]
    assert "51 pending connection requests in queue" in result.details


def test_technician_queue_at_threshold_passes(evaluators, make_request, seed):
    for i in range(50):
        seed.connection(f"other-{i}")
    result = _run(evaluators, "check_backend_dependencies", make_request("NEW_CONNECTION"))
    assert result.passed


def test_technician_queue_counts_requested_state(evaluators, make_request, seed):
    for i in range(60):
        seed.connection(f"other-{i}", state="Meghalaya")
    default_region = _run(evaluators, "check_backend_dependencies", make_request("NEW_CONNECTION"))
    other_region = _run(evaluators, "check_backend_dependencies", make_request("NEW_CONNECTION", state="Meghalaya"))
    assert default_region.passed
    assert other_region.issues == ["TECHNICIAN_QUEUE_HIGH"]


def test_support_queue_over_threshold(evaluators, make_request, seed):
    for i in range(101):
        seed.grievance(f"other-{i}", status="IN_PROGRESS" if i % 2 else "SUBMITTED")
    result = _run(evaluators, "check_backend_dependencies", make_request("COMPLAINT_REGISTRATION", category="BILLING"))
    assert result.issues == ["SUPPORT_QUEUE_HIGH"]


def test_closed_grievances_do_not_load_support(evaluators, make_request, seed):
    for i in range(150):
        seed.grievance(f"other-{i}", status="RESOLVED")
    result = _run(evaluators, "check_backend_dependencies", make_request("COMPLAINT_REGISTRATION"))
    assert result.passed


def test_payment_gateway_detail(evaluators, make_request):
    result = _run(evaluators, "check_backend_dependencies", make_request("BILL_PAYMENT", billId="B1"))
    assert result.passed
    assert result.details == ["Payment gateway operational"]


@pytest.mark.parametrize("status", ["SUCCESS", "PENDING"])
def test_active_payment_is_duplicate(evaluators, make_request, seed, status):
    seed.payment("B1", status, payment_id="PAY-1")
    result = _run(evaluators, "check_duplicates", make_request("BILL_PAYMENT", billId="B1"))
    assert result.issues == ["DUPLICATE_PAYMENT:PAY-1"]


def test_failed_payment_is_not_duplicate(evaluators, make_request, seed):
    seed.payment("B1", "FAILED")
    result = _run(evaluators, "check_duplicates", make_request("BILL_PAYMENT", billId="B1"))
    assert result.passed
    assert result.details == ["No duplicate requests found"]


def test_bill_payment_without_bill_id_skips_lookup(evaluators, make_request, seed):
    seed.payment("B1", "SUCCESS")
    result = _run(evaluators, "check_duplicates", make_request("BILL_PAYMENT"))
    assert result.passed


def test_pending_connection_in_window_is_duplicate(evaluators, make_request, seed):
    seed.connection("user-1", connection_no="CON-42", address="12 Main Rd")
    result = _run(evaluators, "check_duplicates", make_request("NEW_CONNECTION", address="12 Main Rd"))
    assert result.issues == ["DUPLICATE_CONNECTION:CON-42"]


def test_connection_at_other_address_is_not_duplicate(evaluators, make_request, seed):
    seed.connection("user-1", connection_no="CON-42", address="12 Main Rd")
    result = _run(evaluators, "check_duplicates", make_request("NEW_CONNECTION", address="7 Hill St"))
    assert result.passed


def test_connection_outside_window_is_not_duplicate(evaluators, make_request, seed, clock):
    seed.connection("user-1", connection_no="CON-42")
    clock.advance(hours=721)
    result = _run(evaluators, "check_duplicates", make_request("NEW_CONNECTION"))
    assert result.passed


def test_open_grievance_same_category_is_duplicate(evaluators, make_request, seed, clock):
    row = seed.grievance("user-1", category="BILLING")
    clock.advance(hours=24)
    result = _run(evaluators, "check_duplicates", make_request("COMPLAINT_REGISTRATION", category="BILLING"))
    assert result.issues == [f"DUPLICATE_COMPLAINT:{row['id']}"]


def test_grievance_prefers_ticket_number(evaluators, make_request, seed):
    seed.grievance("user-1", category="BILLING", ticket_no="GRV-7")
    result = _run(evaluators, "check_duplicates", make_request("COMPLAINT_REGISTRATION", category="BILLING"))
    assert result.issues == ["DUPLICATE_COMPLAINT:GRV-7"]


def test_grievance_other_category_is_not_duplicate(evaluators, make_request, seed):
    seed.grievance("user-1", category="OUTAGE")
    result = _run(evaluators, "check_duplicates", make_request("COMPLAINT_REGISTRATION", category="BILLING"))
    assert result.passed


def test_old_grievance_is_outside_window(evaluators, make_request, seed, clock):
    seed.grievance("user-1", category="BILLING")
    clock.advance(days=7, seconds=1)
    result = _run(evaluators, "check_duplicates", make_request("COMPLAINT_REGISTRATION", category="BILLING"))
    assert result.passed


def test_meter_reading_has_no_duplicate_lookup(evaluators, make_request, seed):
    seed.payment("M1", "SUCCESS")
    result = _run(evaluators, "check_duplicates", make_request("METER_READING", connectionId="M1"))
    assert result.passed


def test_evaluators_are_deterministic(evaluators, make_request, seed):
    seed.documents("user-1", "ID_PROOF")
    request = make_request("NEW_CONNECTION", pincode="781099")
    first = _run(evaluators, "validate_documents", request)
    second = _run(evaluators, "validate_documents", request)
    assert first == second


def test_window_start_uses_clock(evaluators, make_request, seed, clock):
    seed.connection("user-1", created_at=(clock() - timedelta(hours=719)).isoformat())
    result = _run(evaluators, "check_duplicates", make_request("NEW_CONNECTION"))
    assert not result.passed
