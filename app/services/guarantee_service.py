from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import quote

from app.config import Settings, settings as default_settings
from app.contracts.payloads import CheckRequest
from app.contracts.schemas import GuaranteeCheckResult, LockStatus
from app.domain.errors import (
    AlreadyAcknowledgedError,
    AlreadyLockedError,
    AlreadySubmittedError,
    CheckFailedError,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
)
from app.domain.models import CheckRecord, QueuedBackendAction, RequestLock
from app.domain.request_types import config_for
from app.domain.state_machine import InvalidTransitionError, StateMachine, check_state_of
from app.domain.states import CheckState, GuaranteeStatus, RequestType, ServiceType
from app.infra.repositories import SigmRepository, build_repository
from app.pipeline import CriteriaEvaluators, PipelineNodes, build_guarantee_dag

logger = logging.getLogger(__name__)

LOCKED_MESSAGE = "A similar request was recently submitted and is being processed."
LOCKED_MESSAGE_HI = "इसी तरह का एक अनुरोध हाल ही में सबमिट किया गया था और संसाधित किया जा रहा है।"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_lock_key(
    user_id: str,
    service_type: ServiceType | str,
    request_type: RequestType | str,
    identifier: str,
) -> str:
    # Parts are percent-encoded so a ":" inside a user id or identifier cannot collide with another key.
    parts = [user_id, ServiceType(service_type).value, RequestType(request_type).value, identifier]
    return ":".join(quote(str(part), safe="") for part in parts)


class GuaranteeService:
    def __init__(
        self,
        repo: SigmRepository | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or default_settings
        if repo is None:
            repo, _, warning = build_repository(self.settings)
            if warning:
                logger.warning(warning)
        self.repo = repo
        self.clock = clock or _utc_now
        self.sm = StateMachine()
        self.evaluators = CriteriaEvaluators(
            repo=self.repo,
            technician_queue_threshold=self.settings.technician_queue_threshold,
            support_queue_threshold=self.settings.support_queue_threshold,
            serviceable_pincodes=frozenset(self.settings.serviceable_pincodes),
            default_region=self.settings.default_region,
            clock=self.clock,
        )
        self.dag = build_guarantee_dag(PipelineNodes(self.evaluators), max_workers=self.settings.evaluator_workers)

    def run_check(self, request: CheckRequest) -> GuaranteeCheckResult:
        config = config_for(request.request_type)
        try:
            ctx = self.dag.run({"request": request, "config": config})
        except Exception as exc:
            logger.exception(
                "Guarantee check aborted for user=%s type=%s", request.user_id, request.request_type.value
            )
            raise CheckFailedError("Guarantee check could not be completed") from exc

        result: GuaranteeCheckResult = ctx["compose"]["result"]
        logger.info(
            "Guarantee check user=%s type=%s service=%s status=%s reasons=%s",
            request.user_id,
            request.request_type.value,
            request.service_type.value,
            result.guarantee_status.value,
            [r.code for r in result.blocking_reasons],
        )
        return result

    def check(self, request: CheckRequest) -> tuple[str, GuaranteeCheckResult]:
        result = self.run_check(request)
        record_id = self.log(result, request.user_id, request.kiosk_id)
        return record_id, result

    def log(self, result: GuaranteeCheckResult, user_id: str, kiosk_id: str | None = None) -> str:
        record = CheckRecord(
            user_id=user_id,
            kiosk_id=kiosk_id,
            request_type=result.request_type.value,
            service_type=result.service_type.value,
            guarantee_status=result.guarantee_status.value,
            blocking_reasons=[r.model_dump(mode="json") for r in result.blocking_reasons],
            backend_actions=[a.model_dump(mode="json") for a in result.backend_actions],
            check_details=result.check_details.model_dump(mode="json"),
            created_at=self.clock().isoformat(),
        )
        row = self.repo.create_check_record(record.to_row())
        return str(row["id"])

    def acknowledge(self, record_id: str, user_id: str) -> dict[str, Any]:
        row = self._owned_record(record_id, user_id)
        try:
            self.sm.transition(check_state_of(row), CheckState.ACKNOWLEDGED)
        except InvalidTransitionError as exc:
            logger.warning("Repeated acknowledgment rejected for check %s", record_id)
            raise AlreadyAcknowledgedError("Already acknowledged") from exc

        updated = self.repo.update_check_record(
            record_id,
            {"citizen_acknowledged": True, "acknowledged_at": self.clock().isoformat()},
            expected={"citizen_acknowledged": False},
        )
        if updated is None:
            raise AlreadyAcknowledgedError("Already acknowledged")
        logger.info("Check %s acknowledged by user=%s", record_id, user_id)
        return updated

    def record_submission(
        self,
        record_id: str,
        user_id: str,
        linked_request_id: str,
        lock_identifier: str | None = None,
    ) -> dict[str, Any]:
        row = self._owned_record(record_id, user_id)
        now = self.clock().isoformat()
        state = check_state_of(row)
        if state == CheckState.SUBMITTED:
            raise AlreadySubmittedError("Submission already recorded")

        updates: dict[str, Any] = {
            "request_submitted": True,
            "submitted_at": now,
            "linked_request_id": linked_request_id,
        }
        expected: dict[str, Any] = {"request_submitted": False}

        if state == CheckState.CREATED:
            if not self._auto_acknowledges(row):
                raise PreconditionFailedError("Must acknowledge guarantee status before submission")
            state = self.sm.transition(state, CheckState.ACKNOWLEDGED)
            updates.update({"citizen_acknowledged": True, "acknowledged_at": now})
            expected["citizen_acknowledged"] = False
            logger.info("Check %s auto-acknowledged on guaranteed submission", record_id)
        else:
            expected["citizen_acknowledged"] = True
        self.sm.transition(state, CheckState.SUBMITTED)

        updated = self.repo.update_check_record(record_id, updates, expected=expected)
        if updated is None:
            current = self.repo.get_check_record(record_id) or {}
            if current.get("request_submitted"):
                raise AlreadySubmittedError("Submission already recorded")
            raise ConflictError("Check record changed during submission")
        logger.info("Check %s submitted as request %s", record_id, linked_request_id)

        # The submission is committed at this point; a failure below leaves it SUBMITTED
        # without its queued actions or lock link, and needs manual follow-up.
        try:
            if updated.get("guarantee_status") == GuaranteeStatus.NOT_GUARANTEED.value:
                self.queue_backend_actions(updated)
            if lock_identifier:
                self._link_lock(updated, lock_identifier, linked_request_id)
        except Exception:
            logger.exception(
                "Check %s submitted as request %s but follow-up failed; backend actions or lock link missing",
                record_id,
                linked_request_id,
            )
            raise
        return updated

    def queue_backend_actions(self, record: dict[str, Any]) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for action in record.get("backend_actions") or []:
            item = QueuedBackendAction(
                sigm_log_id=str(record["id"]),
                user_id=str(record["user_id"]),
                service_type=str(record["service_type"]),
                request_type=str(record["request_type"]),
                action_type=str(action.get("action_type")),
                action_required=str(action.get("description")),
                action_required_hi=str(action.get("description_hi")),
                priority=int(action.get("priority", 0)),
                action_details=dict(action),
                scheduled_for=action.get("scheduled_for"),
                created_at=self.clock().isoformat(),
            )
            rows.append(self.repo.create_backend_action(item.to_row()))
        if rows:
            logger.info("Queued %d backend action(s) for check %s", len(rows), record["id"])
        return rows

    def check_lock(
        self,
        user_id: str,
        service_type: ServiceType | str,
        request_type: RequestType | str,
        identifier: str,
    ) -> LockStatus:
        lock_key = build_lock_key(user_id, service_type, request_type, identifier)
        existing = self.repo.find_active_lock(lock_key, self.clock())
        if not existing:
            return LockStatus(is_locked=False, lock_key=lock_key)
        return LockStatus(
            is_locked=True,
            lock_key=lock_key,
            existing_request_id=existing.get("linked_request_id"),
            message=LOCKED_MESSAGE,
            message_hi=LOCKED_MESSAGE_HI,
        )

    def create_lock(
        self,
        user_id: str,
        service_type: ServiceType | str,
        request_type: RequestType | str,
        identifier: str,
        ttl_hours: int | None = None,
        request_id: str | None = None,
    ) -> str:
        ttl = config_for(request_type).lock_duration if ttl_hours is None else ttl_hours
        if ttl <= 0:
            raise ValueError("Lock TTL must be positive")

        now = self.clock()
        lock = RequestLock(
            user_id=user_id,
            service_type=ServiceType(service_type).value,
            request_type=RequestType(request_type).value,
            lock_key=build_lock_key(user_id, service_type, request_type, identifier),
            expires_at=(now + timedelta(hours=ttl)).isoformat(),
            linked_request_id=request_id,
            created_at=now.isoformat(),
        )
        try:
            row = self.repo.acquire_lock(lock.to_row(), now)
        except AlreadyLockedError:
            logger.warning("Lock contention on %s", lock.lock_key)
            raise
        logger.info("Lock %s acquired for %dh", lock.lock_key, ttl)
        return str(row["id"])

    def history(self, user_id: str, page: int = 1, limit: int = 10) -> dict[str, Any]:
        page = max(1, page)
        limit = max(1, min(limit, 100))
        rows = self.repo.list_check_records(user_id, limit=limit, offset=(page - 1) * limit)
        total = self.repo.count_check_records(user_id)
        return {
            "data": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
        }

    def _owned_record(self, record_id: str, user_id: str) -> dict[str, Any]:
        row = self.repo.get_check_record(record_id, user_id=user_id)
        if not row:
            raise NotFoundError("Guarantee check not found")
        return row

    def _auto_acknowledges(self, row: dict[str, Any]) -> bool:
        return (
            self.settings.auto_acknowledge_guaranteed
            and row.get("guarantee_status") == GuaranteeStatus.GUARANTEED.value
        )

    def _link_lock(self, record: dict[str, Any], identifier: str, linked_request_id: str) -> None:
        lock_key = build_lock_key(record["user_id"], record["service_type"], record["request_type"], identifier)
        existing = self.repo.find_active_lock(lock_key, self.clock())
        if existing is None:
            try:
                self.create_lock(
                    record["user_id"],
                    record["service_type"],
                    record["request_type"],
                    identifier,
                    request_id=linked_request_id,
                )
                return
            except AlreadyLockedError as exc:
                existing = exc.existing or None
        if existing and not existing.get("linked_request_id"):
            self.repo.update_lock(str(existing["id"]), {"linked_request_id": linked_request_id})
