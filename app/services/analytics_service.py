from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from app.domain.errors import NotFoundError
from app.domain.states import BackendActionStatus, GuaranteeStatus
from app.infra.repositories import SigmRepository

ROLE_ADMIN = "ADMIN"
ROLE_STAFF = "STAFF"
ADMIN_ROLES = {ROLE_ADMIN, ROLE_STAFF}

PERIODS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def _rate(part: int, whole: int) -> int:
    # Half rounds up, e.g. 12.5 -> 13.
    return math.floor(part / whole * 100 + 0.5) if whole else 0


class AnalyticsService:
    """Admin views over logged checks and the backend action queue."""

    def __init__(self, repo: SigmRepository, clock: Callable[[], datetime] | None = None) -> None:
        self.repo = repo
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def summary(self, role: str | None, period: str = "7d") -> dict[str, Any]:
        self._authorize(role)
        if period not in PERIODS:
            period = "7d"
        rows = self.repo.list_check_records_since(self.clock() - PERIODS[period])

        statuses = Counter(str(r.get("guarantee_status")) for r in rows)
        total = len(rows)
        guaranteed = statuses[GuaranteeStatus.GUARANTEED.value]
        submitted = sum(1 for r in rows if r.get("request_submitted"))

        per_type: dict[str, dict[str, int]] = {}
        for r in rows:
            item = per_type.setdefault(str(r.get("request_type")), {"total": 0, "guaranteed": 0, "rate": 0})
            item["total"] += 1
            if r.get("guarantee_status") == GuaranteeStatus.GUARANTEED.value:
                item["guaranteed"] += 1
        for item in per_type.values():
            item["rate"] = _rate(item["guaranteed"], item["total"])

        lowest = sorted(per_type.items(), key=lambda kv: kv[1]["rate"])[:5]

        return {
            "period": period,
            "summary": {
                "total_checks": total,
                "guaranteed_count": guaranteed,
                "not_guaranteed_count": statuses[GuaranteeStatus.NOT_GUARANTEED.value],
                "blocked_count": statuses[GuaranteeStatus.BLOCKED.value],
                "submitted_after_check": submitted,
                "guaranteed_percentage": _rate(guaranteed, total),
                "repeat_visits_avoided": submitted,
                "pending_backend_actions": self.repo.count_backend_actions(BackendActionStatus.PENDING.value),
            },
            "service_breakdown": dict(Counter(str(r.get("service_type")) for r in rows)),
            "request_type_breakdown": per_type,
            "lowest_guarantee_services": [{"service": name, **data} for name, data in lowest],
        }

    def list_backend_actions(
        self,
        role: str | None,
        status: str = BackendActionStatus.PENDING.value,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        self._authorize(role)
        page = max(1, page)
        limit = max(1, min(limit, 100))
        status_filter = None if status.lower() == "all" else BackendActionStatus(status).value
        rows = self.repo.list_backend_actions(status_filter, limit=limit, offset=(page - 1) * limit)
        total = self.repo.count_backend_actions(status_filter)
        return {
            "data": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
        }

    def update_backend_action(
        self,
        role: str | None,
        actor_id: str,
        action_id: str,
        status: str,
        notes: str | None = None,
    ) -> dict[str, Any]:
        self._authorize(role)
        new_status = BackendActionStatus(status)
        updates: dict[str, Any] = {"status": new_status.value, "assigned_to": actor_id}
        if notes is not None:
            updates["notes"] = notes
        if new_status == BackendActionStatus.COMPLETED:
            updates["completed_at"] = self.clock().isoformat()
        row = self.repo.update_backend_action(action_id, updates)
        if row is None:
            raise NotFoundError("Backend action not found")
        return row

    @staticmethod
    def _authorize(role: str | None) -> None:
        if (role or "").upper() not in ADMIN_ROLES:
            raise PermissionError("Admin or staff role required")
