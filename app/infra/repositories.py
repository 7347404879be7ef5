from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from threading import RLock
from typing import Any
from uuid import UUID, uuid4

from app.config import Settings
from app.domain.errors import AlreadyLockedError
from app.domain.models import parse_ts, utc_now
from app.infra.supabase_client import get_supabase_client

OPEN_GRIEVANCE_STATUSES = ("SUBMITTED", "IN_PROGRESS")
ACTIVE_PAYMENT_STATUSES = ("SUCCESS", "PENDING")
PENDING_CONNECTION_STATUS = "PENDING"

TABLE_USER_DOCUMENTS = "user_documents"
TABLE_SYSTEM_ALERTS = "system_alerts"
TABLE_SERVICE_CONNECTIONS = "service_connections"
TABLE_GRIEVANCES = "grievances"
TABLE_PAYMENTS = "payments"
TABLE_SIGM_LOGS = "sigm_logs"
TABLE_REQUEST_LOCKS = "request_locks"
TABLE_BACKEND_ACTIONS = "backend_action_queue"

# PostgREST caps each response at max_rows (1000 by default).
SUPABASE_PAGE_SIZE = 1000


class RepositoryError(RuntimeError):
    pass


class SigmRepository:
    # Collaborator reads used by the criteria evaluators.
    def list_user_document_types(self, user_id: str) -> set[str]:
        raise NotImplementedError

    def find_active_alert(self, service_type: str, severity: str = "critical") -> dict[str, Any] | None:
        raise NotImplementedError

    def count_pending_connections(self, service_type: str, region: str) -> int:
        raise NotImplementedError

    def count_open_grievances(self, service_type: str) -> int:
        raise NotImplementedError

    def find_active_payment(self, bill_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def find_pending_connection(
        self, user_id: str, service_type: str, since: datetime, address: str | None = None
    ) -> dict[str, Any] | None:
        raise NotImplementedError

    def find_open_grievance(
        self, user_id: str, service_type: str, category: str, since: datetime
    ) -> dict[str, Any] | None:
        raise NotImplementedError

    # Check records.
    def create_check_record(self, row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def get_check_record(self, record_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        raise NotImplementedError

    def update_check_record(
        self, record_id: str, updates: dict[str, Any], *, expected: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Apply `updates` only if every `expected` column still holds its value; None otherwise."""
        raise NotImplementedError

    def list_check_records(self, user_id: str, limit: int = 10, offset: int = 0) -> list[dict[str, Any]]:
        raise NotImplementedError

    def count_check_records(self, user_id: str) -> int:
        raise NotImplementedError

    def list_check_records_since(self, since: datetime) -> list[dict[str, Any]]:
        raise NotImplementedError

    # Request locks.
    def find_active_lock(self, lock_key: str, now: datetime) -> dict[str, Any] | None:
        raise NotImplementedError

    def acquire_lock(self, row: dict[str, Any], now: datetime) -> dict[str, Any]:
        """Insert `row` unless an active, unexpired lock with the same key exists.

        Raises AlreadyLockedError when another lock holds the key.
        """
        raise NotImplementedError

    def update_lock(self, lock_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        raise NotImplementedError

    # Backend action queue.
    def create_backend_action(self, row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def list_backend_actions(
        self, status: str | None = None, limit: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def count_backend_actions(self, status: str | None = None) -> int:
        raise NotImplementedError

    def update_backend_action(self, action_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        raise NotImplementedError


def _is_active_lock(row: dict[str, Any], lock_key: str, now: datetime) -> bool:
    if row.get("lock_key") != lock_key or not row.get("is_active", True):
        return False
    expires_at = parse_ts(row.get("expires_at"))
    return expires_at is not None and expires_at > now


class InMemoryRepository(SigmRepository):
    def __init__(self) -> None:
        self._lock = RLock()
        self._tables: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)

    def seed(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            item = {
                "id": row.get("id") or str(uuid4()),
                "created_at": row.get("created_at") or utc_now(),
                **row,
            }
            self._tables[table][str(item["id"])] = item
            return dict(item)

    def _rows(self, table: str) -> list[dict[str, Any]]:
        return list(self._tables[table].values())

    @staticmethod
    def _created_since(row: dict[str, Any], since: datetime) -> bool:
        created = parse_ts(row.get("created_at"))
        return created is not None and created >= since

    def list_user_document_types(self, user_id: str) -> set[str]:
        with self._lock:
            return {str(r.get("type")) for r in self._rows(TABLE_USER_DOCUMENTS) if r.get("user_id") == user_id}

    def find_active_alert(self, service_type: str, severity: str = "critical") -> dict[str, Any] | None:
        with self._lock:
            rows = [
                r
                for r in self._rows(TABLE_SYSTEM_ALERTS)
                if r.get("service_type") == service_type and r.get("is_active") and r.get("severity") == severity
            ]
            rows.sort(key=lambda r: str(r.get("created_at", "")), reverse=True)
            return dict(rows[0]) if rows else None

    def count_pending_connections(self, service_type: str, region: str) -> int:
        with self._lock:
            return sum(
                1
                for r in self._rows(TABLE_SERVICE_CONNECTIONS)
                if r.get("status") == PENDING_CONNECTION_STATUS
                and r.get("service_type") == service_type
                and r.get("state") == region
            )

    def count_open_grievances(self, service_type: str) -> int:
        with self._lock:
            return sum(
                1
                for r in self._rows(TABLE_GRIEVANCES)
                if r.get("status") in OPEN_GRIEVANCE_STATUSES and r.get("service_type") == service_type
            )

    def find_active_payment(self, bill_id: str) -> dict[str, Any] | None:
        with self._lock:
            for r in self._rows(TABLE_PAYMENTS):
                if r.get("bill_id") == bill_id and r.get("status") in ACTIVE_PAYMENT_STATUSES:
                    return dict(r)
            return None

    def find_pending_connection(
        self, user_id: str, service_type: str, since: datetime, address: str | None = None
    ) -> dict[str, Any] | None:
        with self._lock:
            for r in self._rows(TABLE_SERVICE_CONNECTIONS):
                if (
                    r.get("user_id") == user_id
                    and r.get("service_type") == service_type
                    and r.get("status") == PENDING_CONNECTION_STATUS
                    and (address is None or r.get("address") == address)
                    and self._created_since(r, since)
                ):
                    return dict(r)
            return None

    def find_open_grievance(
        self, user_id: str, service_type: str, category: str, since: datetime
    ) -> dict[str, Any] | None:
        with self._lock:
            for r in self._rows(TABLE_GRIEVANCES):
                if (
                    r.get("user_id") == user_id
                    and r.get("service_type") == service_type
                    and r.get("category") == category
                    and r.get("status") in OPEN_GRIEVANCE_STATUSES
                    and self._created_since(r, since)
                ):
                    return dict(r)
            return None

    def create_check_record(self, row: dict[str, Any]) -> dict[str, Any]:
        return self.seed(TABLE_SIGM_LOGS, row)

    def get_check_record(self, record_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        with self._lock:
            row = self._tables[TABLE_SIGM_LOGS].get(record_id)
            if not row or (user_id is not None and row.get("user_id") != user_id):
                return None
            return dict(row)

    def update_check_record(
        self, record_id: str, updates: dict[str, Any], *, expected: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        with self._lock:
            existing = self._tables[TABLE_SIGM_LOGS].get(record_id)
            if not existing:
                return None
            for key, value in (expected or {}).items():
                if existing.get(key) != value:
                    return None
            existing.update(updates)
            return dict(existing)

    def list_check_records(self, user_id: str, limit: int = 10, offset: int = 0) -> list[dict[str, Any]]:
        with self._lock:
            rows = [r for r in self._rows(TABLE_SIGM_LOGS) if r.get("user_id") == user_id]
            rows.sort(key=lambda r: str(r.get("created_at", "")), reverse=True)
            return [dict(r) for r in rows[offset : offset + limit]]

    def count_check_records(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for r in self._rows(TABLE_SIGM_LOGS) if r.get("user_id") == user_id)

    def list_check_records_since(self, since: datetime) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._rows(TABLE_SIGM_LOGS) if self._created_since(r, since)]

    def find_active_lock(self, lock_key: str, now: datetime) -> dict[str, Any] | None:
        with self._lock:
            for r in self._rows(TABLE_REQUEST_LOCKS):
                if _is_active_lock(r, lock_key, now):
                    return dict(r)
            return None

    def acquire_lock(self, row: dict[str, Any], now: datetime) -> dict[str, Any]:
        lock_key = str(row["lock_key"])
        with self._lock:
            existing = self.find_active_lock(lock_key, now)
            if existing:
                raise AlreadyLockedError(lock_key, existing)
            return self.seed(TABLE_REQUEST_LOCKS, row)

    def update_lock(self, lock_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            existing = self._tables[TABLE_REQUEST_LOCKS].get(lock_id)
            if not existing:
                return None
            existing.update(updates)
            return dict(existing)

    def create_backend_action(self, row: dict[str, Any]) -> dict[str, Any]:
        return self.seed(TABLE_BACKEND_ACTIONS, row)

    def _backend_actions(self, status: str | None) -> list[dict[str, Any]]:
        rows = self._rows(TABLE_BACKEND_ACTIONS)
        if status:
            rows = [r for r in rows if r.get("status") == status]
        return sorted(rows, key=lambda r: (int(r.get("priority", 0)), str(r.get("created_at", ""))))

    def list_backend_actions(
        self, status: str | None = None, limit: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._backend_actions(status)[offset : offset + limit]]

    def count_backend_actions(self, status: str | None = None) -> int:
        with self._lock:
            return len(self._backend_actions(status))

    def update_backend_action(self, action_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            existing = self._tables[TABLE_BACKEND_ACTIONS].get(action_id)
            if not existing:
                return None
            existing.update(updates)
            return dict(existing)


def _is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _is_unique_violation(exc: Exception) -> bool:
    text = str(exc).lower()
    return "23505" in text or "duplicate key" in text


class SupabaseRepository(SigmRepository):
    def __init__(self, client: Any) -> None:
        self.client = client

    def _execute(self, query: Any, what: str) -> Any:
        try:
            return query.execute()
        except Exception as exc:
            raise RepositoryError(f"{what} failed: {exc}") from exc

    def _first(self, query: Any, what: str) -> dict[str, Any] | None:
        res = self._execute(query.limit(1), what)
        return dict(res.data[0]) if res.data else None

    def _count(self, query: Any, what: str) -> int:
        res = self._execute(query, what)
        return int(res.count or 0)

    def _insert_one(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        payload = dict(row)
        payload.setdefault("id", str(uuid4()))
        res = self._execute(self.client.table(table).insert(payload), f"Insert into {table}")
        if not res.data:
            raise RepositoryError(f"Insert failed for {table}")
        return dict(res.data[0])

    def _update_one(
        self, table: str, row_id: str, updates: dict[str, Any], expected: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        if not _is_uuid(row_id):
            return None
        q = self.client.table(table).update(dict(updates)).eq("id", row_id)
        for key, value in (expected or {}).items():
            q = q.eq(key, value)
        res = self._execute(q, f"Update of {table} {row_id}")
        return dict(res.data[0]) if res.data else None

    def list_user_document_types(self, user_id: str) -> set[str]:
        q = self.client.table(TABLE_USER_DOCUMENTS).select("type").eq("user_id", user_id)
        res = self._execute(q, "Document lookup")
        return {str(r.get("type")) for r in (res.data or [])}

    def find_active_alert(self, service_type: str, severity: str = "critical") -> dict[str, Any] | None:
        q = (
            self.client.table(TABLE_SYSTEM_ALERTS)
            .select("*")
            .eq("service_type", service_type)
            .eq("is_active", True)
            .eq("severity", severity)
            .order("created_at", desc=True)
        )
        return self._first(q, "Alert lookup")

    def count_pending_connections(self, service_type: str, region: str) -> int:
        q = (
            self.client.table(TABLE_SERVICE_CONNECTIONS)
            .select("id", count="exact")
            .eq("status", PENDING_CONNECTION_STATUS)
            .eq("service_type", service_type)
            .eq("state", region)
        )
        return self._count(q, "Pending connection count")

    def count_open_grievances(self, service_type: str) -> int:
        q = (
            self.client.table(TABLE_GRIEVANCES)
            .select("id", count="exact")
            .in_("status", list(OPEN_GRIEVANCE_STATUSES))
            .eq("service_type", service_type)
        )
        return self._count(q, "Open grievance count")

    def find_active_payment(self, bill_id: str) -> dict[str, Any] | None:
        q = (
            self.client.table(TABLE_PAYMENTS)
            .select("*")
            .eq("bill_id", bill_id)
            .in_("status", list(ACTIVE_PAYMENT_STATUSES))
        )
        return self._first(q, "Payment lookup")

    def find_pending_connection(
        self, user_id: str, service_type: str, since: datetime, address: str | None = None
    ) -> dict[str, Any] | None:
        q = (
            self.client.table(TABLE_SERVICE_CONNECTIONS)
            .select("*")
            .eq("user_id", user_id)
            .eq("service_type", service_type)
            .eq("status", PENDING_CONNECTION_STATUS)
            .gte("created_at", since.isoformat())
        )
        if address is not None:
            q = q.eq("address", address)
        return self._first(q, "Connection lookup")

    def find_open_grievance(
        self, user_id: str, service_type: str, category: str, since: datetime
    ) -> dict[str, Any] | None:
        q = (
            self.client.table(TABLE_GRIEVANCES)
            .select("*")
            .eq("user_id", user_id)
            .eq("service_type", service_type)
            .eq("category", category)
            .in_("status", list(OPEN_GRIEVANCE_STATUSES))
            .gte("created_at", since.isoformat())
        )
        return self._first(q, "Grievance lookup")

    def create_check_record(self, row: dict[str, Any]) -> dict[str, Any]:
        return self._insert_one(TABLE_SIGM_LOGS, row)

    def get_check_record(self, record_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        if not _is_uuid(record_id):
            return None
        q = self.client.table(TABLE_SIGM_LOGS).select("*").eq("id", record_id)
        if user_id is not None:
            q = q.eq("user_id", user_id)
        return self._first(q, "Check record lookup")

    def update_check_record(
        self, record_id: str, updates: dict[str, Any], *, expected: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        return self._update_one(TABLE_SIGM_LOGS, record_id, updates, expected)

    def list_check_records(self, user_id: str, limit: int = 10, offset: int = 0) -> list[dict[str, Any]]:
        q = (
            self.client.table(TABLE_SIGM_LOGS)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )
        res = self._execute(q, "Check history")
        return [dict(r) for r in (res.data or [])]

    def count_check_records(self, user_id: str) -> int:
        q = self.client.table(TABLE_SIGM_LOGS).select("id", count="exact").eq("user_id", user_id)
        return self._count(q, "Check history count")

    def list_check_records_since(self, since: datetime) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            q = (
                self.client.table(TABLE_SIGM_LOGS)
                .select("*")
                .gte("created_at", since.isoformat())
                .order("created_at")
                .order("id")
                .range(offset, offset + SUPABASE_PAGE_SIZE - 1)
            )
            batch = self._execute(q, "Check analytics").data or []
            rows.extend(dict(r) for r in batch)
            if len(batch) < SUPABASE_PAGE_SIZE:
                return rows
            offset += SUPABASE_PAGE_SIZE

    def find_active_lock(self, lock_key: str, now: datetime) -> dict[str, Any] | None:
        q = (
            self.client.table(TABLE_REQUEST_LOCKS)
            .select("*")
            .eq("lock_key", lock_key)
            .eq("is_active", True)
            .gt("expires_at", now.isoformat())
        )
        return self._first(q, "Lock lookup")

    def acquire_lock(self, row: dict[str, Any], now: datetime) -> dict[str, Any]:
        lock_key = str(row["lock_key"])
        params = {
            "p_id": row.get("id") or str(uuid4()),
            "p_user_id": row["user_id"],
            "p_service_type": row["service_type"],
            "p_request_type": row["request_type"],
            "p_lock_key": lock_key,
            "p_expires_at": row["expires_at"],
            "p_linked_request_id": row.get("linked_request_id"),
            "p_now": now.isoformat(),
        }
        try:
            res = self.client.rpc("acquire_request_lock", params).execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                raise AlreadyLockedError(lock_key, self.find_active_lock(lock_key, now)) from exc
            raise RepositoryError(f"Lock acquisition failed: {exc}") from exc

        data = res.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise AlreadyLockedError(lock_key, self.find_active_lock(lock_key, now))
        return dict(data)

    def update_lock(self, lock_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        return self._update_one(TABLE_REQUEST_LOCKS, lock_id, updates)

    def create_backend_action(self, row: dict[str, Any]) -> dict[str, Any]:
        return self._insert_one(TABLE_BACKEND_ACTIONS, row)

    def list_backend_actions(
        self, status: str | None = None, limit: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        q = self.client.table(TABLE_BACKEND_ACTIONS).select("*")
        if status:
            q = q.eq("status", status)
        q = q.order("priority").order("created_at").range(offset, offset + limit - 1)
        res = self._execute(q, "Backend action listing")
        return [dict(r) for r in (res.data or [])]

    def count_backend_actions(self, status: str | None = None) -> int:
        q = self.client.table(TABLE_BACKEND_ACTIONS).select("id", count="exact")
        if status:
            q = q.eq("status", status)
        return self._count(q, "Backend action count")

    def update_backend_action(self, action_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        return self._update_one(TABLE_BACKEND_ACTIONS, action_id, updates)


def build_repository(settings: Settings) -> tuple[SigmRepository, bool, str | None]:
    if settings.store_backend != "supabase":
        return InMemoryRepository(), False, None

    client, err = get_supabase_client(settings)
    if client is None:
        return InMemoryRepository(), False, f"{err}; using in-memory repository."

    try:
        # Connectivity + schema check on the owned tables.
        client.table(TABLE_SIGM_LOGS).select("id").limit(1).execute()
        client.table(TABLE_REQUEST_LOCKS).select("id").limit(1).execute()
        return SupabaseRepository(client), True, None
    except Exception as exc:
        return (
            InMemoryRepository(),
            False,
            "Supabase unavailable or schema mismatch "
            f"({exc}). Run `sql/schema.sql` and restart. "
            "Using in-memory repository.",
        )
