from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from app.config import Settings
from app.contracts.payloads import CheckRequest
from app.infra.repositories import (
    TABLE_GRIEVANCES,
    TABLE_PAYMENTS,
    TABLE_SERVICE_CONNECTIONS,
    TABLE_SYSTEM_ALERTS,
    TABLE_USER_DOCUMENTS,
    InMemoryRepository,
)
from app.services.analytics_service import AnalyticsService
from app.services.guarantee_service import GuaranteeService

NOW = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def service(repo: InMemoryRepository, settings: Settings, clock: FakeClock) -> GuaranteeService:
    return GuaranteeService(repo, settings, clock=clock)


@pytest.fixture
def analytics(repo: InMemoryRepository, clock: FakeClock) -> AnalyticsService:
    return AnalyticsService(repo, clock=clock)


@pytest.fixture
def make_request():
    def _make(request_type: str, service_type: str = "ELECTRICITY", user_id: str = "user-1", **data):
        return CheckRequest(request_type=request_type, service_type=service_type, user_id=user_id, data=data)

    return _make


@pytest.fixture
def seed(repo: InMemoryRepository, clock: FakeClock):
    """Helpers for inserting collaborator records."""

    class Seeder:
        def documents(self, user_id: str, *kinds: str) -> None:
            for kind in kinds:
                repo.seed(TABLE_USER_DOCUMENTS, {"user_id": user_id, "type": kind})

        def alert(self, service_type: str, title: str, severity: str = "critical", is_active: bool = True) -> dict:
            return repo.seed(
                TABLE_SYSTEM_ALERTS,
                {"service_type": service_type, "title": title, "severity": severity, "is_active": is_active},
            )

        def payment(self, bill_id: str, status: str, payment_id: str = "PAY-1") -> dict:
            return repo.seed(TABLE_PAYMENTS, {"id": payment_id, "bill_id": bill_id, "status": status})

        def connection(self, user_id: str, service_type: str = "ELECTRICITY", state: str = "Assam", **extra) -> dict:
            row = {
                "user_id": user_id,
                "service_type": service_type,
                "status": "PENDING",
                "state": state,
                "created_at": clock().isoformat(),
                **extra,
            }
            return repo.seed(TABLE_SERVICE_CONNECTIONS, row)

        def grievance(self, user_id: str, service_type: str = "ELECTRICITY", **extra) -> dict:
            row = {
                "user_id": user_id,
                "service_type": service_type,
                "status": "SUBMITTED",
                "created_at": clock().isoformat(),
                **extra,
            }
            return repo.seed(TABLE_GRIEVANCES, row)

    return Seeder()


class FakeResponse:
    def __init__(self, data: list[dict], count: int | None = None) -> None:
        self.data = data
        self.count = count


class FakeQuery:
    """Just enough of the PostgREST builder for SupabaseRepository, with the server's row cap."""

    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self.client = client
        self.table = table
        self.filters: list = []
        self.orders: list[tuple[str, bool]] = []
        self.window: tuple[int, int] | None = None
        self.max_count: int | None = None
        self.want_count = False
        self.patch: dict | None = None
        self.row: dict | None = None

    def select(self, _columns: str = "*", count: str | None = None) -> "FakeQuery":
        self.want_count = count == "exact"
        return self

    def insert(self, row: dict) -> "FakeQuery":
        self.row = dict(row)
        return self

    def update(self, patch: dict) -> "FakeQuery":
        self.patch = dict(patch)
        return self

    def eq(self, column: str, value) -> "FakeQuery":
        if column == "id" and self.table in self.client.uuid_tables:
            try:
                UUID(str(value))
            except ValueError:
                self.client.invalid_uuid = str(value)
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column: str, values) -> "FakeQuery":
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def gte(self, column: str, value) -> "FakeQuery":
        self.filters.append(lambda r: str(r.get(column)) >= value)
        return self

    def gt(self, column: str, value) -> "FakeQuery":
        self.filters.append(lambda r: str(r.get(column)) > value)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.orders.append((column, desc))
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.window = (start, end)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.max_count = n
        return self

    def execute(self) -> FakeResponse:
        self.client.executed += 1
        if self.client.invalid_uuid is not None:
            bad, self.client.invalid_uuid = self.client.invalid_uuid, None
            raise RuntimeError(f'22P02 invalid input syntax for type uuid: "{bad}"')

        rows = self.client.tables.setdefault(self.table, [])
        if self.row is not None:
            rows.append(self.row)
            return FakeResponse([dict(self.row)])

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        if self.patch is not None:
            for r in matched:
                r.update(self.patch)
            return FakeResponse([dict(r) for r in matched])

        for column, desc in reversed(self.orders):
            matched.sort(key=lambda r: str(r.get(column)), reverse=desc)
        total = len(matched)
        if self.window is not None:
            matched = matched[self.window[0] : self.window[1] + 1]
        if self.max_count is not None:
            matched = matched[: self.max_count]
        matched = matched[: self.client.max_rows]
        return FakeResponse([dict(r) for r in matched], total if self.want_count else None)


class FakeSupabaseClient:
    def __init__(self, max_rows: int = 1000) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.max_rows = max_rows
        self.uuid_tables = {"sigm_logs", "request_locks", "backend_action_queue"}
        self.invalid_uuid: str | None = None
        self.executed = 0

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()
