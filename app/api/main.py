from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.config import settings
from app.contracts.payloads import CheckRequest
from app.domain.errors import (
    AlreadyLockedError,
    CheckFailedError,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
)
from app.domain.states import RequestType, ServiceType
from app.infra.repositories import RepositoryError, build_repository
from app.logging_config import setup_logging
from app.services.analytics_service import AnalyticsService
from app.services.guarantee_service import GuaranteeService


setup_logging()

app = FastAPI(title="Single-Interaction Guarantee API", version="1.0.0")
_repo, _using_supabase, _repo_warning = build_repository(settings)
service = GuaranteeService(_repo, settings)
analytics_service = AnalyticsService(_repo)


def get_service() -> GuaranteeService:
    return service


def get_analytics_service() -> AnalyticsService:
    return analytics_service


class CheckBody(BaseModel):
    request_type: RequestType
    service_type: ServiceType
    data: dict[str, Any] = Field(default_factory=dict)


class AcknowledgeBody(BaseModel):
    sigm_log_id: str = Field(min_length=1)


class LockCheckBody(BaseModel):
    service_type: ServiceType
    request_type: RequestType
    identifier: str = Field(min_length=1)


class LockCreateBody(LockCheckBody):
    ttl_hours: int | None = Field(default=None, gt=0)
    request_id: str | None = None


class SubmissionBody(BaseModel):
    sigm_log_id: str = Field(min_length=1)
    request_id: str = Field(min_length=1)
    lock_identifier: str | None = None


class BackendActionUpdateBody(BaseModel):
    status: str
    notes: str | None = None


def _ctx(
    x_user_id: str = Header(..., alias="X-User-ID"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
    x_kiosk_id: str | None = Header(default=None, alias="X-Kiosk-ID"),
) -> dict[str, str | None]:
    return {
        "user_id": x_user_id.strip(),
        "role": (x_user_role or "").strip().upper() or None,
        "kiosk_id": (x_kiosk_id or "").strip() or None,
    }


@app.exception_handler(ValueError)
async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(PermissionError)
async def permission_error_handler(_request: Request, exc: PermissionError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(_request: Request, exc: ConflictError) -> JSONResponse:
    content: dict[str, Any] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, AlreadyLockedError):
        content["lock_key"] = exc.lock_key
        content["existing_request_id"] = exc.existing.get("linked_request_id")
    return JSONResponse(status_code=409, content=content)


@app.exception_handler(PreconditionFailedError)
async def precondition_handler(_request: Request, exc: PreconditionFailedError) -> JSONResponse:
    return JSONResponse(status_code=412, content={"detail": str(exc)})


@app.exception_handler(CheckFailedError)
@app.exception_handler(RepositoryError)
async def unavailable_handler(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "persistence": "supabase" if _using_supabase else "memory",
        "warning": _repo_warning,
    }


@app.post("/sigm/check")
def run_check(
    payload: CheckBody,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: GuaranteeService = Depends(get_service),
) -> dict[str, Any]:
    request = CheckRequest(
        request_type=payload.request_type,
        service_type=payload.service_type,
        user_id=str(ctx["user_id"]),
        kiosk_id=ctx["kiosk_id"],
        data=payload.data,
    )
    record_id, result = svc.check(request)
    return {"sigm_log_id": record_id, **result.model_dump(mode="json")}


@app.post("/sigm/acknowledge")
def acknowledge(
    payload: AcknowledgeBody,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: GuaranteeService = Depends(get_service),
) -> dict[str, Any]:
    row = svc.acknowledge(payload.sigm_log_id, str(ctx["user_id"]))
    return {"sigm_log_id": payload.sigm_log_id, "acknowledged_at": row.get("acknowledged_at")}


@app.post("/sigm/check-lock")
def check_lock(
    payload: LockCheckBody,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: GuaranteeService = Depends(get_service),
) -> dict[str, Any]:
    status = svc.check_lock(str(ctx["user_id"]), payload.service_type, payload.request_type, payload.identifier)
    return status.model_dump(mode="json")


@app.post("/sigm/lock")
def create_lock(
    payload: LockCreateBody,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: GuaranteeService = Depends(get_service),
) -> dict[str, Any]:
    lock_id = svc.create_lock(
        str(ctx["user_id"]),
        payload.service_type,
        payload.request_type,
        payload.identifier,
        ttl_hours=payload.ttl_hours,
        request_id=payload.request_id,
    )
    return {"lock_id": lock_id}


@app.post("/sigm/record-submission")
def record_submission(
    payload: SubmissionBody,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: GuaranteeService = Depends(get_service),
) -> dict[str, Any]:
    row = svc.record_submission(
        payload.sigm_log_id,
        str(ctx["user_id"]),
        payload.request_id,
        lock_identifier=payload.lock_identifier,
    )
    return {
        "sigm_log_id": payload.sigm_log_id,
        "request_id": payload.request_id,
        "submitted_at": row.get("submitted_at"),
    }


@app.get("/sigm/history")
def history(
    page: int = 1,
    limit: int = 10,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: GuaranteeService = Depends(get_service),
) -> dict[str, Any]:
    return svc.history(str(ctx["user_id"]), page=page, limit=limit)


@app.get("/sigm/analytics")
def analytics(
    period: str = "7d",
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return svc.summary(ctx["role"], period=period)


@app.get("/sigm/backend-actions")
def list_backend_actions(
    status: str = "PENDING",
    page: int = 1,
    limit: int = 20,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return svc.list_backend_actions(ctx["role"], status=status, page=page, limit=limit)


@app.put("/sigm/backend-actions/{action_id}")
def update_backend_action(
    action_id: str,
    payload: BackendActionUpdateBody,
    ctx: dict[str, str | None] = Depends(_ctx),
    svc: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return svc.update_backend_action(
        ctx["role"],
        str(ctx["user_id"]),
        action_id,
        payload.status,
        notes=payload.notes,
    )
