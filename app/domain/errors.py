from __future__ import annotations

from typing import Any


class SigmError(RuntimeError):
    pass


class CheckFailedError(SigmError):
    pass


class NotFoundError(SigmError):
    pass


class ConflictError(SigmError):
    pass


class AlreadyAcknowledgedError(ConflictError):
    pass


class AlreadySubmittedError(ConflictError):
    pass


class AlreadyLockedError(ConflictError):
    def __init__(self, lock_key: str, existing: dict[str, Any] | None = None) -> None:
        super().__init__(f"Request already locked: {lock_key}")
        self.lock_key = lock_key
        self.existing = existing or {}


class PreconditionFailedError(SigmError):
    pass
