from __future__ import annotations

from typing import Any

from app.domain.states import ALLOWED_TRANSITIONS, CheckState


class InvalidTransitionError(ValueError):
    pass


def check_state_of(row: dict[str, Any]) -> CheckState:
    if row.get("request_submitted"):
        return CheckState.SUBMITTED
    if row.get("citizen_acknowledged"):
        return CheckState.ACKNOWLEDGED
    return CheckState.CREATED


class StateMachine:
    def transition(self, current: CheckState, target: CheckState) -> CheckState:
        allowed = ALLOWED_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise InvalidTransitionError(f"Invalid transition {current.value} -> {target.value}")
        return target
