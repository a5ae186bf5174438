"""Worker task lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    IDLE ──> STARTING ──> RUNNING ──> EXITED
                │
                └──> EXITED  (backend failed to spawn)

    Any non-terminal state ──> KILLED  (explicit termination)

EXITED and KILLED are terminal.
"""
from __future__ import annotations

from .models import TaskState

VALID_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.IDLE: {
        TaskState.STARTING,
        TaskState.KILLED,
    },
    TaskState.STARTING: {
        TaskState.RUNNING,
        TaskState.EXITED,
        TaskState.KILLED,
    },
    TaskState.RUNNING: {
        TaskState.EXITED,
        TaskState.KILLED,
    },
    TaskState.EXITED: set(),
    TaskState.KILLED: set(),
}


def validate_transition(current: TaskState, target: TaskState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = (
            ", ".join(sorted(s.value for s in allowed)) or "none (terminal)"
        )
        raise ValueError(
            f"Invalid state transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )


def is_terminal(state: TaskState) -> bool:
    return not VALID_TRANSITIONS.get(state)
