# core/runtime/events.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Callable, FrozenSet

DEFAULT_FUNCTION_ARN = "arn:aws:lambda:us-west-2:123412341234:function:Function"
REQUEST_ID_WIDTH = 12

# --- timing helpers ---
def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def format_request_id(counter: int) -> str:
    # Minimum width; ids past 12 digits keep growing instead of wrapping.
    return f"{counter:0{REQUEST_ID_WIDTH}d}"

# --- status ---
class EventStatus(Enum):
    QUEUED = "queued"
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def terminal(self) -> bool:
        return self in (EventStatus.SUCCESS, EventStatus.FAILURE)

ALLOWED_TRANSITIONS: Dict[EventStatus, FrozenSet[EventStatus]] = {
    EventStatus.QUEUED: frozenset({EventStatus.EXECUTING}),
    EventStatus.EXECUTING: frozenset({EventStatus.SUCCESS, EventStatus.FAILURE}),
    EventStatus.SUCCESS: frozenset(),
    EventStatus.FAILURE: frozenset(),
}

class InvalidTransition(Exception):
    """Raised when a status change would move an event backwards or out of a terminal state."""
    def __init__(self, request_id: str, current: EventStatus, target: EventStatus):
        super().__init__(f"event {request_id}: {current.value} -> {target.value} is not allowed")
        self.request_id = request_id
        self.current = current
        self.target = target

# --- event ---
@dataclass(eq=False)
class Event:
    """
    One synthetic invocation.
    Identity and payload are fixed at creation; status and outcome only move
    forward through mark_executing / mark_success / mark_failure.
    """
    aws_request_id: str
    payload: str
    function_arn: str = DEFAULT_FUNCTION_ARN
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)
    status: EventStatus = field(default=EventStatus.QUEUED, init=False)
    response: Optional[str] = field(default=None, init=False)
    error_type: Optional[str] = field(default=None, init=False)
    error_body: Optional[str] = field(default=None, init=False)
    last_updated: datetime = field(init=False)
    abandoned: bool = field(default=False, init=False)

    def __post_init__(self):
        self.last_updated = self.clock()

    def can_transition(self, target: EventStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _check(self, target: EventStatus) -> None:
        if not self.can_transition(target):
            raise InvalidTransition(self.aws_request_id, self.status, target)

    def _flip(self, target: EventStatus) -> None:
        # status goes last so a reader never sees an outcome status without its fields
        self.last_updated = self.clock()
        self.status = target

    def mark_executing(self) -> None:
        self._check(EventStatus.EXECUTING)
        self._flip(EventStatus.EXECUTING)

    def mark_success(self, response: str) -> None:
        self._check(EventStatus.SUCCESS)
        self.response = response
        self.abandoned = False
        self._flip(EventStatus.SUCCESS)

    def mark_failure(self, error_type: str, error_body: str) -> None:
        self._check(EventStatus.FAILURE)
        self.error_type = error_type
        self.error_body = error_body
        self.abandoned = False
        self._flip(EventStatus.FAILURE)

    def mark_abandoned(self) -> None:
        # Left the active slot without a result; status stays EXECUTING.
        if self.status == EventStatus.EXECUTING:
            self.abandoned = True

    def to_record(self) -> Dict[str, Any]:
        return {
            "awsRequestId": self.aws_request_id,
            "payload": self.payload,
            "status": self.status.value,
            "response": self.response,
            "errorType": self.error_type,
            "errorBody": self.error_body,
            "lastUpdated": self.last_updated.isoformat(timespec="milliseconds"),
            "functionArn": self.function_arn,
            "abandoned": self.abandoned,
        }
