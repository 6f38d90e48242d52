# core/runtime/event_store.py
from __future__ import annotations
import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

import structlog

from core.runtime.events import (
    Event, EventStatus, InvalidTransition,
    DEFAULT_FUNCTION_ARN, format_request_id, utc_now,
)
from core.runtime.notifications import StateChangeNotifier, Listener

log = structlog.get_logger()

class InvariantViolation(AssertionError):
    """The partitions disagree with each other. Always a bug in the store."""

class EventStore:
    """
    In-memory invocation queue with three disjoint partitions:
      - pending: FIFO of QUEUED events
      - active: at most one EXECUTING event handed to the consumer
      - completed: events that left the active slot (terminal, or abandoned while EXECUTING)
    One lock guards everything; the condition on that lock is broadcast on every
    mutation for long-poll waiters. Listeners are fired after the lock is released.
    """
    def __init__(
        self,
        function_arn: str = DEFAULT_FUNCTION_ARN,
        clock: Callable[[], datetime] = utc_now,
        notifier: Optional[StateChangeNotifier] = None,
    ):
        self.function_arn = function_arn
        self.clock = clock
        self.notifier = notifier or StateChangeNotifier()

        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._pending: Deque[Event] = deque()
        self._completed: List[Event] = []
        self._active: Optional[Event] = None
        self._counter = 0

    # -------- producer --------

    def enqueue(self, payload: str) -> Event:
        with self._lock:
            self._counter += 1
            ev = Event(format_request_id(self._counter), payload, function_arn=self.function_arn, clock=self.clock)
            self._pending.append(ev)
            depth = len(self._pending)
            self._changed.notify_all()
        log.debug("store.enqueue", id=ev.aws_request_id, pending=depth)
        self.notifier.fire()
        return ev

    # -------- consumer --------

    def activate_next(self) -> Optional[Event]:
        """Hand out the oldest pending event, or None without touching anything."""
        with self._lock:
            if not self._pending:
                return None
            head = self._pending[0]
            if not head.can_transition(EventStatus.EXECUTING):
                # head was moved on outside the store; leave every partition as it is
                log.warning("store.activate.rejected", id=head.aws_request_id, status=head.status.value)
                return None
            ev = self._pending.popleft()
            prev = self._active
            if prev is not None:
                prev.mark_abandoned()
                self._completed.append(prev)
            ev.mark_executing()
            self._active = ev
            self._changed.notify_all()
        if prev is not None and prev.abandoned:
            log.info("store.active.abandoned", id=prev.aws_request_id)
        log.debug("store.activate", id=ev.aws_request_id, displaced=prev.aws_request_id if prev else None)
        self.notifier.fire()
        return ev

    def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """Block until something is pending or timeout elapses. True if work is (briefly) available."""
        with self._changed:
            return self._changed.wait_for(lambda: bool(self._pending), timeout)

    # -------- reporters --------

    def report_success(self, request_id: str, response: str) -> bool:
        return self._report(request_id, EventStatus.SUCCESS, lambda ev: ev.mark_success(response))

    def report_error(self, request_id: str, error_type: str, error_body: str) -> bool:
        return self._report(request_id, EventStatus.FAILURE, lambda ev: ev.mark_failure(error_type, error_body))

    def _report(self, request_id: str, target: EventStatus, apply: Callable[[Event], None]) -> bool:
        with self._lock:
            ev = self._find(request_id)
            if ev is None:
                log.debug("store.report.not_found", id=request_id, status=target.value)
                return False
            try:
                apply(ev)
            except InvalidTransition as e:
                log.warning("store.report.rejected", id=request_id, err=str(e))
                return False
            self._changed.notify_all()
        log.debug("store.report", id=request_id, status=target.value)
        self.notifier.fire()
        return True

    def _find(self, request_id: str) -> Optional[Event]:
        # active first: a late report may target an event already displaced or still queued
        if self._active is not None and self._active.aws_request_id == request_id:
            return self._active
        for ev in self._completed:
            if ev.aws_request_id == request_id:
                return ev
        for ev in self._pending:
            if ev.aws_request_id == request_id:
                return ev
        return None

    # -------- views --------

    def list_pending(self) -> List[Event]:
        with self._lock:
            return list(self._pending)

    def list_completed(self) -> List[Event]:
        with self._lock:
            return list(self._completed)

    def active_event(self) -> Optional[Event]:
        with self._lock:
            return self._active

    def get_event(self, request_id: str) -> Optional[Event]:
        with self._lock:
            return self._find(request_id)

    def get_record(self, request_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            ev = self._find(request_id)
            return ev.to_record() if ev is not None else None

    def snapshot(self) -> Dict[str, Any]:
        """All three partitions serialized under one lock acquisition."""
        with self._lock:
            return {
                "pending": [ev.to_record() for ev in self._pending],
                "active": self._active.to_record() if self._active is not None else None,
                "completed": [ev.to_record() for ev in self._completed],
            }

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "pending": len(self._pending),
                "active": 1 if self._active is not None else 0,
                "completed": len(self._completed),
                "issued": self._counter,
            }

    # -------- maintenance --------

    def clear_pending(self) -> None:
        with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
            self._changed.notify_all()
        log.info("store.clear_pending", dropped=dropped)
        self.notifier.fire()

    def clear_completed(self) -> None:
        with self._lock:
            dropped = len(self._completed)
            self._completed.clear()
            self._changed.notify_all()
        log.info("store.clear_completed", dropped=dropped)
        self.notifier.fire()

    def delete_event(self, request_id: str) -> bool:
        """Remove from completed, else pending. The active event is never deleted here."""
        removed: Optional[Event] = None
        with self._lock:
            for ev in self._completed:
                if ev.aws_request_id == request_id:
                    removed = ev
                    self._completed.remove(ev)
                    break
            else:
                for ev in self._pending:
                    if ev.aws_request_id == request_id:
                        removed = ev
                        self._pending.remove(ev)
                        break
            self._changed.notify_all()
        log.debug("store.delete", id=request_id, found=removed is not None)
        self.notifier.fire()
        return removed is not None

    # -------- notifications --------

    def subscribe_state_change(self, listener: Listener) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    # -------- diagnostics --------

    def check_invariants(self) -> None:
        with self._lock:
            problem = self._find_violation()
        if problem is not None:
            raise InvariantViolation(problem)

    def _find_violation(self) -> Optional[str]:
        pending = list(self._pending)
        completed = list(self._completed)
        active = self._active

        everything = pending + completed + ([active] if active is not None else [])
        ids = [ev.aws_request_id for ev in everything]
        if len(ids) != len(set(ids)):
            return f"event present in more than one partition: {sorted(ids)}"
        if active is not None and active.status == EventStatus.QUEUED:
            return f"active event {active.aws_request_id} is still queued"
        for ev in pending:
            if ev.status != EventStatus.QUEUED:
                return f"pending event {ev.aws_request_id} has status {ev.status.value}"
        for ev in completed:
            if ev.status == EventStatus.QUEUED:
                return f"completed event {ev.aws_request_id} was never activated"
            if ev.status == EventStatus.EXECUTING and not ev.abandoned:
                return f"completed event {ev.aws_request_id} is executing but not abandoned"
        return None
