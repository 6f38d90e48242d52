from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from app.config import RuntimeConfig
from core.runtime.event_store import EventStore
from core.runtime.events import Event
from core.runtime.notifications import Listener

log = structlog.get_logger()

@dataclass(frozen=True)
class InvocationSuccess:
    response: str

@dataclass(frozen=True)
class InvocationFailure:
    error_type: str
    error_body: str

InvocationOutcome = Union[InvocationSuccess, InvocationFailure]

class RuntimeApi:
    """
    Operations the runtime API emulation exposes to pollers and test drivers.
    - poll_next long-polls the store: activate, else wait on the store condition and re-check
    - post_result routes a success/failure outcome to the store by request id
    - close() releases any caller parked in poll_next
    """
    def __init__(self, store: Optional[EventStore] = None, config: Optional[RuntimeConfig] = None):
        self.cfg = config or RuntimeConfig()
        self.store = store or EventStore(function_arn=self.cfg.function_arn)
        self.last_init_error: Optional[InvocationFailure] = None
        self._stop_evt = threading.Event()

    # --- producer side ---

    def enqueue(self, payload: str) -> str:
        ev = self.store.enqueue(payload)
        log.info("runtime_api.enqueue", id=ev.aws_request_id, size=len(payload))
        return ev.aws_request_id

    # --- poller side ---

    def poll_next(self, timeout: Optional[float] = None, block: bool = True) -> Optional[Event]:
        """
        Next invocation for the consumer, or None when no work showed up in time.
        timeout=None falls back to next_invocation_timeout_s; if that is None too,
        wait until work arrives or close() is called.
        """
        if timeout is None:
            timeout = self.cfg.next_invocation_timeout_s
        deadline = None if timeout is None else time.monotonic() + timeout
        missed = False

        while True:
            ev = self.store.activate_next()
            if ev is not None:
                log.info("runtime_api.poll.dispatch", id=ev.aws_request_id)
                return ev
            if not block or self._stop_evt.is_set():
                return None
            wait_s = self.cfg.poll_interval_s
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    log.debug("runtime_api.poll.timeout", timeout_s=timeout)
                    return None
                wait_s = min(wait_s, remaining)
            if self.store.wait_for_pending(wait_s):
                # work is pending yet activation handed nothing out last round
                if missed:
                    self._stop_evt.wait(wait_s)
                missed = True

    def post_result(self, request_id: str, outcome: InvocationOutcome) -> bool:
        if isinstance(outcome, InvocationSuccess):
            applied = self.store.report_success(request_id, outcome.response)
        elif isinstance(outcome, InvocationFailure):
            applied = self.store.report_error(request_id, outcome.error_type, outcome.error_body)
        else:
            raise TypeError(f"unsupported outcome: {type(outcome).__name__}")
        log.info("runtime_api.result", id=request_id, outcome=type(outcome).__name__, applied=applied)
        return applied

    def report_init_error(self, error_type: str, error_body: str) -> None:
        self.last_init_error = InvocationFailure(error_type, error_body)
        log.warning("runtime_api.init_error", error_type=error_type)

    # --- views / maintenance ---

    def snapshot(self) -> Dict[str, Any]:
        return self.store.snapshot()

    def list_pending(self) -> List[Event]:
        return self.store.list_pending()

    def list_completed(self) -> List[Event]:
        return self.store.list_completed()

    def active_event(self) -> Optional[Event]:
        return self.store.active_event()

    def clear_pending(self) -> None:
        self.store.clear_pending()

    def clear_completed(self) -> None:
        self.store.clear_completed()

    def delete_event(self, request_id: str) -> bool:
        return self.store.delete_event(request_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.store.subscribe_state_change(listener)

    def close(self) -> None:
        self._stop_evt.set()
        log.info("runtime_api.close")
