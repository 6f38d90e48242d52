# core/runtime/notifications.py
from __future__ import annotations
import threading
from typing import Callable, List

import structlog

log = structlog.get_logger()

Listener = Callable[[], None]

class StateChangeNotifier:
    """Unparameterized 'something changed' broadcast. Listener errors are logged, never raised."""
    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def fire(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                log.warning("state_change.listener.error", err=str(e))
