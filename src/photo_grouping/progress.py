"""Per-session progress subscriptions owned by an orchestrator instance."""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable

from photo_grouping.models import GroupingProgress
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "progress"})

ProgressCallback = Callable[[GroupingProgress], None]


class ProgressRegistry:
    """Thread-safe map from session id to progress listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[ProgressCallback]] = defaultdict(list)

    def subscribe(self, session_id: str, callback: ProgressCallback) -> Callable[[], None]:
        """Register ``callback`` for ``session_id`` and return its unsubscribe handle."""

        with self._lock:
            self._listeners[session_id].append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(session_id, callback)

        return _unsubscribe

    def unsubscribe(self, session_id: str, callback: ProgressCallback) -> None:
        with self._lock:
            listeners = self._listeners.get(session_id)
            if not listeners:
                return
            try:
                listeners.remove(callback)
            except ValueError:
                return
            if not listeners:
                del self._listeners[session_id]

    def listener_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(session_id, ()))

    def emit(self, progress: GroupingProgress) -> None:
        """Deliver ``progress`` to the session's listeners at the moment it is produced.

        A listener that raises is logged and skipped; it never aborts the run.
        """

        with self._lock:
            listeners = list(self._listeners.get(progress.session_id, ()))

        for callback in listeners:
            try:
                callback(progress)
            except Exception as exc:
                LOGGER.warning(
                    "progress_listener_error",
                    extra={"session_id": progress.session_id, "status": progress.status.value, "error": str(exc)},
                )


__all__ = ["ProgressCallback", "ProgressRegistry"]
