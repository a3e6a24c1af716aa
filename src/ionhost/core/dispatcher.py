import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from ionhost.core.events import Event, Listener

_logger = logging.getLogger(__name__)

_WORKER_PREFIX = "ionhost-dispatch"


class Dispatcher:
    """
    Delivers events to listeners registered by event name.

    Events are handed to a single worker thread, so delivery follows the order
    of `dispatch` calls and one event reaches all of its listeners before the
    next one starts.
    """
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or _logger
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[Listener]] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=_WORKER_PREFIX)
        self._worker_ident: Optional[int] = None
        self._submit_lock = threading.Lock()
        self._closed = False

    def add_listener(self, listener: Optional[Listener], at_front: bool, *names: str) -> None:
        """
        Register a listener for each of the given event names, at the back of
        each list unless `at_front` is set.
        """
        if listener is None or not names:
            return

        with self._lock:
            for name in names:
                current = self._listeners.get(name, [])
                if at_front:
                    self._listeners[name] = [listener, *current]
                else:
                    self._listeners[name] = [*current, listener]

    def remove_listener(self, listener: Optional[Listener], *names: str) -> None:
        """Remove the first registration of `listener` under each name."""
        if listener is None or not names:
            return

        with self._lock:
            for name in names:
                current = self._listeners.get(name)
                if not current:
                    continue
                for index, registered in enumerate(current):
                    if registered is listener:
                        remaining = current[:index] + current[index + 1:]
                        if remaining:
                            self._listeners[name] = remaining
                        else:
                            del self._listeners[name]
                        break

    def listener_count(self, name: str) -> int:
        with self._lock:
            return len(self._listeners.get(name, []))

    def dispatch(self, event: Event) -> None:
        """Queue an event for delivery and return immediately."""
        with self._submit_lock:
            if self._closed:
                self.logger.debug("Dispatcher is shut down; dropping %s", event)
                return
            self._executor.submit(self._deliver, event)

    def _snapshot(self, name: str) -> List[Listener]:
        with self._lock:
            return list(self._listeners.get(name, []))

    def _deliver(self, event: Event) -> None:
        self._worker_ident = threading.get_ident()
        for listener in self._snapshot(event.name):
            self._fire(listener, event)

    def _fire(self, listener: Listener, event: Event) -> None:
        try:
            listener.event_fired(event)
        except BaseException:
            self.logger.exception("Recovered from failure in event listener %r for %s", listener, event)

    def shutdown(self) -> None:
        """
        Stop accepting events and block until everything already queued has
        been delivered.
        """
        with self._submit_lock:
            self._closed = True

        if threading.get_ident() == self._worker_ident:
            # Called from a listener: the worker cannot join itself. Whatever
            # was queued still runs once the current listener returns.
            self._executor.shutdown(wait=False)
            return

        self._executor.shutdown(wait=True)
