"""
Lightweight event bus for decoupled inter-module communication.

The pipeline publishes calibration and contact results here; the
application subscribes to report the calibration summary and to log
contacts, without the pipeline knowing about either.

Usage:
    bus = EventBus()
    bus.subscribe(Events.CONTACT, my_handler)
    bus.emit(Events.CONTACT, event=contact_event)
"""

import logging
import threading
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Thread-safe publish/subscribe event bus.

    Dispatch is synchronous, in priority order, on the emitting thread. A
    failing handler is logged and does not stop the remaining handlers.
    """

    def __init__(self):
        self._listeners = defaultdict(list)  # event_name -> [(priority, callback)]
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener for an event.

        Args:
            event_name: Event to listen for
            callback: Function to call. Receives **kwargs from emit().
            priority: Higher priority callbacks run first (default 0)
        """
        with self._lock:
            self._listeners[event_name].append((priority, callback))
            self._listeners[event_name].sort(key=lambda x: -x[0])
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", repr(callback)), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        """Remove a listener for an event."""
        with self._lock:
            self._listeners[event_name] = [
                (p, cb) for p, cb in self._listeners[event_name] if cb != callback
            ]

    def emit(self, event_name: str, **kwargs):
        """Call every listener of ``event_name`` with ``kwargs``."""
        with self._lock:
            listeners = list(self._listeners.get(event_name, []))

        for _, callback in listeners:
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", repr(callback)), e)

    def listener_count(self, event_name: str) -> int:
        with self._lock:
            return len(self._listeners.get(event_name, []))


class Events:
    """Event name constants."""
    CONTROLS_DETECTED = "controls_detected"
    CALIBRATION_COMMITTED = "calibration_committed"
    FINGERTIP_TRACKED = "fingertip_tracked"
    CONTACT = "contact"
    FRAME_DROPPED = "frame_dropped"
