"""
Lightweight event bus for decoupled inter-module communication.

Achievement, progress, hand-lost and error notifications are published
here instead of through ad hoc callback attributes. Delivery is
synchronous, on the emitting thread, in priority order, and at most once
per subscriber per emitted event.

Usage:
    bus = EventBus()
    bus.subscribe(Events.ACHIEVEMENT_UNLOCKED, on_achievement)
    bus.emit(Events.ACHIEVEMENT_UNLOCKED, achievement=achievement)
"""

import time
import logging
import threading
from collections import defaultdict, deque
from typing import Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Publish/subscribe event bus with priority-ordered synchronous dispatch.

    The lock only guards the listener table; the desktop app's microphone
    callback may subscribe or emit from the audio thread.
    """

    def __init__(self, max_history: int = 100):
        self._listeners = defaultdict(list)  # event_name -> [(priority, seq, callback)]
        self._lock = threading.Lock()
        self._event_history = deque(maxlen=max_history)
        self._seq = 0
        self._enabled = True

    def subscribe(self, event_name: str, callback: Callable, priority: int = 0):
        """Register a listener for an event.

        Args:
            event_name: Event to listen for
            callback: Function to call. Receives **kwargs from emit().
            priority: Higher priority callbacks run first; ties run in
                subscription order.
        """
        with self._lock:
            self._seq += 1
            self._listeners[event_name].append((priority, self._seq, callback))
            self._listeners[event_name].sort(key=lambda x: (-x[0], x[1]))
        logger.debug("Subscribed to '%s': %s (priority=%d)",
                     event_name, getattr(callback, "__name__", callback), priority)

    def unsubscribe(self, event_name: str, callback: Callable):
        """Remove a listener for an event."""
        with self._lock:
            self._listeners[event_name] = [
                entry for entry in self._listeners[event_name] if entry[2] is not callback
            ]

    def emit(self, event_name: str, **kwargs) -> int:
        """Emit an event to all registered listeners.

        Handler exceptions are logged and swallowed so one faulty
        subscriber cannot break the frame loop.

        Returns:
            Number of listeners invoked
        """
        if not self._enabled:
            return 0

        with self._lock:
            listeners = list(self._listeners.get(event_name, []))

        self._event_history.append({
            "event": event_name,
            "time": time.time(),
            "data_keys": list(kwargs.keys()),
        })

        for _, _, callback in listeners:
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error("Event handler error [%s -> %s]: %s",
                             event_name, getattr(callback, "__name__", callback), e)
        return len(listeners)

    def set_enabled(self, enabled: bool):
        self._enabled = enabled

    def clear(self, event_name: str = None):
        """Remove all listeners, optionally for a specific event."""
        with self._lock:
            if event_name:
                self._listeners.pop(event_name, None)
            else:
                self._listeners.clear()

    @property
    def registered_events(self) -> list:
        """List all events with registered listeners."""
        with self._lock:
            return [name for name, entries in self._listeners.items() if entries]

    @property
    def listener_count(self) -> int:
        """Total number of registered listeners."""
        with self._lock:
            return sum(len(cbs) for cbs in self._listeners.values())

    def get_history(self, last_n: int = 10) -> list:
        """Get recent event history."""
        return list(self._event_history)[-last_n:]


# =============================================================================
# Standard Event Names (constants to avoid typos)
# =============================================================================

class Events:
    """Standard event names used throughout the system."""

    # Perception
    HANDS_DETECTED = "hands_detected"
    HAND_LOST = "hand_lost"

    # Audio
    BEAT_DETECTED = "beat_detected"

    # Activities
    ACTIVITY_STARTED = "activity_started"
    ACTIVITY_STOPPED = "activity_stopped"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    PROGRESS_UPDATED = "progress_updated"
    ACTIVITY_ERROR = "activity_error"

    # Lifecycle
    PIPELINE_STARTED = "pipeline_started"
    PIPELINE_STOPPED = "pipeline_stopped"
    SETTINGS_CHANGED = "settings_changed"
    ERROR = "error"
