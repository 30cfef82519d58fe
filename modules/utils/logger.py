"""
Logging setup and the therapy-session event logger.
"""

import os
import time
import logging
import logging.handlers


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure console and optional rotating-file logging."""
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-32s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class SessionLogger:
    """Records activity starts/stops and achievements for the running session.

    Subscribes to the event bus when given one, so the activity engine
    does not need to know it exists.
    """

    def __init__(self, event_bus=None, max_entries: int = 1000):
        self.logger = logging.getLogger("session_events")
        self._history = []
        self._max_entries = max_entries
        if event_bus is not None:
            self.attach(event_bus)

    def attach(self, event_bus):
        from core.events import Events

        event_bus.subscribe(Events.ACTIVITY_STARTED, self.log_activity_started)
        event_bus.subscribe(Events.ACTIVITY_STOPPED, self.log_activity_stopped)
        event_bus.subscribe(Events.ACHIEVEMENT_UNLOCKED, self.log_achievement)

    def _record(self, kind: str, **data):
        entry = {"timestamp": time.time(), "type": kind}
        entry.update(data)
        self._history.append(entry)
        if len(self._history) > self._max_entries:
            self._history = self._history[-self._max_entries:]

    def log_activity_started(self, name, **kwargs):
        self._record("activity_started", name=name)
        self.logger.info("Activity started: %s", name)

    def log_activity_stopped(self, name, duration=None, **kwargs):
        self._record("activity_stopped", name=name, duration=duration)
        self.logger.info(
            "Activity stopped: %-22s | Duration: %s",
            name,
            "%.1fs" % duration if duration is not None else "N/A",
        )

    def log_achievement(self, achievement, **kwargs):
        self._record("achievement", name=achievement.name, category=achievement.category)
        self.logger.info(
            "Achievement: %-30s | Category: %-15s | %s",
            achievement.name,
            achievement.category,
            achievement.description,
        )

    def get_history(self, last_n=None):
        if last_n:
            return self._history[-last_n:]
        return self._history.copy()

    @property
    def total_achievements(self):
        return sum(1 for e in self._history if e["type"] == "achievement")
