"""
Therapeutic activity engine.

Runs at most one activity from the catalog at a time, feeds it the
per-frame hands, and turns its results into session bookkeeping,
celebration effects and events on the bus.
"""

import time
import logging
from typing import Dict, List, Optional

import numpy as np

from core.events import Events
from core.settings import Settings
from core.types import (
    ActivityResult, CelebrationIntensity, Difficulty, HandRecord, Velocity,
)
from modules.activities.base import Activity
from modules.activities.catalog import build_catalog
from modules.activities.session import ActivitySession

logger = logging.getLogger(__name__)


class ActivityEngine:
    """Selects, drives and records therapeutic activities.

    Faults raised by an activity are contained here: they are logged and
    published as ``activity_error`` and never reach the frame loop.
    """

    def __init__(self, renderer=None, audio=None, event_bus=None,
                 settings: Optional[Settings] = None, config: dict = None,
                 catalog: Optional[Dict[str, Activity]] = None):
        """
        Args:
            renderer: RenderEngine for feedback and celebrations, optional
            audio: zero-argument callable returning the latest AudioFeatures
                or None, handed to audio-driven activities
            event_bus: EventBus to publish on, optional
            settings: initial runtime settings
            config: the ``activities`` config section
            catalog: prebuilt activities by name, mainly for tests
        """
        config = config or {}
        settings = settings or Settings()
        self._renderer = renderer
        self._bus = event_bus
        self._rng = np.random.default_rng(config.get("seed"))

        self._settings = {
            "difficulty": settings.difficulty,
            "celebration_intensity": settings.celebration_intensity,
        }

        self._activities = catalog if catalog is not None else build_catalog(renderer, audio)
        self._current: Optional[Activity] = None
        self._session = ActivitySession()

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def start_activity(self, name: str, custom_settings: dict = None,
                       now: Optional[float] = None) -> bool:
        """Stop the running activity and start ``name``.

        Returns:
            False for an unknown activity, leaving the current one running
        """
        activity = self._activities.get(name)
        if activity is None:
            logger.error("Unknown activity: %s", name)
            return False

        now = time.time() if now is None else now
        self.stop_activity(now=now)

        merged = dict(self._settings)
        merged.update(custom_settings or {})
        try:
            activity.start(merged)
        except Exception as e:
            logger.exception("Activity %s failed to start", name)
            self._publish(Events.ACTIVITY_ERROR, name=name, error=e)
            return False

        self._current = activity
        self._session.begin(name, activity.settings, now)
        logger.info("Started therapeutic activity: %s", name)
        self._publish(Events.ACTIVITY_STARTED, name=name, settings=activity.settings)
        return True

    def stop_activity(self, now: Optional[float] = None):
        """Stop the running activity, if any, and finalize its record."""
        if self._current is None:
            return
        now = time.time() if now is None else now
        activity, self._current = self._current, None
        activity.stop()

        record = self._session.current_record
        duration = None
        if record is not None and not record.completed:
            record.finish(now)
            duration = record.duration
        logger.info("Stopped therapeutic activity: %s", activity.name)
        self._publish(Events.ACTIVITY_STOPPED, name=activity.name, duration=duration)

    # -------------------------------------------------------------------------
    # Per-frame processing
    # -------------------------------------------------------------------------

    def process_hands(self, hands: List[HandRecord], now: Optional[float] = None):
        if self._current is None:
            return
        now = time.time() if now is None else now
        self._session.total_movements += len(hands)

        try:
            result = self._current.process_hands(hands, now)
        except Exception as e:
            logger.exception("Activity %s failed while processing hands", self._current.name)
            self._publish(Events.ACTIVITY_ERROR, name=self._current.name, error=e)
            return

        if not isinstance(result, ActivityResult):
            return
        if result.achievement is not None:
            self._handle_achievement(result, now)
        if result.progress is not None:
            self._session.add_progress(result.progress)
            self._publish(Events.PROGRESS_UPDATED, progress=result.progress,
                          counters=self._session.counters())

    def _handle_achievement(self, result: ActivityResult, now: float):
        achievement = result.achievement
        achievement.timestamp = now
        self._session.achievements.append(achievement)
        self._celebrate(now)
        logger.info("Achievement unlocked: %s", achievement.name)
        self._publish(Events.ACHIEVEMENT_UNLOCKED, achievement=achievement)

    def _celebrate(self, now: float):
        """Burst of particles across the surface plus a white flash."""
        if self._renderer is None:
            return
        intensity = self._settings["celebration_intensity"]
        if not isinstance(intensity, CelebrationIntensity):
            intensity = CelebrationIntensity(intensity)

        width, height = self._renderer.width, self._renderer.height
        burst = Velocity(0.0, 0.0, 1.0)
        for _ in range(intensity.particle_count):
            x = self._rng.random() * width
            y = self._rng.random() * height
            if not self._renderer.create_particle(x, y, burst, now):
                break
        self._renderer.flash(0.3, now=now)

    def _publish(self, event: str, **kwargs):
        if self._bus is not None:
            self._bus.emit(event, **kwargs)

    # -------------------------------------------------------------------------
    # Settings and queries
    # -------------------------------------------------------------------------

    def update_settings(self, settings):
        """Apply a Settings value or a mapping of engine options."""
        if isinstance(settings, Settings):
            changes = {
                "difficulty": settings.difficulty,
                "celebration_intensity": settings.celebration_intensity,
            }
        else:
            changes = dict(settings)
            if "difficulty" in changes:
                changes["difficulty"] = Difficulty(changes["difficulty"])
            if "celebration_intensity" in changes:
                changes["celebration_intensity"] = CelebrationIntensity(changes["celebration_intensity"])
        self._settings.update(changes)
        if self._current is not None:
            self._current.update_settings(changes)

    def available_activities(self) -> List[dict]:
        return [activity.describe() for activity in self._activities.values()]

    def current_status(self) -> dict:
        if self._current is None:
            return {"active": False}
        return {
            "active": True,
            "name": self._current.name,
            "status": self._current.status(),
            "progress": self._current.progress(),
        }

    def session_summary(self, now: Optional[float] = None) -> dict:
        now = time.time() if now is None else now
        return self._session.summary(now)

    def reset_session(self):
        self._session = ActivitySession()
        logger.info("Session data reset")

    @property
    def session(self) -> ActivitySession:
        return self._session

    @property
    def current_activity(self) -> Optional[Activity]:
        return self._current

    @property
    def is_active(self) -> bool:
        return self._current is not None

    @property
    def settings(self) -> dict:
        return dict(self._settings)

    def get_activity(self, name: str) -> Optional[Activity]:
        return self._activities.get(name)
