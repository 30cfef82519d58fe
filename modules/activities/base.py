"""
Base class for therapeutic activities.

An activity is a small state machine fed with the current frame's hands.
It may draw feedback through the render engine and reports achievements
and progress back to the ActivityEngine as an ActivityResult.
"""

import logging
from typing import Callable, List, Optional

from core.types import (
    Achievement, ActivityResult, AudioFeatures, Difficulty, HandRecord,
)

logger = logging.getLogger(__name__)


class Activity:
    """Common lifecycle and settings handling for all activities.

    Subclasses set the descriptive class attributes, list their tunable
    thresholds in ``defaults`` and override ``process_hands``.
    """

    name = "base-activity"
    display_name = "Base Activity"
    description = "Base therapeutic activity"
    therapeutic_goals = ()
    defaults = {}

    def __init__(self, renderer=None, audio: Optional[Callable[[], Optional[AudioFeatures]]] = None):
        """
        Args:
            renderer: RenderEngine used for visual feedback, optional
            audio: zero-argument callable returning the latest AudioFeatures,
                or None while no audio source is active
        """
        self._renderer = renderer
        self._audio = audio
        self._settings = dict(self.defaults)
        self._active = False
        self._progress = {}
        self.reset()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, settings: dict = None):
        self._settings = dict(self.defaults)
        self._settings.update(settings or {})
        self._active = True
        self._progress = {}
        self.reset()

    def stop(self):
        self._active = False

    def reset(self):
        """Clear per-run counters. Called on every start."""

    def update_settings(self, settings: dict):
        self._settings.update(settings)

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        return None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def settings(self) -> dict:
        return dict(self._settings)

    @property
    def difficulty(self) -> Difficulty:
        value = self._settings.get("difficulty", Difficulty.MEDIUM)
        return value if isinstance(value, Difficulty) else Difficulty(value)

    @property
    def leniency(self) -> float:
        return self.difficulty.leniency

    def setting(self, key: str):
        return self._settings.get(key, self.defaults.get(key))

    def _pixels(self, hand: HandRecord) -> tuple:
        return (hand.center.x * self._renderer.width, hand.center.y * self._renderer.height)

    def _achievement(self, name: str, description: str, category: str) -> Achievement:
        return Achievement(name=name, description=description, category=category)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def describe(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "difficulty": self.difficulty.value,
            "therapeutic_goals": list(self.therapeutic_goals),
        }

    def status(self) -> str:
        return "active" if self._active else "inactive"

    def progress(self) -> dict:
        return dict(self._progress)
