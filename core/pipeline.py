"""
Perception-to-feedback pipeline orchestrator.

Wires InputNormalizer -> {RenderEngine, ActivityEngine} for hand frames
and AudioFeatureExtractor -> {RenderEngine, rhythm activity} for audio
ticks, and owns the runtime Settings value.

The host application drives three callbacks:
    on_hand_results(raw_frame)      once per perception result
    on_animation_frame(now)         once per display frame
    on_audio_tick(freq, wave, now)  once per audio analysis tick

Each callback checks an active flag first, so results that arrive after
stop() or stop_audio() are dropped without touching any state.
"""

import time
import logging
from typing import List, Optional

import numpy as np

from core.events import EventBus, Events
from core.settings import MovementZone, Settings
from core.types import AudioFeatures, HandRecord, RawFrame, as_payload
from modules.activities.engine import ActivityEngine
from modules.audio.feature_extractor import AudioFeatureExtractor
from modules.detection.input_normalizer import InputNormalizer
from modules.utils.performance_monitor import PerformanceMonitor
from modules.visualization.render_engine import RenderEngine

logger = logging.getLogger(__name__)


class Pipeline:
    """Frame-synchronous orchestrator for the four core engines.

    Any component not passed in is built from ``config`` sections
    (``tracking``, ``audio``, ``visuals``, ``activities``).
    """

    def __init__(
        self,
        normalizer: Optional[InputNormalizer] = None,
        renderer: Optional[RenderEngine] = None,
        activities: Optional[ActivityEngine] = None,
        audio_extractor: Optional[AudioFeatureExtractor] = None,
        event_bus: Optional[EventBus] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
        settings: Optional[Settings] = None,
        config: dict = None,
    ):
        config = config or {}
        self._settings = settings or Settings()
        self._bus = event_bus or EventBus()
        self._perf = performance_monitor or PerformanceMonitor()

        self._normalizer = normalizer or InputNormalizer(config.get("tracking", {}), self._settings)
        self._renderer = renderer or RenderEngine(config.get("visuals", {}), self._settings)
        audio_config = dict(config.get("audio", {}))
        audio_config.setdefault("sensitivity", self._settings.sensitivity)
        self._audio = audio_extractor or AudioFeatureExtractor(audio_config)
        self._activities = activities or ActivityEngine(
            renderer=self._renderer,
            audio=self.current_audio_features,
            event_bus=self._bus,
            settings=self._settings,
            config=config.get("activities", {}),
        )
        self._apply_settings(self._settings)

        self._active = False
        self._audio_active = False
        self._hands: List[HandRecord] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self):
        """Begin accepting perception and animation callbacks."""
        if self._active:
            return
        self._active = True
        self._perf.reset()
        logger.info("Pipeline started (settings v%d)", self._settings.version)
        self._bus.emit(Events.PIPELINE_STARTED, settings=self._settings)

    def stop(self):
        """Stop all callbacks and drop every piece of per-frame state."""
        if not self._active and not self._audio_active:
            return
        self._active = False
        self.stop_audio()
        self._activities.stop_activity()
        self._normalizer.reset()
        self._renderer.clear()
        self._hands = []
        logger.info("Pipeline stopped")
        self._bus.emit(Events.PIPELINE_STOPPED)

    def start_audio(self):
        if self._audio_active:
            return
        self._audio.reset()
        self._audio_active = True
        logger.info("Audio analysis started")

    def stop_audio(self):
        if not self._audio_active:
            return
        self._audio_active = False
        self._renderer.set_audio_level(None)
        logger.info("Audio analysis stopped")

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_audio_active(self) -> bool:
        return self._audio_active

    # =========================================================================
    # Callbacks
    # =========================================================================

    def on_hand_results(self, raw_frame: RawFrame) -> List[HandRecord]:
        """Normalize one perception result, then feed renderer and activities."""
        if not self._active:
            return []

        with self._perf.measure("total"):
            with self._perf.measure("normalize"):
                hands = self._normalizer.ingest(raw_frame)
            now = hands[0].timestamp if hands else (
                raw_frame.timestamp if raw_frame.timestamp is not None else time.time()
            )
            self._hands = hands

            if self._normalizer.hands_lost:
                self._bus.emit(Events.HAND_LOST)
            if hands:
                self._bus.emit(Events.HANDS_DETECTED, hands=hands)

            with self._perf.measure("render"):
                self._renderer.process_hands(hands, now=now)
            with self._perf.measure("activities"):
                self._activities.process_hands(hands, now=now)
        return hands

    def on_animation_frame(self, now: Optional[float] = None) -> Optional[np.ndarray]:
        """Advance the simulation and redraw. Returns the surface, or None when stopped."""
        if not self._active:
            return None
        now = time.time() if now is None else now
        self._perf.tick()
        self._renderer.update(now)
        return self._renderer.render(now)

    def on_audio_tick(self, frequency_data, time_domain_data=None,
                      now: Optional[float] = None) -> Optional[AudioFeatures]:
        """Analyse one tick of audio. Returns None while audio is stopped."""
        if not self._audio_active:
            return None
        with self._perf.measure("audio"):
            features = self._audio.ingest(frequency_data, time_domain_data, now=now)
        self._renderer.set_audio_level(features)
        if features.beat:
            self._bus.emit(Events.BEAT_DETECTED, features=features)
        return features

    def current_audio_features(self) -> Optional[AudioFeatures]:
        """Latest audio features, or None while no audio source is active."""
        if not self._audio_active:
            return None
        return self._audio.latest

    def interact(self, x: float, y: float, magnitude: float = 0.5, now: Optional[float] = None):
        """Pointer interaction: a synthetic hand fed to the renderer only."""
        if not self._active:
            return
        hand = HandRecord.synthetic(x, y, hand_id="click_interaction", magnitude=magnitude)
        self._renderer.process_hands([hand], now=now)

    # =========================================================================
    # Settings
    # =========================================================================

    def update_settings(self, **changes) -> Settings:
        """Validate and apply setting changes.

        Raises:
            KeyError: unknown option name
            ValueError: value outside the option's domain
        """
        new_settings = self._settings.merged(**changes)
        self._apply_settings(new_settings)
        logger.info("Settings v%d: %s", new_settings.version, ", ".join(sorted(changes)))
        self._bus.emit(Events.SETTINGS_CHANGED, settings=new_settings, changed=sorted(changes))
        return new_settings

    def update_movement_zone(self, zone: MovementZone) -> Settings:
        """Replace the movement zone, clamped to the unit square."""
        clamped = MovementZone.clamped(zone.x_min, zone.x_max, zone.y_min, zone.y_max)
        return self.update_settings(movement_zone=clamped)

    def expand_movement_zone(self, factor: float = 1.2) -> Settings:
        """Make the movement zone more forgiving about its centre."""
        zone = self._settings.movement_zone.expanded(factor)
        logger.info("Movement zone expanded x%.2f: %s", factor, zone.to_dict())
        return self.update_settings(movement_zone=zone)

    def _apply_settings(self, settings: Settings):
        self._settings = settings
        self._normalizer.update_settings(settings)
        self._renderer.update_settings(settings)
        self._audio.update_settings(
            sensitivity=settings.sensitivity,
            volume_smoothing=settings.volume_smoothing,
            beat_detection=settings.beat_detection,
            frequency_analysis=settings.frequency_analysis,
        )
        self._activities.update_settings(settings)

    @property
    def settings(self) -> Settings:
        return self._settings

    # =========================================================================
    # Activities and surface
    # =========================================================================

    def start_activity(self, name: str, custom_settings: dict = None) -> bool:
        return self._activities.start_activity(name, custom_settings)

    def stop_activity(self):
        self._activities.stop_activity()

    def clear(self):
        self._renderer.clear()

    def resize(self, width: int, height: int):
        self._renderer.resize(width, height)

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> dict:
        latest = self._audio.latest if self._audio_active else None
        return {
            "active": self._active,
            "audio_active": self._audio_active,
            "settings": self._settings.to_dict(),
            "settings_version": self._settings.version,
            "hand_count": len(self._hands),
            "hands": as_payload(self._hands),
            "activity": self._activities.current_status(),
            "render": self._renderer.get_stats(),
            "audio": latest.to_dict() if latest is not None else None,
            "performance": self._perf.get_report(),
        }

    def session_summary(self) -> dict:
        return self._activities.session_summary()

    @property
    def normalizer(self) -> InputNormalizer:
        return self._normalizer

    @property
    def renderer(self) -> RenderEngine:
        return self._renderer

    @property
    def activities(self) -> ActivityEngine:
        return self._activities

    @property
    def audio(self) -> AudioFeatureExtractor:
        return self._audio

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def performance(self) -> PerformanceMonitor:
        return self._perf

    @property
    def hands(self) -> List[HandRecord]:
        return list(self._hands)
