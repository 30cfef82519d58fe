"""
The fixed catalog of therapeutic activities.

Distance and velocity thresholds scale with the difficulty leniency:
tolerances widen and "large" thresholds drop on easy, the reverse on hard.
"""

import logging
from typing import Dict, List, Optional

from core.types import ActivityResult, HandLabel, HandRecord, ProgressDelta
from modules.activities.base import Activity
from modules.visualization import colors, shapes

logger = logging.getLogger(__name__)


# =============================================================================
# Bilateral coordination
# =============================================================================

class BilateralCoordination(Activity):
    name = "bilateral-coordination"
    display_name = "Bilateral Coordination"
    description = "Practice using both hands together in coordinated movements"
    therapeutic_goals = ("bilateral coordination", "motor planning", "crossing midline")
    defaults = {"target_distance": 0.3, "tolerance": 0.1, "required_success": 10}

    def reset(self):
        self.success_count = 0

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        if len(hands) != 2:
            return None
        left = next((h for h in hands if h.label is HandLabel.LEFT), None)
        right = next((h for h in hands if h.label is HandLabel.RIGHT), None)
        if left is None or right is None:
            return None

        target = self.setting("target_distance")
        tolerance = self.setting("tolerance") * self.leniency
        required = self.setting("required_success")

        distance = left.center.distance_2d(right.center)
        coordinated = abs(distance - target) < tolerance

        if coordinated:
            self.success_count += 1
            self._draw_link(left, right, now)
            if self.success_count >= required:
                self.success_count = 0
                self._progress = self._snapshot(distance, target, required)
                return ActivityResult(
                    achievement=self._achievement(
                        "Bilateral Coordination Master",
                        "Successfully coordinated both hands!",
                        "bilateral",
                    ),
                    progress=ProgressDelta(bilateral=1.0),
                )

        self._progress = self._snapshot(distance, target, required)
        return ActivityResult(progress=ProgressDelta(bilateral=0.1 if coordinated else 0.0))

    def _snapshot(self, distance, target, required) -> dict:
        return {
            "distance": distance,
            "target": target,
            "success_count": self.success_count,
            "required": required,
        }

    def _draw_link(self, left: HandRecord, right: HandRecord, now: float):
        if self._renderer is None:
            return
        p0, p1 = self._pixels(left), self._pixels(right)
        self._renderer.schedule_effect(
            0.0,
            lambda surface, _: shapes.draw_line(surface, p0, p1, colors.GREEN, 5),
            now=now, name="bilateral_link",
        )


# =============================================================================
# Cause and effect
# =============================================================================

class CauseEffect(Activity):
    name = "cause-effect"
    display_name = "Cause and Effect"
    description = "Clear visual feedback for every movement to understand cause and effect"
    therapeutic_goals = ("cause and effect understanding", "motor motivation", "visual tracking")
    defaults = {"min_interval_ms": 500, "achievement_every": 25, "ring_duration": 0.3}

    def reset(self):
        self.effects_triggered = 0
        self.last_effect_time = None

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        interval = self.setting("min_interval_ms") / 1000.0
        if not hands:
            return None
        if self.last_effect_time is not None and now - self.last_effect_time <= interval:
            return None

        for hand in hands:
            self._ripple(hand, now)
        self.effects_triggered += 1
        self.last_effect_time = now
        self._progress = {"effects_triggered": self.effects_triggered}

        if self.effects_triggered % self.setting("achievement_every") == 0:
            return ActivityResult(achievement=self._achievement(
                "Cause and Effect Explorer",
                "Discovered the power of movement!",
                "exploration",
            ))
        return None

    def _ripple(self, hand: HandRecord, now: float):
        """Three concentric rings, 100 ms apart."""
        if self._renderer is None:
            return
        intensity = hand.velocity.magnitude
        x, y = self._pixels(hand)
        max_radius = 100 * intensity
        alpha = max(0.0, min(1.0, 0.8 - intensity * 0.3))
        duration = self.setting("ring_duration")

        for i in range(3):
            radius = (i + 1) * max_radius / 3

            def draw(surface, progress, radius=radius):
                shapes.draw_ring(surface, x, y, radius, colors.RIPPLE_COLOR, 3,
                                 alpha * (1.0 - progress))

            self._renderer.schedule_effect(i * 0.1, draw, duration=duration, now=now, name="ripple")


# =============================================================================
# Large movement
# =============================================================================

class LargeMovement(Activity):
    name = "large-movement"
    display_name = "Large Movement Rewards"
    description = "Big movements create bigger, more dramatic visual effects"
    therapeutic_goals = ("gross motor skills", "range of motion", "movement motivation")
    defaults = {"movement_threshold": 0.05, "reward_interval": 5, "pulse_duration": 0.016}

    def reset(self):
        self.large_movements = 0

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        threshold = self.setting("movement_threshold") / self.leniency
        for hand in hands:
            speed = hand.velocity.magnitude
            if speed <= threshold:
                continue
            self.large_movements += 1
            self._progress = {"large_movements": self.large_movements}
            if self._renderer is not None:
                self._renderer.pulse_brush(min(speed * 5, 3.0), self.setting("pulse_duration"), now=now)

            if self.large_movements % self.setting("reward_interval") == 0:
                return ActivityResult(
                    achievement=self._achievement(
                        "Movement Master", "Amazing large movements!", "large-movement",
                    ),
                    progress=ProgressDelta(large_movement=1.0),
                )
        return None


# =============================================================================
# Fine motor
# =============================================================================

class FineMotor(Activity):
    name = "fine-motor"
    display_name = "Fine Motor Skills"
    description = "Practice precise, controlled movements for detailed work"
    therapeutic_goals = ("fine motor control", "precision", "hand stability")
    defaults = {"precision_threshold": 0.02, "achievement_every": 20}

    def reset(self):
        self.precise_movements = 0

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        threshold = self.setting("precision_threshold") * self.leniency
        for hand in hands:
            speed = hand.velocity.magnitude
            if not 0 < speed < threshold:
                continue
            self.precise_movements += 1
            self._progress = {"precise_movements": self.precise_movements}

            if self._renderer is not None:
                x, y = self._pixels(hand)
                self._renderer.schedule_effect(
                    0.0,
                    lambda surface, _, x=x, y=y: shapes.draw_circle(surface, x, y, 3, colors.GOLD, 0.8),
                    now=now, name="precision_dot",
                )

            if self.precise_movements % self.setting("achievement_every") == 0:
                return ActivityResult(
                    achievement=self._achievement(
                        "Precision Master", "Excellent fine motor control!", "fine-motor",
                    ),
                    progress=ProgressDelta(fine_movement=1.0),
                )
        return None


# =============================================================================
# Rhythm synchronization
# =============================================================================

class RhythmSync(Activity):
    """Counts hands moving within a short window after each detected beat.

    Every beat is matched at most once per hand; the window is measured
    from the beat's own timestamp.
    """

    name = "rhythm-sync"
    display_name = "Rhythm Synchronization"
    description = "Move in time with the music and rhythm"
    therapeutic_goals = ("rhythm awareness", "timing", "auditory processing")
    defaults = {"sync_window_ms": 200, "velocity_threshold": 0.03, "achievement_every": 10}

    def reset(self):
        self.beat_matches = 0
        self.last_beat_time = None
        self._matched_ids = set()

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        features = self._audio() if self._audio is not None else None
        if features is None or not features.active:
            return None

        if features.beat and features.timestamp != self.last_beat_time:
            self.last_beat_time = features.timestamp
            self._matched_ids = set()

        if self.last_beat_time is None or not hands:
            return None
        if abs(now - self.last_beat_time) >= self.setting("sync_window_ms") / 1000.0:
            return None

        threshold = self.setting("velocity_threshold") / self.leniency
        for hand in hands:
            if hand.velocity.magnitude <= threshold or hand.id in self._matched_ids:
                continue
            self._matched_ids.add(hand.id)
            self.beat_matches += 1
            self._progress = {"beat_matches": self.beat_matches}

            if self._renderer is not None:
                x, y = self._pixels(hand)
                self._renderer.schedule_effect(
                    0.0,
                    lambda surface, _, x=x, y=y: shapes.draw_circle(surface, x, y, 20, colors.YELLOW, 0.9),
                    now=now, name="beat_match",
                )

            if self.beat_matches % self.setting("achievement_every") == 0:
                return ActivityResult(achievement=self._achievement(
                    "Rhythm Master", "Perfect timing with the music!", "rhythm",
                ))
        return None


# =============================================================================
# Emotional expression
# =============================================================================

def classify_mood(hand: HandRecord) -> str:
    speed = hand.velocity.magnitude
    if speed > 0.1:
        return "energetic"
    if hand.gestures.is_open:
        return "happy"
    if speed < 0.02:
        return "focused"
    return "calm"


class EmotionalExpression(Activity):
    name = "emotional-expression"
    display_name = "Emotional Expression"
    description = "Express emotions through movement and see them come alive"
    therapeutic_goals = ("emotional expression", "self-awareness", "mood regulation")
    defaults = {"achievement_every": 30, "ring_radius": 30, "ring_duration": 0.3}

    def reset(self):
        self.expressions = 0
        self.current_mood = None

    def process_hands(self, hands: List[HandRecord], now: float) -> Optional[ActivityResult]:
        for hand in hands:
            mood = classify_mood(hand)
            self.current_mood = mood
            self.expressions += 1
            self._progress = {"expressions": self.expressions, "mood": mood}
            self._mood_ring(hand, mood, now)

            if self.expressions % self.setting("achievement_every") == 0:
                return ActivityResult(achievement=self._achievement(
                    "Emotional Artist",
                    "Beautiful emotional expression through movement!",
                    "emotional",
                ))
        return None

    def _mood_ring(self, hand: HandRecord, mood: str, now: float):
        if self._renderer is None:
            return
        x, y = self._pixels(hand)
        color = colors.MOOD_COLORS[mood]
        radius = self.setting("ring_radius")
        self._renderer.schedule_effect(
            0.0,
            lambda surface, progress: shapes.draw_ring(surface, x, y, radius, color, 3, 1.0 - progress),
            duration=self.setting("ring_duration"), now=now, name="mood_ring",
        )


# =============================================================================
# Catalog
# =============================================================================

ACTIVITY_CLASSES = (
    BilateralCoordination,
    CauseEffect,
    LargeMovement,
    FineMotor,
    RhythmSync,
    EmotionalExpression,
)


def build_catalog(renderer=None, audio=None, classes=ACTIVITY_CLASSES) -> Dict[str, Activity]:
    """Instantiate every activity; failures are logged and left out."""
    catalog = {}
    for cls in classes:
        try:
            catalog[cls.name] = cls(renderer=renderer, audio=audio)
        except Exception:
            logger.exception("Failed to initialize activity %s", getattr(cls, "name", cls))
    logger.debug("Activity catalog: %s", ", ".join(catalog))
    return catalog
