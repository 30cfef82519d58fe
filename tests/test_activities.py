"""
Tests for therapeutic activities and the activity engine
========================================================
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.events import EventBus, Events
from core.settings import Settings
from core.types import (
    AudioFeatures, CelebrationIntensity, Difficulty, Gestures, HandLabel, HandRecord, Velocity,
)
from modules.activities.base import Activity
from modules.activities.catalog import (
    ACTIVITY_CLASSES, BilateralCoordination, EmotionalExpression, RhythmSync,
    build_catalog, classify_mood,
)
from modules.activities.engine import ActivityEngine
from modules.activities.session import ActivitySession
from modules.visualization.render_engine import RenderEngine


def make_hand(x=0.5, y=0.5, speed=0.0, label=HandLabel.RIGHT, hand_id=None, gestures=None):
    hand = HandRecord.synthetic(x, y, hand_id=hand_id or "%s_0" % label.value, label=label)
    hand.velocity = Velocity(speed, 0.0, speed)
    if gestures is not None:
        hand.gestures = gestures
    return hand


def hand_pair(distance=0.32, speed=0.0):
    return [
        make_hand(0.5 - distance / 2, 0.5, speed, HandLabel.LEFT, "left_0"),
        make_hand(0.5 + distance / 2, 0.5, speed, HandLabel.RIGHT, "right_1"),
    ]


class Recorder:
    """Collects (event, kwargs) pairs from a bus."""

    def __init__(self, bus, *events):
        self.calls = []
        for event in events:
            bus.subscribe(event, lambda _e=event, **kw: self.calls.append((_e, kw)))

    def named(self, event):
        return [kw for e, kw in self.calls if e == event]


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def renderer():
    return RenderEngine({"width": 200, "height": 100, "seed": 3})


def make_engine(bus=None, renderer=None, settings=None, audio=None):
    return ActivityEngine(renderer=renderer, audio=audio, event_bus=bus,
                          settings=settings or Settings(), config={"seed": 1})


class TestActivityEngine:
    """Selection, lifecycle and session bookkeeping."""

    def test_catalog(self):
        engine = make_engine()
        names = [a["name"] for a in engine.available_activities()]
        assert names == [cls.name for cls in ACTIVITY_CLASSES]
        assert len(names) == 6

    def test_unknown_activity_keeps_current(self, bus):
        engine = make_engine(bus)
        assert engine.start_activity("fine-motor", now=0.0)
        assert not engine.start_activity("juggling", now=1.0)
        assert engine.current_activity.name == "fine-motor"
        assert engine.current_activity.is_active

    def test_start_replaces_running_activity(self, bus):
        recorder = Recorder(bus, Events.ACTIVITY_STARTED, Events.ACTIVITY_STOPPED)
        engine = make_engine(bus)
        engine.start_activity("fine-motor", now=0.0)
        first = engine.current_activity
        engine.start_activity("cause-effect", now=4.0)

        assert not first.is_active
        assert engine.current_activity.name == "cause-effect"
        assert [e for e, _ in recorder.calls] == [
            Events.ACTIVITY_STARTED, Events.ACTIVITY_STOPPED, Events.ACTIVITY_STARTED,
        ]
        assert recorder.named(Events.ACTIVITY_STOPPED)[0] == {"name": "fine-motor", "duration": 4.0}

    def test_stop_is_idempotent(self, bus):
        recorder = Recorder(bus, Events.ACTIVITY_STOPPED)
        engine = make_engine(bus)
        engine.start_activity("fine-motor", now=100.0)
        engine.stop_activity(now=130.0)
        engine.stop_activity(now=140.0)

        assert len(recorder.calls) == 1
        summary = engine.session_summary(now=160.0)
        assert summary["activities"][0]["duration"] == 30.0
        assert summary["activities_completed"] == 1
        assert summary["session_duration"] == 60.0

    def test_idle_status(self):
        engine = make_engine()
        assert engine.current_status() == {"active": False}
        engine.process_hands([make_hand()], now=0.0)
        assert engine.session.total_movements == 0

    def test_running_status(self):
        engine = make_engine()
        engine.start_activity("fine-motor", now=0.0)
        engine.process_hands([make_hand(speed=0.01)], now=0.1)
        status = engine.current_status()
        assert status["active"] is True
        assert status["name"] == "fine-motor"
        assert status["status"] == "active"
        assert status["progress"] == {"precise_movements": 1}

    def test_custom_settings_merged(self):
        engine = make_engine()
        engine.start_activity("large-movement", {"reward_interval": 2}, now=0.0)
        settings = engine.current_activity.settings
        assert settings["reward_interval"] == 2
        assert settings["movement_threshold"] == 0.05
        assert settings["difficulty"] is Difficulty.MEDIUM

    def test_engine_settings_are_only_what_activities_read(self):
        engine = make_engine()
        assert set(engine.settings) == {"difficulty", "celebration_intensity"}

    def test_update_settings_reaches_running_activity(self):
        engine = make_engine()
        engine.start_activity("fine-motor", now=0.0)
        engine.update_settings({"difficulty": "hard"})
        assert engine.current_activity.leniency == 0.7
        engine.update_settings(Settings(difficulty=Difficulty.EASY))
        assert engine.current_activity.difficulty is Difficulty.EASY

    def test_activity_fault_is_contained(self, bus):
        class Faulty(Activity):
            name = "faulty"

            def process_hands(self, hands, now):
                raise RuntimeError("sensor glitch")

        recorder = Recorder(bus, Events.ACTIVITY_ERROR)
        engine = ActivityEngine(event_bus=bus, catalog={"faulty": Faulty()})
        engine.start_activity("faulty", now=0.0)
        engine.process_hands([make_hand()], now=0.1)

        errors = recorder.named(Events.ACTIVITY_ERROR)
        assert len(errors) == 1
        assert errors[0]["name"] == "faulty"
        assert isinstance(errors[0]["error"], RuntimeError)
        assert engine.is_active

    def test_start_failure_reported(self, bus):
        class Unstartable(Activity):
            name = "unstartable"

            def start(self, settings=None):
                raise ValueError("bad settings")

        recorder = Recorder(bus, Events.ACTIVITY_ERROR, Events.ACTIVITY_STARTED)
        engine = ActivityEngine(event_bus=bus, catalog={"unstartable": Unstartable()})
        assert not engine.start_activity("unstartable", now=0.0)
        assert not engine.is_active
        assert [e for e, _ in recorder.calls] == [Events.ACTIVITY_ERROR]

    def test_failing_activity_left_out_of_catalog(self):
        class Broken(Activity):
            name = "broken"

            def __init__(self, renderer=None, audio=None):
                raise RuntimeError("cannot build")

        catalog = build_catalog(classes=(BilateralCoordination, Broken))
        assert list(catalog) == ["bilateral-coordination"]

    @pytest.mark.parametrize("intensity,expected", [
        (CelebrationIntensity.LOW, 15),
        (CelebrationIntensity.MEDIUM, 30),
        (CelebrationIntensity.HIGH, 50),
    ])
    def test_celebration_particles(self, renderer, intensity, expected):
        engine = make_engine(renderer=renderer, settings=Settings(celebration_intensity=intensity))
        engine.start_activity("large-movement", {"reward_interval": 1}, now=0.0)
        engine.process_hands([make_hand(speed=0.4)], now=0.1)

        assert len(engine.session.achievements) == 1
        assert renderer.particle_count == expected

    def test_achievement_published_with_timestamp(self, bus):
        recorder = Recorder(bus, Events.ACHIEVEMENT_UNLOCKED, Events.PROGRESS_UPDATED)
        engine = make_engine(bus)
        engine.start_activity("large-movement", {"reward_interval": 1}, now=0.0)
        engine.process_hands([make_hand(speed=0.4)], now=2.5)

        unlocked = recorder.named(Events.ACHIEVEMENT_UNLOCKED)
        assert len(unlocked) == 1
        assert unlocked[0]["achievement"].timestamp == 2.5
        progress = recorder.named(Events.PROGRESS_UPDATED)
        assert progress[0]["counters"]["large_movements"] == 1.0


class TestBilateralCoordination:
    """Two-hand distance matching."""

    def test_tenth_coordinated_frame_unlocks(self, bus, renderer):
        recorder = Recorder(bus, Events.ACHIEVEMENT_UNLOCKED)
        engine = make_engine(bus, renderer)
        engine.start_activity("bilateral-coordination", now=0.0)
        for i in range(10):
            engine.process_hands(hand_pair(0.32), now=0.1 * (i + 1))

        unlocked = recorder.named(Events.ACHIEVEMENT_UNLOCKED)
        assert len(unlocked) == 1
        assert unlocked[0]["achievement"].category == "bilateral"
        assert engine.current_activity.success_count == 0
        assert engine.session.bilateral == pytest.approx(1.9)

    def test_requires_left_and_right(self):
        activity = BilateralCoordination()
        activity.start()
        assert activity.process_hands([make_hand()], now=0.0) is None
        two_rights = [make_hand(0.3), make_hand(0.62, hand_id="right_1")]
        assert activity.process_hands(two_rights, now=0.0) is None

    def test_miss_reports_zero_progress(self):
        activity = BilateralCoordination()
        activity.start()
        result = activity.process_hands(hand_pair(0.6), now=0.0)
        assert result.progress.bilateral == 0.0
        assert activity.success_count == 0
        assert activity.progress()["distance"] == pytest.approx(0.6)

    @pytest.mark.parametrize("difficulty,coordinated", [
        (Difficulty.EASY, True), (Difficulty.MEDIUM, False), (Difficulty.HARD, False),
    ])
    def test_tolerance_scales_with_difficulty(self, difficulty, coordinated):
        activity = BilateralCoordination()
        activity.start({"difficulty": difficulty})
        result = activity.process_hands(hand_pair(0.43), now=0.0)
        assert (result.progress.bilateral > 0) is coordinated

    def test_draws_link(self, renderer):
        activity = BilateralCoordination(renderer=renderer)
        activity.start()
        activity.process_hands(hand_pair(0.32), now=0.0)
        assert renderer.pending_effects == 1
        assert renderer.render(now=0.0)[50, 100].any()


class TestCauseEffect:
    """Ripples rate-limited to one per interval."""

    def test_interval(self, renderer):
        engine = make_engine(renderer=renderer)
        engine.start_activity("cause-effect", now=0.0)
        for now in (0.0, 0.3, 0.5, 0.6):
            engine.process_hands([make_hand(speed=0.5)], now=now)
        assert engine.current_activity.effects_triggered == 2

    def test_three_rings_per_hand(self, renderer):
        engine = make_engine(renderer=renderer)
        engine.start_activity("cause-effect", now=0.0)
        engine.process_hands(hand_pair(0.32, speed=0.5), now=0.0)
        assert renderer.pending_effects == 6

    def test_no_hands_no_effect(self):
        engine = make_engine()
        engine.start_activity("cause-effect", now=0.0)
        engine.process_hands([], now=1.0)
        assert engine.current_activity.effects_triggered == 0

    def test_achievement_every_25(self, bus):
        recorder = Recorder(bus, Events.ACHIEVEMENT_UNLOCKED)
        engine = make_engine(bus)
        engine.start_activity("cause-effect", now=0.0)
        for i in range(50):
            engine.process_hands([make_hand(speed=0.2)], now=i * 0.6)
        names = [kw["achievement"].name for kw in recorder.named(Events.ACHIEVEMENT_UNLOCKED)]
        assert names == ["Cause and Effect Explorer"] * 2


class TestLargeMovement:
    """Brush pulses and rewards for fast movement."""

    def test_every_fifth_large_movement(self, bus):
        recorder = Recorder(bus, Events.ACHIEVEMENT_UNLOCKED)
        engine = make_engine(bus)
        engine.start_activity("large-movement", now=0.0)
        for i in range(10):
            engine.process_hands([make_hand(speed=0.1)], now=i * 0.1)
        engine.process_hands([make_hand(speed=0.01)], now=2.0)

        assert engine.current_activity.large_movements == 10
        assert len(recorder.named(Events.ACHIEVEMENT_UNLOCKED)) == 2
        assert engine.session.large_movements == 2.0

    def test_brush_pulse(self, renderer):
        engine = make_engine(renderer=renderer)
        engine.start_activity("large-movement", now=0.0)
        engine.process_hands([make_hand(speed=0.4)], now=0.0)
        assert renderer.brush_size == 30.0
        renderer.render(now=0.1)
        assert renderer.brush_size == 15.0

    def test_pulse_capped(self, renderer):
        engine = make_engine(renderer=renderer)
        engine.start_activity("large-movement", now=0.0)
        engine.process_hands([make_hand(speed=5.0)], now=0.0)
        assert renderer.brush_size == 45.0

    def test_threshold_scales_with_difficulty(self):
        engine = make_engine(settings=Settings(difficulty=Difficulty.HARD))
        engine.start_activity("large-movement", now=0.0)
        engine.process_hands([make_hand(speed=0.06)], now=0.0)
        assert engine.current_activity.large_movements == 0

        engine.update_settings({"difficulty": "medium"})
        engine.process_hands([make_hand(speed=0.06)], now=0.1)
        assert engine.current_activity.large_movements == 1


class TestFineMotor:
    """Slow, controlled movement counting."""

    def test_counts_only_slow_nonzero_speed(self):
        engine = make_engine()
        engine.start_activity("fine-motor", now=0.0)
        for speed in (0.0, 0.01, 0.019, 0.02, 0.5):
            engine.process_hands([make_hand(speed=speed)], now=0.0)
        assert engine.current_activity.precise_movements == 2

    def test_every_twentieth(self, bus, renderer):
        recorder = Recorder(bus, Events.ACHIEVEMENT_UNLOCKED)
        engine = make_engine(bus, renderer)
        engine.start_activity("fine-motor", now=0.0)
        for i in range(20):
            engine.process_hands([make_hand(speed=0.01)], now=i * 0.05)

        unlocked = recorder.named(Events.ACHIEVEMENT_UNLOCKED)
        assert [kw["achievement"].category for kw in unlocked] == ["fine-motor"]
        assert engine.session.fine_movements == 1.0

    def test_easy_widens_window(self):
        engine = make_engine(settings=Settings(difficulty=Difficulty.EASY))
        engine.start_activity("fine-motor", now=0.0)
        engine.process_hands([make_hand(speed=0.025)], now=0.0)
        assert engine.current_activity.precise_movements == 1


class TestRhythmSync:
    """Beat matching, at most once per hand per beat."""

    @pytest.fixture
    def audio(self):
        state = {"features": None}
        return state

    @pytest.fixture
    def activity(self, audio):
        activity = RhythmSync(audio=lambda: audio["features"])
        activity.start()
        return activity

    def test_requires_audio(self, activity):
        assert activity.process_hands(hand_pair(speed=0.5), now=0.0) is None
        assert activity.beat_matches == 0

    def test_inactive_audio_ignored(self, activity, audio):
        audio["features"] = AudioFeatures(beat=True, timestamp=1.0, active=False)
        activity.process_hands(hand_pair(speed=0.5), now=1.05)
        assert activity.beat_matches == 0

    def test_once_per_hand_per_beat(self, activity, audio):
        audio["features"] = AudioFeatures(beat=True, timestamp=10.0)
        activity.process_hands(hand_pair(speed=0.1), now=10.05)
        activity.process_hands(hand_pair(speed=0.1), now=10.1)
        assert activity.beat_matches == 2

        audio["features"] = AudioFeatures(beat=False, timestamp=10.15)
        activity.process_hands(hand_pair(speed=0.1), now=10.15)
        assert activity.beat_matches == 2

        audio["features"] = AudioFeatures(beat=True, timestamp=11.0)
        activity.process_hands(hand_pair(speed=0.1), now=11.01)
        assert activity.beat_matches == 4

    def test_window(self, activity, audio):
        audio["features"] = AudioFeatures(beat=True, timestamp=10.0)
        activity.process_hands(hand_pair(speed=0.1), now=10.25)
        assert activity.beat_matches == 0

    def test_slow_hand_not_matched(self, activity, audio):
        audio["features"] = AudioFeatures(beat=True, timestamp=10.0)
        activity.process_hands(hand_pair(speed=0.02), now=10.05)
        assert activity.beat_matches == 0

    def test_tenth_match_unlocks(self, activity, audio):
        results = []
        for beat in range(5):
            t = 20.0 + beat
            audio["features"] = AudioFeatures(beat=True, timestamp=t)
            results.append(activity.process_hands(hand_pair(speed=0.1), now=t + 0.05))
        assert all(r is None for r in results[:4])
        assert results[4].achievement.category == "rhythm"


class TestEmotionalExpression:
    """Mood classification and mood rings."""

    @pytest.mark.parametrize("speed,gestures,mood", [
        (0.2, Gestures(is_open=True), "energetic"),
        (0.05, Gestures(is_open=True), "happy"),
        (0.01, Gestures(), "focused"),
        (0.05, Gestures(is_fist=True), "calm"),
    ])
    def test_classify_mood(self, speed, gestures, mood):
        assert classify_mood(make_hand(speed=speed, gestures=gestures)) == mood

    def test_every_thirtieth(self, renderer):
        activity = EmotionalExpression(renderer=renderer)
        activity.start()
        result = None
        for i in range(15):
            result = activity.process_hands(hand_pair(speed=0.05), now=i * 0.1)
        assert activity.expressions == 30
        assert result.achievement.category == "emotional"

    def test_mood_ring_lingers_then_expires(self, renderer):
        activity = EmotionalExpression(renderer=renderer)
        activity.start()
        activity.process_hands([make_hand(speed=0.2)], now=0.0)
        assert activity.current_mood == "energetic"

        renderer.render(now=0.1)
        assert renderer.pending_effects == 1
        renderer.render(now=0.35)
        assert renderer.pending_effects == 0


class TestActivitySession:
    """Session summary arithmetic."""

    def test_average_movements_per_minute(self):
        session = ActivitySession()
        session.begin("fine-motor", {}, now=0.0)
        session.total_movements = 120
        assert session.summary(now=60.0)["average_movements_per_minute"] == pytest.approx(120.0)
        assert session.summary(now=30.0)["average_movements_per_minute"] == pytest.approx(240.0)

    def test_zero_elapsed(self):
        session = ActivitySession()
        assert session.summary(now=5.0)["average_movements_per_minute"] == 0.0
        session.begin("fine-motor", {}, now=5.0)
        session.total_movements = 10
        assert session.summary(now=5.0)["average_movements_per_minute"] == 0.0

    def test_movements_counted_per_hand(self):
        engine = make_engine()
        engine.start_activity("fine-motor", now=0.0)
        engine.process_hands(hand_pair(), now=0.1)
        engine.process_hands([make_hand()], now=0.2)
        assert engine.session.total_movements == 3
