#!/usr/bin/env python3
"""
Movement Therapy Visualizer - desktop application entry point.

Camera frames go through MediaPipe Hands into the pipeline; the rendered
surface is composited over the mirrored preview in an OpenCV window.
An optional microphone drives audio-reactive colour and the rhythm
activity.

Usage:
    python main.py                           # Free drawing
    python main.py --visual-mode particles   # Particle mode
    python main.py --activity fine-motor     # Start with an activity
    python main.py --audio                   # Enable the microphone
    python main.py --list-activities

Keys:
    space  start/stop camera     c  clear          s  print status
    a      toggle audio          m  visual mode    k  colour mode
    y      symmetry              1-6 activity      0  stop activity
    p      performance report    q/Esc  quit
"""

import sys
import os
import signal
import argparse
import logging

import cv2

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from core.events import EventBus, Events
from core.pipeline import Pipeline
from core.settings import Settings
from core.types import ColorMode, VisualMode
from modules.activities.catalog import ACTIVITY_CLASSES
from modules.audio.microphone import Microphone
from modules.detection.hand_detector import HandDetector
from modules.utils.config import Config
from modules.utils.logger import SessionLogger, setup_logging
from modules.visualization.overlay import HandOverlay

logger = logging.getLogger(__name__)

WINDOW_NAME = "Movement Therapy Visualizer"
ACTIVITY_KEYS = {ord(str(i + 1)): cls.name for i, cls in enumerate(ACTIVITY_CLASSES)}


def _next_member(enum_cls, current):
    members = list(enum_cls)
    return members[(members.index(current) + 1) % len(members)]


class MovementTherapyApp:
    """Owns the camera, detector, microphone and preview window."""

    def __init__(self, config: Config, settings: Settings):
        self._config = config
        self._running = False
        self._camera_active = False
        self._cap = None

        self._bus = EventBus()
        self._session_logger = SessionLogger(self._bus)
        self._pipeline = Pipeline(
            event_bus=self._bus,
            settings=settings,
            config={
                "tracking": config.tracking,
                "audio": config.audio,
                "visuals": config.visuals,
                "activities": config.activities,
            },
        )
        self._detector = HandDetector(config.mediapipe)
        self._microphone = Microphone(config.audio)
        self._overlay = HandOverlay(config.get("visuals.overlay", {}))
        self._zone_expansion = config.get("tracking.zone_expansion", 1.5)
        self._zone_expanded = False

        self._bus.subscribe(Events.BEAT_DETECTED, self._on_beat)
        self._bus.subscribe(Events.ACTIVITY_ERROR, self._on_activity_error)

        logger.info("MovementTherapyApp initialized")

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _on_beat(self, features, **kwargs):
        self._pipeline.renderer.flash(features.bass_energy * 0.2)

    def _on_activity_error(self, name, error, **kwargs):
        logger.warning("Activity %s reported an error: %s", name, error)

    def _on_mouse(self, event, x, y, flags, param):
        if event != cv2.EVENT_LBUTTONDOWN or not self._camera_active:
            return
        renderer = self._pipeline.renderer
        self._pipeline.interact(x / renderer.width, y / renderer.height)

    # =========================================================================
    # Camera and audio
    # =========================================================================

    def start_camera(self) -> bool:
        """Open camera and detector and start the pipeline. Retryable on failure."""
        try:
            self._open_camera()
            self._detector.initialize()
        except RuntimeError as e:
            logger.error("Failed to start camera: %s", e)
            self._close_camera()
            return False

        self._pipeline.start()
        if not self._zone_expanded:
            self._pipeline.expand_movement_zone(self._zone_expansion)
            self._zone_expanded = True
        self._camera_active = True
        logger.info("Camera and hand tracking started")
        return True

    def stop_camera(self):
        self._pipeline.stop()
        self._close_camera()
        self._camera_active = False
        if self._microphone.is_open:
            self._microphone.close()
        logger.info("Camera and hand tracking stopped")

    def _open_camera(self):
        device_id = self._config.get("camera.device_id", 0)
        self._cap = cv2.VideoCapture(device_id)
        if not self._cap.isOpened():
            raise RuntimeError("Could not open camera %d" % device_id)
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._config.get("camera.width", 640))
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._config.get("camera.height", 480))
        self._cap.set(cv2.CAP_PROP_FPS, self._config.get("camera.fps", 30))

        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._pipeline.resize(width, height)
        logger.info("Camera opened: %dx%d", width, height)

    def _close_camera(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def start_audio(self) -> bool:
        try:
            self._microphone.open()
        except RuntimeError as e:
            logger.error("Failed to enable audio: %s", e)
            return False
        self._pipeline.audio.set_sample_rate(self._microphone.sample_rate)
        self._pipeline.start_audio()
        if not self._pipeline.settings.audio_enabled:
            self._pipeline.update_settings(audio_enabled=True)
        return True

    def stop_audio(self):
        self._pipeline.stop_audio()
        self._microphone.close()
        if self._pipeline.settings.audio_enabled:
            self._pipeline.update_settings(audio_enabled=False)

    def toggle_audio(self):
        if self._pipeline.is_audio_active:
            self.stop_audio()
        else:
            self.start_audio()

    # =========================================================================
    # Main loop
    # =========================================================================

    def run(self, activity: str = None):
        cv2.namedWindow(WINDOW_NAME)
        cv2.setMouseCallback(WINDOW_NAME, self._on_mouse)

        if self.start_camera() and activity:
            self._pipeline.start_activity(activity)
        if self._pipeline.settings.audio_enabled and self._camera_active:
            self.start_audio()

        self._running = True
        while self._running:
            frame = self._step()
            if frame is not None:
                cv2.imshow(WINDOW_NAME, frame)
            self._handle_key(cv2.waitKey(1) & 0xFF)

        self.shutdown()

    def _step(self):
        if not self._camera_active or self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        raw_frame = self._detector.detect(rgb)
        hands = self._pipeline.on_hand_results(raw_frame)

        if self._pipeline.is_audio_active:
            freq, wave = self._microphone.read()
            self._pipeline.on_audio_tick(freq, wave)

        surface = self._pipeline.on_animation_frame()
        preview = cv2.flip(frame, 1)
        composed = cv2.add(cv2.convertScaleAbs(preview, alpha=0.4), surface)

        status = self._pipeline.get_status()
        audio = status["audio"]
        return self._overlay.render(composed, hands, {
            "fps": self._pipeline.performance.fps,
            "mode": status["settings"]["visual_mode"],
            "activity": status["activity"].get("name"),
            "audio_volume": audio["volume"] if audio else None,
            "beat": audio["beat"] if audio else False,
        })

    def _handle_key(self, key: int):
        if key in (ord("q"), 27):
            self._running = False
        elif key == ord(" "):
            if self._camera_active:
                self.stop_camera()
            else:
                self.start_camera()
        elif key == ord("c"):
            self._pipeline.clear()
        elif key == ord("s"):
            self._print_status()
        elif key == ord("a"):
            self.toggle_audio()
        elif key == ord("m"):
            mode = _next_member(VisualMode, self._pipeline.settings.visual_mode)
            self._pipeline.clear()
            self._pipeline.update_settings(visual_mode=mode)
        elif key == ord("k"):
            self._pipeline.update_settings(
                color_mode=_next_member(ColorMode, self._pipeline.settings.color_mode))
        elif key == ord("y"):
            self._pipeline.update_settings(symmetry_mode=not self._pipeline.settings.symmetry_mode)
        elif key in ACTIVITY_KEYS:
            self._pipeline.start_activity(ACTIVITY_KEYS[key])
        elif key == ord("0"):
            self._pipeline.stop_activity()
        elif key == ord("p"):
            self._pipeline.performance.print_report()

    def _print_status(self):
        status = self._pipeline.get_status()
        logger.info("-" * 60)
        for name, value in status["settings"].items():
            logger.info("  %-22s %s", name, value)
        logger.info("  %-22s %s", "activity", status["activity"])
        logger.info("-" * 60)

    def shutdown(self):
        logger.info("Shutting down...")
        self._running = False
        summary = self._pipeline.session_summary()
        self.stop_camera()
        self._detector.close()
        cv2.destroyAllWindows()

        logger.info("Session: %.1fs, %d activities, %d achievements, %.1f movements/min",
                    summary["session_duration"], len(summary["activities"]),
                    summary["achievements_count"], summary["average_movements_per_minute"])
        logger.info("Shutdown complete.")

    def handle_signal(self, signum, frame):
        logger.info("Signal %d received, shutting down...", signum)
        self._running = False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Movement Therapy Visualizer")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--camera", type=int, default=None, help="Camera device ID")
    parser.add_argument("--activity", choices=[cls.name for cls in ACTIVITY_CLASSES],
                        default=None, help="Activity to start with")
    parser.add_argument("--visual-mode", choices=[m.value for m in VisualMode], default=None)
    parser.add_argument("--color-mode", choices=[m.value for m in ColorMode], default=None)
    parser.add_argument("--difficulty", choices=["easy", "medium", "hard"], default=None)
    parser.add_argument("--audio", action="store_true", help="Enable microphone input")
    parser.add_argument("--list-activities", action="store_true",
                        help="Print the activity catalog and exit")
    return parser.parse_args(argv)


def build_settings(config: Config, args) -> Settings:
    """Initial settings from the config file with command-line overrides."""
    settings = Settings.from_dict(config.settings)
    overrides = {}
    if args.visual_mode:
        overrides["visual_mode"] = args.visual_mode
    if args.color_mode:
        overrides["color_mode"] = args.color_mode
    if args.difficulty:
        overrides["difficulty"] = args.difficulty
    if args.audio:
        overrides["audio_enabled"] = True
    return settings.merged(**overrides) if overrides else settings


def main(argv=None):
    args = parse_args(argv)

    config = Config()
    config.load(config_path=args.config)
    if args.camera is not None:
        config._data.setdefault("camera", {})["device_id"] = args.camera

    log_cfg = config.get_section("logging")
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    if args.list_activities:
        for cls in ACTIVITY_CLASSES:
            print("%-22s %s" % (cls.name, cls.description))
        return 0

    try:
        settings = build_settings(config, args)
    except (KeyError, ValueError) as e:
        logger.error("Invalid settings: %s", e)
        return 2

    logger.info("=" * 60)
    logger.info("  %s", config.get("system.name", "Movement Therapy Visualizer"))
    logger.info("  Visual mode: %s | Colour: %s | Difficulty: %s",
                settings.visual_mode.value, settings.color_mode.value, settings.difficulty.value)
    logger.info("=" * 60)

    app = MovementTherapyApp(config, settings)
    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)
    app.run(activity=args.activity)
    return 0


if __name__ == "__main__":
    sys.exit(main())
