"""
Centralized configuration manager.

The YAML file (config/config.yaml unless a path is given) is deep-merged
over the built-in defaults below, so a partial file only needs the keys
it changes. Values are read by dot path: ``config.get("audio.beat.threshold")``.
"""

import os
import copy
import yaml
import logging

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

_DEFAULTS = {
    "system": {"name": "Movement Therapy Visualizer", "debug": False},
    "logging": {"level": "INFO", "file": None, "max_size_mb": 10, "backup_count": 3},
    "camera": {"device_id": 0, "width": 640, "height": 480, "fps": 30},
    "mediapipe": {
        "max_num_hands": 2,
        "model_complexity": 1,
        "min_detection_confidence": 0.7,
        "min_tracking_confidence": 0.5,
    },
    "tracking": {"confidence_threshold": 0.7, "smoothing_factor": 0.7, "max_history": 10},
    "audio": {
        "sample_rate": 44100,
        "block_size": 512,
        "analyser": {"fft_size": 2048, "smoothing_time_constant": 0.8},
        "beat": {"threshold": 0.3, "decay": 0.98, "min_threshold": 0.15, "cooldown_ms": 300},
        "volume_history": 10,
    },
    "visuals": {"max_trail_length": 100, "max_particles": 500, "max_effects": 256},
    "activities": {"seed": None},
    "settings": {},
}

# section -> {field: expected type}; int is accepted where float is expected
_FIELD_TYPES = {
    "camera": {"device_id": int, "width": int, "height": int, "fps": int},
    "mediapipe": {
        "max_num_hands": int,
        "min_detection_confidence": float,
        "min_tracking_confidence": float,
    },
    "tracking": {"confidence_threshold": float, "smoothing_factor": float},
    "audio": {"sample_rate": int, "block_size": int, "beat": dict, "analyser": dict},
    "visuals": {"max_trail_length": int, "max_particles": int, "max_effects": int},
    "settings": {},
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _type_problem(path: str, value, expected: type):
    if expected is float and isinstance(value, (int, float)) and not isinstance(value, bool):
        return None
    if isinstance(value, expected):
        return None
    return "%s: expected %s, got %s (%r)" % (path, expected.__name__, type(value).__name__, value)


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = copy.deepcopy(_DEFAULTS)

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path=None):
        """Read ``config_path`` and merge it over the defaults.

        A missing file or a file whose root is not a mapping leaves the
        defaults in place with a warning.
        """
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")

        try:
            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            loaded = {}

        if not isinstance(loaded, dict):
            logger.warning("Config root should be a mapping, got %s; using defaults",
                           type(loaded).__name__)
            loaded = {}

        self._data = _deep_merge(copy.deepcopy(_DEFAULTS), loaded)
        self._validate()
        return self

    def _validate(self) -> list:
        """Check field types, the analyser FFT size and the settings block.

        Problems are logged, never raised; the caller decides what to do
        with values that are still wrong when they are used.
        """
        problems = []
        for section_name, field_types in _FIELD_TYPES.items():
            section = self._data.get(section_name)
            if not isinstance(section, dict):
                problems.append("section '%s' should be a mapping, got %s"
                                % (section_name, type(section).__name__))
                continue
            for field_name, expected in field_types.items():
                if field_name not in section:
                    continue
                problem = _type_problem("%s.%s" % (section_name, field_name),
                                        section[field_name], expected)
                if problem:
                    problems.append(problem)

        fft_size = self.get("audio.analyser.fft_size")
        if isinstance(fft_size, int) and (fft_size < 32 or fft_size & (fft_size - 1)):
            problems.append("audio.analyser.fft_size: must be a power of two >= 32, got %r" % fft_size)

        if isinstance(self._data.get("settings"), dict):
            from core.settings import Settings

            try:
                Settings.from_dict(self._data["settings"])
            except (KeyError, ValueError) as e:
                problems.append("settings: %s" % e)

        for problem in problems:
            logger.warning("Config validation: %s", problem)
        if not problems:
            logger.debug("Config validation passed")
        return problems

    def get(self, key_path: str, default=None):
        """Nested lookup by dot path, ``default`` when any key is missing."""
        node = self._data
        for key in key_path.split("."):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def get_section(self, section: str) -> dict:
        return self._data.get(section) or {}

    @property
    def camera(self) -> dict:
        return self.get_section("camera")

    @property
    def mediapipe(self) -> dict:
        return self.get_section("mediapipe")

    @property
    def tracking(self) -> dict:
        return self.get_section("tracking")

    @property
    def audio(self) -> dict:
        return self.get_section("audio")

    @property
    def visuals(self) -> dict:
        return self.get_section("visuals")

    @property
    def activities(self) -> dict:
        return self.get_section("activities")

    @property
    def settings(self) -> dict:
        """Initial runtime settings, fed to Settings.from_dict()."""
        return self.get_section("settings")

    @property
    def base_dir(self) -> str:
        return _BASE_DIR

    @classmethod
    def reset(cls):
        """Drop the singleton and restore defaults (tests)."""
        cls._instance = None
        cls._data = copy.deepcopy(_DEFAULTS)
