"""
Per-session bookkeeping for the ActivityEngine.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from core.types import Achievement, ProgressDelta


@dataclass
class ActivityRecord:
    """One run of one activity."""
    name: str
    start: float
    settings: dict = field(default_factory=dict)
    end: Optional[float] = None
    duration: Optional[float] = None

    def finish(self, now: float):
        self.end = now
        self.duration = now - self.start

    @property
    def completed(self) -> bool:
        return self.end is not None

    def to_dict(self) -> dict:
        return {"name": self.name, "start": self.start, "end": self.end, "duration": self.duration}


@dataclass
class ActivitySession:
    """Activities run, achievements earned and movement counters."""
    start_time: Optional[float] = None
    activities: List[ActivityRecord] = field(default_factory=list)
    achievements: List[Achievement] = field(default_factory=list)
    total_movements: int = 0
    bilateral: float = 0.0
    large_movements: float = 0.0
    fine_movements: float = 0.0

    def begin(self, name: str, settings: dict, now: float) -> ActivityRecord:
        if self.start_time is None:
            self.start_time = now
        record = ActivityRecord(name=name, start=now, settings=dict(settings))
        self.activities.append(record)
        return record

    @property
    def current_record(self) -> Optional[ActivityRecord]:
        return self.activities[-1] if self.activities else None

    def add_progress(self, delta: ProgressDelta):
        self.bilateral += delta.bilateral
        self.large_movements += delta.large_movement
        self.fine_movements += delta.fine_movement

    def counters(self) -> dict:
        return {
            "bilateral": self.bilateral,
            "large_movements": self.large_movements,
            "fine_movements": self.fine_movements,
            "total_movements": self.total_movements,
        }

    def elapsed(self, now: float) -> float:
        return now - self.start_time if self.start_time is not None else 0.0

    def summary(self, now: float) -> dict:
        elapsed = self.elapsed(now)
        return {
            "session_duration": elapsed,
            "activities": [record.to_dict() for record in self.activities],
            "achievements_count": len(self.achievements),
            "activities_completed": sum(1 for r in self.activities if r.completed),
            "total_movements": self.total_movements,
            "counters": self.counters(),
            "average_movements_per_minute": (
                self.total_movements / (elapsed / 60.0) if elapsed > 0 else 0.0
            ),
        }
