"""
Deferred visual effects.

Activities ask for feedback that must appear a little later or linger
for a short while (ripple rings, flashes, brush pulses). Instead of
timers, effects are queued with a due time and drained from the render
tick, so clearing the queue is all it takes to cancel them.
"""

import heapq
import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(order=True)
class DeferredEffect:
    due: float
    seq: int
    duration: float = field(compare=False, default=0.0)
    action: Callable = field(compare=False, default=None)
    name: str = field(compare=False, default="effect")


class DeferredEffectQueue:
    """Time-ordered queue of pending and running effects.

    An effect becomes running once ``due`` has passed and is invoked as
    ``action(surface, progress)`` on every drain until ``due + duration``,
    with ``progress`` going from 0 to 1. Zero-duration effects run once.
    """

    def __init__(self, max_effects: int = 256):
        self._max_effects = max_effects
        self._pending = []
        self._running = []
        self._seq = 0
        self._dropped = 0

    def schedule(self, due: float, action: Callable, duration: float = 0.0,
                 name: str = "effect") -> bool:
        """Queue an effect. Returns False when the queue is full."""
        if len(self._pending) + len(self._running) >= self._max_effects:
            self._dropped += 1
            logger.debug("Effect queue full, dropping %s", name)
            return False
        self._seq += 1
        heapq.heappush(self._pending, DeferredEffect(due, self._seq, max(duration, 0.0), action, name))
        return True

    def drain(self, surface, now: float) -> int:
        """Run every due effect against ``surface``; returns how many ran."""
        while self._pending and self._pending[0].due <= now:
            self._running.append(heapq.heappop(self._pending))

        ran = 0
        still_running = []
        for effect in self._running:
            elapsed = now - effect.due
            progress = 1.0 if effect.duration <= 0 else min(elapsed / effect.duration, 1.0)
            try:
                effect.action(surface, progress)
            except Exception as e:
                logger.error("Effect '%s' failed: %s", effect.name, e)
                continue
            ran += 1
            if progress < 1.0:
                still_running.append(effect)
        self._running = still_running
        return ran

    def cancel_all(self) -> int:
        cancelled = len(self._pending) + len(self._running)
        self._pending.clear()
        self._running.clear()
        return cancelled

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def __len__(self) -> int:
        return len(self._pending) + len(self._running)
