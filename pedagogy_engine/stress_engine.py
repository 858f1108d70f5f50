"""
Stress Engine

The synchronous half of the engine. Ties together:
1. Signal collector (raw windows)
2. Feature extractor
3. Stress classifier
4. Stall watchdog (fires stall detection even with zero input)

Readings are recomputed on every qualifying host event and on the watchdog.
Only monotonically recent readings are applied; a reading computed from an
older snapshot than the one already applied is discarded.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from .classifier import StressClassifier, StressReading
from .config import EngineConfig
from .features import FeatureExtractor
from .observers import Observable
from .signals import InteractionSample, SignalCollector, dispatch_sample

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class StallWatchdog:
    """
    Single debounced timer on the asyncio loop.

    `arm()` cancels any pending timer before scheduling a new one, so
    activity bursts never stack duplicate timers. Without a running loop
    the watchdog is inert and the host polls `StressEngine.tick()` instead.
    """

    def __init__(
        self,
        delay_ms: float,
        callback: Callable[[], object],
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.delay_ms = delay_ms
        self.callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None and not self._handle.cancelled()

    def _resolve_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def arm(self) -> bool:
        """(Re)schedule the timer. Returns False when no loop is available."""
        self.cancel()
        loop = self._resolve_loop()
        if loop is None or loop.is_closed():
            return False
        self._handle = loop.call_later(self.delay_ms / 1000.0, self._fire)
        return True

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self):
        self._handle = None
        self.callback()


class StressEngine:
    """
    Synchronous stress sensing pipeline.

    Implements the InteractionSink protocol so an EventSource can feed it
    directly. Timestamps are milliseconds; when omitted, `clock()` is used.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.config = config or EngineConfig()
        self.clock = clock or wall_clock_ms

        started_at = self.clock()
        self.collector = SignalCollector(
            click_capacity=self.config.click_buffer_size,
            move_capacity=self.config.move_buffer_size,
            started_at=started_at,
        )
        self.extractor = FeatureExtractor(self.config)
        self.classifier = StressClassifier(self.config, self.extractor)

        # Every applied reading (controller channel) vs. only changes (public)
        self.readings: Observable[StressReading] = Observable("stress_readings")
        self.changes: Observable[StressReading] = Observable("stress_change")

        self._latest = StressReading.neutral(started_at, self.collector.version)
        self.discarded_readings = 0

        # Fire strictly past the threshold so the stall comparison holds
        self.watchdog = StallWatchdog(self.config.stall_threshold_ms + 1, self.tick, loop)

    @property
    def current_reading(self) -> StressReading:
        return self._latest

    def on_stress_change(self, callback: Callable[[StressReading], None]) -> Callable[[], None]:
        return self.changes.subscribe(callback)

    def _now(self, ts: Optional[float]) -> float:
        return self.clock() if ts is None else ts

    # -- host events ---------------------------------------------------

    def on_click(self, ts: Optional[float] = None) -> StressReading:
        now = self._now(ts)
        self.collector.record_click(now)
        self._mark_activity(now)
        return self.recompute(now)

    def on_move(self, x: float, y: float, ts: Optional[float] = None) -> StressReading:
        now = self._now(ts)
        self.collector.record_move(x, y)
        self._mark_activity(now)
        return self.recompute(now)

    def on_key(self, ts: Optional[float] = None) -> StressReading:
        now = self._now(ts)
        self._mark_activity(now)
        return self.recompute(now)

    def on_visibility(self, hidden: bool, ts: Optional[float] = None) -> StressReading:
        now = self._now(ts)
        self.collector.record_visibility(hidden)
        return self.recompute(now)

    def ingest(self, sample: InteractionSample) -> StressReading:
        return dispatch_sample(self, sample)

    def _mark_activity(self, now: float):
        self.collector.record_activity(now)
        self.watchdog.arm()

    # -- classification ------------------------------------------------

    def tick(self, now: Optional[float] = None) -> StressReading:
        """Recompute without new input (watchdog / host polling)."""
        return self.recompute(self._now(now))

    def recompute(self, now: float) -> StressReading:
        reading = self.classifier.classify(self.collector.snapshot(), now)
        self.apply(reading)
        return self._latest

    def apply(self, reading: StressReading) -> bool:
        """
        Apply a reading if it is not older than the current one.

        Returns True if applied, False if discarded as stale.
        """
        latest = self._latest
        is_stale = (
            reading.snapshot_version < latest.snapshot_version or
            (reading.snapshot_version == latest.snapshot_version and
             reading.computed_at < latest.computed_at)
        )
        if is_stale:
            self.discarded_readings += 1
            logger.debug(
                f"Discarded stale reading (version {reading.snapshot_version} "
                f"< {latest.snapshot_version})"
            )
            return False

        self._latest = reading
        self.readings.emit(reading)
        if not reading.same_state_as(latest):
            if reading.is_distressed:
                logger.info(f"Stress detected: level={reading.level} flags={reading.flags()}")
            self.changes.emit(reading)
        return True

    def reset(self, now: Optional[float] = None) -> StressReading:
        """Clear motion history and treat the learner as freshly active."""
        now = self._now(now)
        self.collector.clear_motion()
        self._mark_activity(now)
        return self.recompute(now)

    def close(self):
        self.watchdog.cancel()
