"""
Feature Extraction Module

Derives normalized signals from a SignalWindow snapshot:
- Click velocity (clicks/sec over a short window)
- Pointer jitter (chaotic motion or erratic direction flipping)
- Inactivity duration (stall detection)
- Visibility (tab hidden)

Insufficient samples never raise - they produce a neutral feature.
"""

import math
from dataclasses import dataclass
from typing import Dict

from .config import EngineConfig
from .signals import SignalWindow


@dataclass(frozen=True)
class SignalFeatures:
    """All features extracted from one window snapshot."""
    click_velocity: float
    is_jittery: bool
    mean_segment_distance: float
    reversal_ratio: float
    inactivity_ms: float
    is_stalled: bool
    is_hidden: bool

    def to_dict(self) -> Dict:
        return {
            "click_velocity": round(self.click_velocity, 3),
            "is_jittery": self.is_jittery,
            "mean_segment_distance": round(self.mean_segment_distance, 3),
            "reversal_ratio": round(self.reversal_ratio, 3),
            "inactivity_ms": round(self.inactivity_ms),
            "is_stalled": self.is_stalled,
            "is_hidden": self.is_hidden,
        }


def _angle_delta(a: float, b: float) -> float:
    """Smallest absolute difference between two headings, in radians."""
    delta = abs(a - b) % (2 * math.pi)
    return 2 * math.pi - delta if delta > math.pi else delta


class FeatureExtractor:
    """
    Read-only analysis of the collector's window.

    Pure functions of (window, now, config) - no state of its own.
    """

    REVERSAL_ANGLE = math.pi / 4  # 45 degrees

    def __init__(self, config: EngineConfig):
        self.config = config

    def click_velocity(self, window: SignalWindow, now: float) -> float:
        """
        Clicks per second over the recent click window, capped.

        Returns 0 with fewer than 2 recent clicks.
        """
        recent = [t for t in window.click_times if now - t < self.config.click_window_ms]
        if len(recent) < 2:
            return 0.0

        intervals = [recent[i] - recent[i - 1] for i in range(1, len(recent))]
        mean_interval = sum(intervals) / len(intervals)
        if mean_interval <= 0:
            # Simultaneous clicks saturate the signal
            return self.config.max_click_velocity
        return min(1000.0 / mean_interval, self.config.max_click_velocity)

    def movement_stats(self, window: SignalWindow):
        """Return (mean segment distance, reversal ratio) or None if too few samples."""
        positions = window.positions
        if len(positions) < self.config.min_move_samples:
            return None

        segments = len(positions) - 1
        total_distance = 0.0
        reversals = 0
        last_heading = None

        for i in range(1, len(positions)):
            dx = positions[i][0] - positions[i - 1][0]
            dy = positions[i][1] - positions[i - 1][1]
            total_distance += math.hypot(dx, dy)
            heading = math.atan2(dy, dx)
            if last_heading is not None and _angle_delta(heading, last_heading) > self.REVERSAL_ANGLE:
                reversals += 1
            last_heading = heading

        return total_distance / segments, reversals / segments

    def jitter_score(self, window: SignalWindow) -> bool:
        """True when motion is chaotic OR direction flips erratically."""
        stats = self.movement_stats(window)
        if stats is None:
            return False
        return self._is_jitter(*stats)

    def _is_jitter(self, mean_distance: float, reversal_ratio: float) -> bool:
        return (mean_distance > self.config.jitter_threshold or
                reversal_ratio > self.config.reversal_ratio_threshold)

    def inactivity_duration(self, window: SignalWindow, now: float) -> float:
        return max(0.0, now - window.last_activity)

    def is_stalled(self, window: SignalWindow, now: float) -> bool:
        return self.inactivity_duration(window, now) > self.config.stall_threshold_ms

    def visibility_penalty(self, window: SignalWindow) -> int:
        """Fixed contribution while the tab is hidden."""
        return 0 if window.tab_visible else self.config.weights.hidden

    def extract(self, window: SignalWindow, now: float) -> SignalFeatures:
        stats = self.movement_stats(window)
        mean_distance, reversal_ratio = stats if stats else (0.0, 0.0)
        inactivity = self.inactivity_duration(window, now)

        return SignalFeatures(
            click_velocity=self.click_velocity(window, now),
            is_jittery=stats is not None and self._is_jitter(*stats),
            mean_segment_distance=mean_distance,
            reversal_ratio=reversal_ratio,
            inactivity_ms=inactivity,
            is_stalled=inactivity > self.config.stall_threshold_ms,
            is_hidden=not window.tab_visible,
        )
