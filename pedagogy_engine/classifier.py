"""
Stress Classifier Module

Combines extracted features into one composite stress level (0-100)
plus categorical flags. No ML - fixed additive weights, clamped.

Formula:
    level = 40*raging + 30*jittery + 20*stalled + 25*hidden, clamped to [0, 100]

The weights can sum past 100 on purpose: simultaneous distress signals
saturate the level instead of averaging each other out.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import EngineConfig
from .features import FeatureExtractor, SignalFeatures
from .signals import SignalWindow

MIN_LEVEL = 0
MAX_LEVEL = 100


@dataclass(frozen=True)
class StressReading:
    """Momentary stress classification from one window snapshot."""
    level: int
    is_raging: bool
    is_jittery: bool
    is_stalled: bool
    is_hidden: bool
    computed_at: float
    snapshot_version: int = 0
    click_velocity: float = 0.0
    inactivity_ms: float = 0.0

    @property
    def is_stressed(self) -> bool:
        return self.level > 0

    @property
    def is_distressed(self) -> bool:
        """Flags that trigger the protective downgrade."""
        return self.is_raging or self.is_jittery or self.is_stalled

    @property
    def dominant_signal(self) -> str:
        if self.is_raging:
            return "rage"
        if self.is_jittery:
            return "jitter"
        if self.is_stalled:
            return "stall"
        if self.is_hidden:
            return "hidden"
        return "calm"

    def flags(self) -> List[str]:
        names = []
        if self.is_raging:
            names.append("raging")
        if self.is_jittery:
            names.append("jittery")
        if self.is_stalled:
            names.append("stalled")
        if self.is_hidden:
            names.append("hidden")
        return names

    def same_state_as(self, other: "StressReading") -> bool:
        """True when level and flags match (timestamps ignored)."""
        return (self.level == other.level and
                self.is_raging == other.is_raging and
                self.is_jittery == other.is_jittery and
                self.is_stalled == other.is_stalled and
                self.is_hidden == other.is_hidden)

    def to_dict(self) -> Dict:
        return {
            "level": self.level,
            "is_raging": self.is_raging,
            "is_jittery": self.is_jittery,
            "is_stalled": self.is_stalled,
            "is_hidden": self.is_hidden,
            "computed_at": self.computed_at,
            "snapshot_version": self.snapshot_version,
            "click_velocity": round(self.click_velocity, 3),
            "inactivity_ms": round(self.inactivity_ms),
        }

    @classmethod
    def neutral(cls, computed_at: float, snapshot_version: int = 0) -> "StressReading":
        return cls(
            level=MIN_LEVEL,
            is_raging=False,
            is_jittery=False,
            is_stalled=False,
            is_hidden=False,
            computed_at=computed_at,
            snapshot_version=snapshot_version,
        )


def clamp_level(score: float) -> int:
    return int(max(MIN_LEVEL, min(MAX_LEVEL, score)))


class StressClassifier:
    """
    Stateless classifier: (window, now, thresholds) -> StressReading.
    """

    def __init__(self, config: EngineConfig, extractor: Optional[FeatureExtractor] = None):
        self.config = config
        self.extractor = extractor or FeatureExtractor(config)

    def score(
        self,
        is_raging: bool,
        is_jittery: bool,
        is_stalled: bool,
        is_hidden: bool
    ) -> int:
        """Additive weighted score, clamped to [0, 100]."""
        weights = self.config.weights
        total = 0
        if is_raging:
            total += weights.raging
        if is_jittery:
            total += weights.jittery
        if is_stalled:
            total += weights.stalled
        if is_hidden:
            total += weights.hidden
        return clamp_level(total)

    def from_features(
        self,
        features: SignalFeatures,
        computed_at: float,
        snapshot_version: int = 0
    ) -> StressReading:
        is_raging = features.click_velocity > self.config.rage_threshold
        return StressReading(
            level=self.score(is_raging, features.is_jittery, features.is_stalled, features.is_hidden),
            is_raging=is_raging,
            is_jittery=features.is_jittery,
            is_stalled=features.is_stalled,
            is_hidden=features.is_hidden,
            computed_at=computed_at,
            snapshot_version=snapshot_version,
            click_velocity=features.click_velocity,
            inactivity_ms=features.inactivity_ms,
        )

    def classify(self, window: SignalWindow, now: float) -> StressReading:
        features = self.extractor.extract(window, now)
        return self.from_features(features, computed_at=now, snapshot_version=window.version)
