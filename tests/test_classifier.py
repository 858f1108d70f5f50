"""
Tests for Feature Extraction and Stress Classification

Covers click velocity bounds, jitter detection, stall detection and the
additive, clamped stress level.
"""

import itertools
import pytest
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pedagogy_engine.config import EngineConfig, StressWeights
from pedagogy_engine.features import FeatureExtractor
from pedagogy_engine.classifier import StressClassifier, StressReading
from pedagogy_engine.signals import SignalWindow


def make_window(clicks=(), positions=(), last_activity=0.0, visible=True, version=1):
    return SignalWindow(
        click_times=tuple(clicks),
        positions=tuple(positions),
        last_activity=last_activity,
        tab_visible=visible,
        version=version,
    )


class TestClickVelocity:
    """Test click velocity extraction."""

    def setup_method(self):
        self.extractor = FeatureExtractor(EngineConfig())

    @pytest.mark.parametrize("clicks", [(), (1000.0,), (10.0, 1000.0)])
    def test_fewer_than_two_recent_clicks_is_zero(self, clicks):
        """Clicks older than the 2s window do not count."""
        window = make_window(clicks=clicks)
        assert self.extractor.click_velocity(window, now=2500.0) == 0.0

    @pytest.mark.parametrize("interval", [0.5, 1, 2, 5, 10])
    def test_fast_clicks_clamp_to_exactly_100(self, interval):
        clicks = [1000.0 + i * interval for i in range(5)]
        window = make_window(clicks=clicks)
        assert self.extractor.click_velocity(window, now=clicks[-1]) == 100.0

    def test_simultaneous_clicks_saturate(self):
        window = make_window(clicks=(500.0, 500.0, 500.0))
        assert self.extractor.click_velocity(window, now=500.0) == 100.0

    def test_moderate_clicking(self):
        """Clicks every 250ms -> 4 clicks/sec."""
        window = make_window(clicks=(1000.0, 1250.0, 1500.0))
        assert self.extractor.click_velocity(window, now=1500.0) == pytest.approx(4.0)


class TestJitter:
    """Test pointer jitter detection."""

    def setup_method(self):
        self.extractor = FeatureExtractor(EngineConfig())

    def test_too_few_samples_is_not_jitter(self):
        positions = [(i * 200, 0) for i in range(9)]
        assert self.extractor.jitter_score(make_window(positions=positions)) is False

    def test_smooth_motion_is_not_jitter(self):
        positions = [(i * 5, i * 5) for i in range(15)]
        window = make_window(positions=positions)

        assert self.extractor.jitter_score(window) is False
        mean_distance, reversal_ratio = self.extractor.movement_stats(window)
        assert mean_distance < 50
        assert reversal_ratio == 0.0

    def test_large_segments_are_jitter(self):
        positions = [(0 if i % 2 == 0 else 120, i) for i in range(12)]
        assert self.extractor.jitter_score(make_window(positions=positions)) is True

    def test_reversal_ratio_trigger(self):
        """Direction flipping trips jitter when the ratio threshold is low enough."""
        config = EngineConfig(jitter_threshold=1000.0, reversal_ratio_threshold=0.5)
        extractor = FeatureExtractor(config)
        positions = [(0 if i % 2 == 0 else 10, 0) for i in range(12)]
        window = make_window(positions=positions)

        _, reversal_ratio = extractor.movement_stats(window)
        assert reversal_ratio > 0.5
        assert extractor.jitter_score(window) is True


class TestInactivity:
    """Test stall and visibility features."""

    def setup_method(self):
        self.extractor = FeatureExtractor(EngineConfig())

    def test_stall_after_threshold(self):
        window = make_window(last_activity=1000.0)
        assert self.extractor.inactivity_duration(window, 26000.0) == 25000.0
        assert self.extractor.is_stalled(window, 26000.0) is True

    def test_exact_threshold_is_not_stalled(self):
        window = make_window(last_activity=0.0)
        assert self.extractor.is_stalled(window, 20000.0) is False

    def test_clock_skew_never_negative(self):
        window = make_window(last_activity=5000.0)
        assert self.extractor.inactivity_duration(window, 4000.0) == 0.0

    def test_visibility_penalty(self):
        assert self.extractor.visibility_penalty(make_window(visible=True)) == 0
        assert self.extractor.visibility_penalty(make_window(visible=False)) == 25


class TestStressClassifier:
    """Test the composite stress level."""

    def setup_method(self):
        self.classifier = StressClassifier(EngineConfig())

    @pytest.mark.parametrize("flags", list(itertools.product([False, True], repeat=4)))
    def test_level_always_in_range(self, flags):
        level = self.classifier.score(*flags)
        assert 0 <= level <= 100

    def test_weights_add_up(self):
        assert self.classifier.score(True, False, False, False) == 40
        assert self.classifier.score(False, True, False, False) == 30
        assert self.classifier.score(False, False, True, False) == 20
        assert self.classifier.score(False, False, False, True) == 25
        assert self.classifier.score(True, True, False, False) == 70

    def test_all_flags_saturate(self):
        assert self.classifier.score(True, True, True, True) == 100

    def test_custom_weights_still_clamped(self):
        classifier = StressClassifier(EngineConfig(weights=StressWeights(raging=250)))
        assert classifier.score(True, False, False, False) == 100

    def test_rage_click_scenario(self):
        """Clicks at t, t+5, t+8, t+11 -> velocity 100 -> raging -> level >= 40."""
        t = 10000.0
        window = make_window(clicks=(t, t + 5, t + 8, t + 11), last_activity=t + 11)
        reading = self.classifier.classify(window, now=t + 11)

        assert reading.click_velocity == 100.0
        assert reading.is_raging is True
        assert reading.level >= 40

    def test_stall_scenario(self):
        """25s of silence with a 20s threshold -> stalled -> +20."""
        window = make_window(last_activity=0.0)
        reading = self.classifier.classify(window, now=25000.0)

        assert reading.is_stalled is True
        assert reading.level == 20

    def test_calm_window(self):
        window = make_window(last_activity=1000.0)
        reading = self.classifier.classify(window, now=1500.0)

        assert reading.level == 0
        assert reading.flags() == []
        assert reading.dominant_signal == "calm"
        assert not reading.is_distressed

    def test_hidden_is_not_distress(self):
        """A hidden tab raises the level but does not trigger the downgrade."""
        window = make_window(last_activity=1000.0, visible=False)
        reading = self.classifier.classify(window, now=1500.0)

        assert reading.level == 25
        assert reading.is_stressed
        assert not reading.is_distressed

    def test_reading_carries_snapshot_version(self):
        window = make_window(last_activity=0.0, version=17)
        reading = self.classifier.classify(window, now=10.0)
        assert reading.snapshot_version == 17
        assert reading.computed_at == 10.0


class TestStressReading:
    """Test reading helpers."""

    def test_neutral(self):
        reading = StressReading.neutral(computed_at=5.0, snapshot_version=3)
        assert reading.level == 0
        assert reading.snapshot_version == 3

    def test_same_state_ignores_timestamps(self):
        a = StressReading(40, True, False, False, False, computed_at=1.0, snapshot_version=1)
        b = StressReading(40, True, False, False, False, computed_at=9.0, snapshot_version=4)
        assert a.same_state_as(b)

    def test_to_dict(self):
        reading = StressReading(20, False, False, True, False, computed_at=1.0, inactivity_ms=25000.4)
        data = reading.to_dict()
        assert data["is_stalled"] is True
        assert data["inactivity_ms"] == 25000
