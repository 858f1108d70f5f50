"""
Tests for the Mode Controller state machine

Tests the protective downgrade, manual override, mastery level-down,
remediation review and the totality/idempotence of the transition function.
"""

import pytest
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pedagogy_engine.classifier import StressReading
from pedagogy_engine.modes import (
    ModeController, Mode, ModeEvent, LearnerState, clamp_support_level
)


def reading(raging=False, jittery=False, stalled=False, hidden=False, at=0.0):
    level = 40 * raging + 30 * jittery + 20 * stalled + 25 * hidden
    return StressReading(
        level=min(level, 100),
        is_raging=raging,
        is_jittery=jittery,
        is_stalled=stalled,
        is_hidden=hidden,
        computed_at=at,
    )


class TestMastery:
    """Streaks and support level."""

    def setup_method(self):
        self.controller = ModeController()
        self.level_downs = []
        self.controller.on_level_down(self.level_downs.append)

    def test_five_correct_lowers_support(self):
        for _ in range(4):
            self.controller.record_answer(True, "fractions")
        assert self.controller.streak == 4
        assert self.controller.support_level == 5

        self.controller.record_answer(True, "fractions")

        assert self.controller.support_level == 4
        assert self.controller.streak == 0
        assert len(self.level_downs) == 1
        assert self.level_downs[0].previous_level == 5
        assert self.level_downs[0].streak_length == 5

    def test_incorrect_resets_streak_only(self):
        for _ in range(3):
            self.controller.record_answer(True, "fractions")
        self.controller.record_answer(False, "fractions")

        assert self.controller.streak == 0
        assert self.controller.support_level == 5

    def test_support_never_below_one(self):
        for _ in range(40):
            self.controller.record_answer(True, "fractions")
            assert 1 <= self.controller.support_level <= 5

        assert self.controller.support_level == 1
        assert len(self.level_downs) == 4

    def test_mode_change_notified_on_level_down(self):
        changes = []
        self.controller.on_mode_change(lambda mode, level: changes.append((mode, level)))

        for _ in range(5):
            self.controller.record_answer(True, "fractions")

        assert changes == [(Mode.VERVE, 4)]

    def test_hydrated_state_is_clamped(self):
        controller = ModeController(LearnerState(mode=Mode.FORGE, support_level=9, streak=-2))

        assert controller.mode == Mode.FORGE
        assert controller.support_level == 5
        assert controller.streak == 0

    @pytest.mark.parametrize("value,expected", [(-3, 1), (0, 1), (3, 3), (5, 5), (12, 5)])
    def test_clamp_support_level(self, value, expected):
        assert clamp_support_level(value) == expected


class TestProtectiveDowngrade:
    """Distress readings force VERVE."""

    @pytest.mark.parametrize("flags", [
        {"raging": True}, {"jittery": True}, {"stalled": True},
    ])
    @pytest.mark.parametrize("start", [Mode.AURA, Mode.FORGE])
    def test_distress_forces_verve_and_resets_streak(self, flags, start):
        controller = ModeController(LearnerState(mode=start, streak=3))

        transition = controller.on_stress(reading(**flags))

        assert controller.mode == Mode.VERVE
        assert controller.streak == 0
        assert transition.forced is True

    def test_hidden_alone_does_not_downgrade(self):
        controller = ModeController(LearnerState(mode=Mode.FORGE))
        assert controller.on_stress(reading(hidden=True)) is None
        assert controller.mode == Mode.FORGE

    def test_distress_in_verve_is_noop(self):
        controller = ModeController(LearnerState(streak=3))
        assert controller.on_stress(reading(raging=True)) is None
        assert controller.streak == 3

    def test_downgrade_overrides_manual_mode(self):
        controller = ModeController()
        controller.select_mode(Mode.FORGE)
        controller.on_stress(reading(stalled=True))
        assert controller.mode == Mode.VERVE

    def test_same_tick_downgrade_preempts_level_down(self):
        """Stress is applied first, so the streak resets before the fifth answer."""
        controller = ModeController(LearnerState(mode=Mode.FORGE, streak=4))
        level_downs = []
        controller.on_level_down(level_downs.append)

        controller.tick(reading(raging=True), answers=[(True, "volume")])

        assert controller.mode == Mode.VERVE
        assert controller.streak == 1
        assert controller.support_level == 5
        assert level_downs == []


class TestManualSelection:
    """Manual override always wins."""

    def setup_method(self):
        self.controller = ModeController()
        self.changes = []
        self.controller.on_mode_change(lambda mode, level: self.changes.append(mode))

    def test_select_mode(self):
        transition = self.controller.select_mode(Mode.FORGE)

        assert self.controller.mode == Mode.FORGE
        assert transition.forced is False
        assert self.changes == [Mode.FORGE]

    def test_select_by_name(self):
        self.controller.select_mode("aura")
        assert self.controller.mode == Mode.AURA

    def test_reselecting_active_mode_is_noop(self):
        self.controller.select_mode(Mode.FORGE)
        assert self.controller.select_mode(Mode.FORGE) is None
        assert self.changes == [Mode.FORGE]

    def test_manual_selection_keeps_streak(self):
        self.controller.record_answer(True, "x")
        self.controller.record_answer(True, "x")
        self.controller.select_mode(Mode.FORGE)
        assert self.controller.streak == 2

    def test_unknown_mode_is_noop(self):
        assert self.controller.select_mode("TURBO") is None
        assert self.controller.mode == Mode.VERVE


class TestRemediation:
    """Repeated misses on one concept send the learner to review."""

    def setup_method(self):
        self.controller = ModeController(LearnerState(mode=Mode.FORGE))

    def test_two_misses_same_concept_forces_aura(self):
        self.controller.record_answer(False, "volume")
        assert self.controller.mode == Mode.FORGE

        self.controller.record_answer(False, "volume")
        assert self.controller.mode == Mode.AURA
        assert "volume" in self.controller.context.remediation

    def test_misses_on_different_concepts_do_not(self):
        self.controller.record_answer(False, "volume")
        self.controller.record_answer(False, "fractions")
        assert self.controller.mode == Mode.FORGE

    def test_correct_review_returns_to_prior_mode(self):
        self.controller.record_answer(False, "volume")
        self.controller.record_answer(False, "volume")

        transition = self.controller.record_answer(True, "volume")

        assert self.controller.mode == Mode.FORGE
        assert transition.to_mode == Mode.FORGE
        assert "volume" not in self.controller.context.remediation

    def test_correct_on_other_concept_stays_in_review(self):
        self.controller.record_answer(False, "volume")
        self.controller.record_answer(False, "volume")
        self.controller.record_answer(True, "fractions")
        assert self.controller.mode == Mode.AURA


class TestTransitionFunction:
    """Totality and history."""

    def test_invalid_payload_is_noop(self):
        controller = ModeController(LearnerState(mode=Mode.AURA))
        assert controller.handle(ModeEvent.STRESS_READING, "not a reading") is None
        assert controller.mode == Mode.AURA

    @pytest.mark.parametrize("mode", list(Mode))
    @pytest.mark.parametrize("event", list(ModeEvent))
    def test_every_state_event_pair_is_defined(self, mode, event):
        controller = ModeController(LearnerState(mode=mode))
        controller.handle(event, None)
        assert controller.mode in Mode

    def test_history_and_snapshot(self):
        controller = ModeController()
        controller.select_mode(Mode.FORGE)
        controller.select_mode(Mode.AURA)

        recent = controller.get_recent_transitions()
        assert [t.to_mode for t in recent] == [Mode.FORGE, Mode.AURA]
        assert recent[0].to_dict()["from_mode"] == "VERVE"

        state = controller.snapshot()
        assert state.mode == Mode.AURA
        assert state.to_dict()["support_level"] == 5

    def test_mode_actions(self):
        controller = ModeController(LearnerState(mode=Mode.FORGE))
        actions = controller.get_mode_actions()
        assert actions["show_hints"] is False
        assert actions["difficulty_offset"] == 1

    def test_learner_state_round_trip(self):
        state = LearnerState(mode=Mode.AURA, support_level=3, streak=2, completed_nodes=["ged-101"])
        assert LearnerState.from_dict(state.to_dict()) == state
