"""
Mode Controller Module

Finite state machine over pedagogical modes with an orthogonal
support-level axis.

Modes:
    VERVE - default active practice
    AURA  - recalibration / guided review
    FORGE - challenge, minimal scaffolding

Support level runs 5 (maximal support) down to 1 (minimal) and only
ever decreases through sustained mastery.

Transition rules:
1. Distress reading (raging/jittery/stalled) outside VERVE -> force VERVE, reset streak
2. Manual selection always wins, no guard
3. Mastery streak reached -> support level -1 (floor 1), reset streak, notify
4. Repeated misses on the same concept -> force AURA for review;
   a later correct answer on that concept returns to the prior mode

The transition function is total: unknown events are logged no-ops.
Re-entering the active mode is a no-op, not an error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .classifier import StressReading
from .exceptions import InvalidModeTransition
from .observers import MultiArgObservable, Observable

logger = logging.getLogger(__name__)

MIN_SUPPORT_LEVEL = 1
MAX_SUPPORT_LEVEL = 5


class Mode(Enum):
    """Coarse pedagogical posture."""
    VERVE = "VERVE"
    AURA = "AURA"
    FORGE = "FORGE"


class ModeEvent(Enum):
    """Inputs to the transition function."""
    STRESS_READING = "stress_reading"
    MANUAL_SELECT = "manual_select"
    ANSWER_CORRECT = "answer_correct"
    ANSWER_INCORRECT = "answer_incorrect"


def clamp_support_level(level: int) -> int:
    return max(MIN_SUPPORT_LEVEL, min(MAX_SUPPORT_LEVEL, int(level)))


@dataclass
class LearnerState:
    """Hydrated state handed in by the persistence collaborator."""
    mode: Mode = Mode.VERVE
    support_level: int = MAX_SUPPORT_LEVEL
    streak: int = 0
    completed_nodes: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.mode, Mode):
            self.mode = Mode(self.mode)
        self.support_level = clamp_support_level(self.support_level)
        self.streak = max(0, int(self.streak))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "support_level": self.support_level,
            "streak": self.streak,
            "completed_nodes": list(self.completed_nodes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnerState":
        return cls(
            mode=Mode(data.get("mode", Mode.VERVE.value)),
            support_level=data.get("support_level", MAX_SUPPORT_LEVEL),
            streak=data.get("streak", 0),
            completed_nodes=list(data.get("completed_nodes", [])),
        )


@dataclass
class ModeTransition:
    """Record of a mode change."""
    from_mode: Mode
    to_mode: Mode
    timestamp: datetime
    trigger: str
    forced: bool
    support_level: int

    def to_dict(self) -> Dict:
        return {
            "from_mode": self.from_mode.value,
            "to_mode": self.to_mode.value,
            "timestamp": self.timestamp.isoformat(),
            "trigger": self.trigger,
            "forced": self.forced,
            "support_level": self.support_level,
        }


@dataclass
class LevelDownEvent:
    """Emitted when mastery lowers the support level; meant for persistence."""
    previous_level: int
    support_level: int
    streak_length: int
    timestamp: datetime

    def to_dict(self) -> Dict:
        return {
            "previous_level": self.previous_level,
            "support_level": self.support_level,
            "streak_length": self.streak_length,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ModeContext:
    """Mutable bookkeeping for the active mode."""
    mode: Mode
    entered_at: datetime
    support_level: int
    streak: int = 0
    prior_mode: Optional[Mode] = None
    missed_concept: Optional[str] = None
    consecutive_misses: int = 0
    remediation: Set[str] = field(default_factory=set)

    @property
    def minutes_in_mode(self) -> float:
        return (datetime.now() - self.entered_at).total_seconds() / 60

    def to_dict(self) -> Dict:
        return {
            "mode": self.mode.value,
            "entered_at": self.entered_at.isoformat(),
            "minutes_in_mode": round(self.minutes_in_mode, 1),
            "support_level": self.support_level,
            "streak": self.streak,
            "prior_mode": self.prior_mode.value if self.prior_mode else None,
            "consecutive_misses": self.consecutive_misses,
            "remediation": sorted(self.remediation),
        }


class ModeController:
    """
    Pedagogical mode state machine.

    Every state change goes through `handle()`; subscribers are told about
    (mode, support_level) changes and level-downs.
    """

    # Scaffolding posture for each mode
    MODE_ACTIONS: Dict[Mode, Dict[str, Any]] = {
        Mode.VERVE: {
            "scaffolding": "standard",
            "show_hints": True,
            "difficulty_offset": 0,
        },
        Mode.AURA: {
            "scaffolding": "guided_review",
            "show_hints": True,
            "difficulty_offset": -1,
        },
        Mode.FORGE: {
            "scaffolding": "minimal",
            "show_hints": False,
            "difficulty_offset": 1,
        },
    }

    def __init__(
        self,
        initial: Optional[LearnerState] = None,
        mastery_streak: int = 5,
        miss_limit: int = 2
    ):
        initial = initial or LearnerState()
        self.mastery_streak = mastery_streak
        self.miss_limit = miss_limit
        self.context = ModeContext(
            mode=initial.mode,
            entered_at=datetime.now(),
            support_level=initial.support_level,
            streak=initial.streak,
        )
        self.transition_history: List[ModeTransition] = []
        self.level_down_history: List[LevelDownEvent] = []

        self.mode_changes = MultiArgObservable("mode_change")
        self.level_downs: Observable[LevelDownEvent] = Observable("level_down")

        self._handlers: Dict[ModeEvent, Callable[[Any], Optional[ModeTransition]]] = {
            ModeEvent.STRESS_READING: self._on_stress_reading,
            ModeEvent.MANUAL_SELECT: self._on_manual_select,
            ModeEvent.ANSWER_CORRECT: self._on_answer_correct,
            ModeEvent.ANSWER_INCORRECT: self._on_answer_incorrect,
        }

    @property
    def mode(self) -> Mode:
        return self.context.mode

    @property
    def support_level(self) -> int:
        return self.context.support_level

    @property
    def streak(self) -> int:
        return self.context.streak

    def on_mode_change(self, callback: Callable[[Mode, int], None]) -> Callable[[], None]:
        return self.mode_changes.subscribe(callback)

    def on_level_down(self, callback: Callable[[LevelDownEvent], None]) -> Callable[[], None]:
        return self.level_downs.subscribe(callback)

    # -- transition function -------------------------------------------

    def handle(self, event: ModeEvent, payload: Any = None) -> Optional[ModeTransition]:
        """
        Apply one event. Returns the mode transition it caused, if any.

        Never raises for bad event/payload pairs; they leave the mode unchanged.
        """
        try:
            handler = self._handlers.get(event)
            if handler is None:
                raise InvalidModeTransition(f"No handler for {event!r} in {self.mode.value}")
            return handler(payload)
        except InvalidModeTransition as e:
            logger.debug(f"Ignored transition: {e}")
            return None

    def on_stress(self, reading: StressReading) -> Optional[ModeTransition]:
        return self.handle(ModeEvent.STRESS_READING, reading)

    def select_mode(self, mode: Any) -> Optional[ModeTransition]:
        return self.handle(ModeEvent.MANUAL_SELECT, mode)

    def record_answer(self, correct: bool, concept: str) -> Optional[ModeTransition]:
        event = ModeEvent.ANSWER_CORRECT if correct else ModeEvent.ANSWER_INCORRECT
        return self.handle(event, concept)

    def tick(
        self,
        reading: Optional[StressReading] = None,
        answers: Iterable[Tuple[bool, str]] = ()
    ) -> List[ModeTransition]:
        """
        Process events that arrived in the same tick.

        The protective downgrade is applied before any answer, so a stress
        reading that resets the streak pre-empts a mastery level-down.
        """
        transitions = []
        if reading is not None:
            transitions.append(self.on_stress(reading))
        for correct, concept in answers:
            transitions.append(self.record_answer(correct, concept))
        return [t for t in transitions if t is not None]

    # -- handlers ------------------------------------------------------

    def _on_stress_reading(self, reading: Any) -> Optional[ModeTransition]:
        if not isinstance(reading, StressReading):
            raise InvalidModeTransition(f"Expected StressReading, got {type(reading).__name__}")
        if not reading.is_distressed or self.mode == Mode.VERVE:
            return None

        self.context.streak = 0
        self.context.prior_mode = None
        return self._transition_to(
            Mode.VERVE,
            trigger=f"Protective downgrade ({reading.dominant_signal}, level {reading.level})",
            forced=True,
        )

    def _on_manual_select(self, mode: Any) -> Optional[ModeTransition]:
        try:
            target = mode if isinstance(mode, Mode) else Mode(str(mode).upper())
        except ValueError:
            raise InvalidModeTransition(f"Unknown mode {mode!r}")

        self.context.prior_mode = None
        return self._transition_to(target, trigger="Manual selection", forced=False)

    def _on_answer_correct(self, concept: Any) -> Optional[ModeTransition]:
        ctx = self.context
        ctx.streak += 1
        ctx.consecutive_misses = 0
        ctx.missed_concept = None

        transition = None
        if concept in ctx.remediation:
            ctx.remediation.discard(concept)
            if ctx.mode == Mode.AURA and ctx.prior_mode is not None:
                prior = ctx.prior_mode
                ctx.prior_mode = None
                transition = self._transition_to(
                    prior, trigger=f"Review of '{concept}' complete", forced=False
                )

        if ctx.streak >= self.mastery_streak:
            self._level_down()
        return transition

    def _on_answer_incorrect(self, concept: Any) -> Optional[ModeTransition]:
        ctx = self.context
        ctx.streak = 0
        if concept is not None and concept == ctx.missed_concept:
            ctx.consecutive_misses += 1
        else:
            ctx.missed_concept = concept
            ctx.consecutive_misses = 1

        if ctx.consecutive_misses < self.miss_limit:
            return None

        ctx.remediation.add(concept)
        ctx.consecutive_misses = 0
        if ctx.mode == Mode.AURA:
            return None

        ctx.prior_mode = ctx.mode
        return self._transition_to(
            Mode.AURA,
            trigger=f"{self.miss_limit} consecutive misses on '{concept}'",
            forced=True,
        )

    # -- internals -----------------------------------------------------

    def _level_down(self):
        ctx = self.context
        streak_length = ctx.streak
        ctx.streak = 0
        if ctx.support_level <= MIN_SUPPORT_LEVEL:
            return

        previous = ctx.support_level
        ctx.support_level = clamp_support_level(previous - 1)
        event = LevelDownEvent(
            previous_level=previous,
            support_level=ctx.support_level,
            streak_length=streak_length,
            timestamp=datetime.now(),
        )
        self.level_down_history.append(event)
        logger.info(f"Support level {previous} -> {ctx.support_level} after {streak_length} correct")
        self.level_downs.emit(event)
        self.mode_changes.emit((ctx.mode, ctx.support_level))

    def _transition_to(self, new_mode: Mode, trigger: str, forced: bool) -> Optional[ModeTransition]:
        old_mode = self.mode
        if new_mode == old_mode:
            return None

        if forced:
            self.context.streak = 0

        transition = ModeTransition(
            from_mode=old_mode,
            to_mode=new_mode,
            timestamp=datetime.now(),
            trigger=trigger,
            forced=forced,
            support_level=self.context.support_level,
        )
        self.transition_history.append(transition)
        self.context.mode = new_mode
        self.context.entered_at = transition.timestamp

        logger.info(f"Mode {old_mode.value} -> {new_mode.value}: {trigger}")
        self.mode_changes.emit((new_mode, self.context.support_level))
        return transition

    def get_mode_actions(self) -> Dict[str, Any]:
        """Scaffolding posture for the current mode."""
        return dict(self.MODE_ACTIONS[self.mode])

    def get_recent_transitions(self, count: int = 5) -> List[ModeTransition]:
        return self.transition_history[-count:]

    def snapshot(self) -> LearnerState:
        """Pull-based view of the persistable state."""
        return LearnerState(
            mode=self.mode,
            support_level=self.support_level,
            streak=self.streak,
        )
