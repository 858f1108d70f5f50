"""
Pedagogy Engine

Facade wiring the synchronous StressEngine to the ModeController and the
asynchronous AdaptiveContentProvider. This is the surface a host application
talks to:

    engine = PedagogyEngine(EngineConfig.from_env())
    engine.on_mode_change(lambda mode, level: ...)
    engine.stress.on_click()
    problem = await engine.get_next_problem("ged-101")
    outcome = engine.report_answer(problem.id, "0.75")

State is session-scoped. A persistence collaborator hydrates the engine with
a LearnerState and listens for change events; the engine never touches
storage itself.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from .bank import StaticProblemBank
from .classifier import StressReading
from .config import EngineConfig
from .content import AdaptiveContentProvider, ContentRequest
from .forge import RemoteForge, create_remote_forge
from .modes import LearnerState, LevelDownEvent, Mode, ModeController
from .observers import Observable
from .problems import ProblemSpec, answers_match
from .signals import EventSource, InteractionSample
from .stress_engine import StressEngine
from .templates import TemplateForge

logger = logging.getLogger(__name__)


@dataclass
class AnswerOutcome:
    """Result of grading one answer."""
    correct: bool
    updated_streak: int
    updated_support_level: int
    mode: Mode

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correct": self.correct,
            "updated_streak": self.updated_streak,
            "updated_support_level": self.updated_support_level,
            "mode": self.mode.value,
        }


class PedagogyEngine:
    """One learner's adaptive practice session."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        initial_state: Optional[LearnerState] = None,
        bank: Optional[StaticProblemBank] = None,
        remote: Optional[RemoteForge] = None,
        templates: Optional[TemplateForge] = None,
        clock: Optional[Callable[[], float]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        rng: Optional[random.Random] = None,
        use_remote: bool = True
    ):
        self.config = config or EngineConfig()
        initial_state = initial_state or LearnerState()

        self.stress = StressEngine(self.config, clock=clock, loop=loop)
        self.controller = ModeController(
            initial_state,
            mastery_streak=self.config.mastery_streak,
            miss_limit=self.config.miss_limit,
        )
        if remote is None and use_remote:
            remote = create_remote_forge(self.config)
        self.content = AdaptiveContentProvider(
            bank=bank,
            remote=remote if use_remote else None,
            templates=templates,
            config=self.config,
            rng=rng,
        )

        self.score = 0
        self.completed_nodes: List[str] = list(initial_state.completed_nodes)
        self._solved: Dict[str, Set[str]] = {}
        self.node_completions: Observable[str] = Observable("node_complete")

        self._sources: List[EventSource] = []
        # Controller sees every applied reading, not just state changes
        self._unsubscribe_stress = self.stress.readings.subscribe(self.controller.on_stress)

    # ── Notification channels ───────────────────────────────────────────

    def on_stress_change(self, callback: Callable[[StressReading], None]) -> Callable[[], None]:
        return self.stress.on_stress_change(callback)

    def on_mode_change(self, callback: Callable[[Mode, int], None]) -> Callable[[], None]:
        return self.controller.on_mode_change(callback)

    def on_level_down(self, callback: Callable[[LevelDownEvent], None]) -> Callable[[], None]:
        return self.controller.on_level_down(callback)

    def on_node_complete(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self.node_completions.subscribe(callback)

    # ── Telemetry ───────────────────────────────────────────────────────

    def attach(self, source: EventSource):
        """Route a host event source into the stress pipeline."""
        source.attach(self.stress)
        self._sources.append(source)

    def ingest(self, sample: InteractionSample) -> StressReading:
        return self.stress.ingest(sample)

    # ── Practice turns ──────────────────────────────────────────────────

    def _content_request(self, node_id: str) -> ContentRequest:
        actions = self.controller.get_mode_actions()
        return ContentRequest(
            node_id=node_id,
            mode=self.controller.mode,
            support_level=self.controller.support_level,
            score=self.score,
            difficulty_offset=actions["difficulty_offset"],
            show_hints=actions["show_hints"],
        )

    async def get_next_problem(self, node_id: str) -> ProblemSpec:
        """
        Resolve the next problem for a node.

        Always returns a structurally valid problem unless the turn was
        superseded by a newer call (StaleTurnError).
        """
        return await self.content.next_problem(self._content_request(node_id))

    def report_answer(self, problem_id: str, submitted_answer: Any) -> AnswerOutcome:
        """
        Grade the active problem and feed the result to the mode controller.

        Raises:
            UnknownProblemError: `problem_id` is not the active problem
        """
        problem = self.content.retire(problem_id)
        correct = answers_match(problem.answer_key, submitted_answer)
        if correct:
            self.score += 1
            self._track_completion(problem)

        self.controller.record_answer(correct, problem.concept)
        return AnswerOutcome(
            correct=correct,
            updated_streak=self.controller.streak,
            updated_support_level=self.controller.support_level,
            mode=self.controller.mode,
        )

    def _track_completion(self, problem: ProblemSpec):
        node_id = problem.node_id
        if node_id is None or node_id in self.completed_nodes:
            return
        static_ids = {p.id for p in self.content.bank.problems_for(node_id)}
        if not static_ids:
            return

        solved = self._solved.setdefault(node_id, set())
        solved.add(problem.id)
        if static_ids <= solved:
            self.completed_nodes.append(node_id)
            logger.info(f"Node {node_id} complete")
            self.node_completions.emit(node_id)

    def select_mode(self, mode: Any):
        """Manual override; always applied."""
        return self.controller.select_mode(mode)

    # ── State ───────────────────────────────────────────────────────────

    def snapshot(self) -> LearnerState:
        state = self.controller.snapshot()
        state.completed_nodes = list(self.completed_nodes)
        return state

    def status(self) -> Dict[str, Any]:
        """Snapshot plus the current stress reading, for dashboards."""
        return {
            **self.snapshot().to_dict(),
            "score": self.score,
            "stress": self.stress.current_reading.to_dict(),
            "mode_actions": self.controller.get_mode_actions(),
        }

    def close(self):
        for source in self._sources:
            source.detach(self.stress)
        self._sources.clear()
        self._unsubscribe_stress()
        self.content.cancel_pending()
        self.stress.close()
