"""
Adaptive Content Provider

Resolves the next problem for a node through a three-step fallback chain:

    static bank (unseen items) -> remote forge -> template forge

The remote step is the only suspending operation in the engine. It runs under
a timeout and an error boundary; any failure falls through to templates, so
a caller always receives a structurally valid problem.

Turns: each call to `next_problem` starts a new turn. Starting a turn cancels
the previous turn's in-flight forge task, and a response that completes for a
superseded turn is discarded (StaleTurnError) instead of being applied.
"""

import asyncio
import dataclasses
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .bank import StaticProblemBank
from .config import EngineConfig
from .exceptions import ForgeGenerationFailure, StaleTurnError, UnknownProblemError
from .forge import ForgeRequest, RemoteForge
from .modes import Mode
from .problems import ProblemSpec, clamp_difficulty
from .templates import TemplateForge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentRequest:
    """Synchronous snapshot of learner state taken when a turn starts."""
    node_id: str
    mode: Mode = Mode.VERVE
    support_level: int = 5
    score: int = 0
    difficulty_offset: int = 0
    show_hints: bool = True


def estimate_difficulty(score: int, support_level: int, difficulty_offset: int = 0) -> int:
    """
    Target difficulty for generated problems.

    Every 5 correct answers this session adds a level, as does each step of
    support removed; the active mode then shifts the result by its offset.
    """
    base = score // 5 + 1
    return clamp_difficulty(base + (5 - support_level) + difficulty_offset)


class AdaptiveContentProvider:
    """Resolves, issues and tracks practice problems for one learner."""

    def __init__(
        self,
        bank: Optional[StaticProblemBank] = None,
        remote: Optional[RemoteForge] = None,
        templates: Optional[TemplateForge] = None,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config or EngineConfig()
        self.rng = rng or random.Random()
        self.bank = bank if bank is not None else StaticProblemBank.from_file()
        self.remote = remote
        self.templates = templates or TemplateForge(
            default_zone=self.config.default_zone,
            rng=self.rng,
            option_count=self.config.option_count,
        )

        self._seen: Dict[str, Set[str]] = {}
        self._turn = 0
        self._pending: Optional[asyncio.Future] = None
        self._active: Optional[ProblemSpec] = None
        self.discarded_responses = 0

    @property
    def turn(self) -> int:
        return self._turn

    @property
    def active_problem(self) -> Optional[ProblemSpec]:
        return self._active

    @property
    def forge_in_flight(self) -> bool:
        return self._pending is not None and not self._pending.done()

    # ── Static bank ─────────────────────────────────────────────────────

    def zone_for(self, node_id: str) -> str:
        zone = self.bank.zone_for(node_id)
        if zone:
            return zone
        if node_id in self.templates.templates:
            return node_id
        return self.config.default_zone

    def unseen_for(self, node_id: str) -> List[ProblemSpec]:
        seen = self._seen.get(node_id, set())
        return [p for p in self.bank.problems_for(node_id) if p.id not in seen]

    def _pick_static(self, node_id: str) -> Optional[ProblemSpec]:
        unseen = self.unseen_for(node_id)
        if not unseen:
            return None
        if self.config.selection_order == "sequence":
            return unseen[0]
        return self.rng.choice(unseen)

    def reset_seen(self, node_id: Optional[str] = None):
        """Make a node's (or every node's) static items eligible again."""
        if node_id is None:
            self._seen.clear()
        else:
            self._seen.pop(node_id, None)

    # ── Turns ───────────────────────────────────────────────────────────

    def cancel_pending(self):
        """Drop interest in the in-flight forge request, if any."""
        if self.forge_in_flight:
            logger.debug(f"Cancelling forge request from turn {self._turn}")
            self._pending.cancel()
        self._pending = None

    async def next_problem(self, request: ContentRequest) -> ProblemSpec:
        """
        Resolve and issue the next problem for `request.node_id`.

        Raises:
            StaleTurnError: this turn was superseded before it resolved
        """
        self.cancel_pending()
        self._turn += 1
        turn = self._turn

        problem = self._pick_static(request.node_id)
        if problem is None:
            zone = self.zone_for(request.node_id)
            difficulty = estimate_difficulty(
                request.score, request.support_level, request.difficulty_offset
            )
            problem = await self._forge(turn, request.node_id, zone, difficulty)

        if not request.show_hints and problem.hint:
            problem = dataclasses.replace(problem, hint=None)

        self._seen.setdefault(request.node_id, set()).add(problem.id)
        self._active = problem
        logger.debug(
            f"Turn {turn}: issued {problem.id} ({problem.provenance.value}, "
            f"difficulty {problem.difficulty})"
        )
        return problem

    async def _forge(self, turn: int, node_id: str, zone: str, difficulty: int) -> ProblemSpec:
        if self.remote is not None:
            task = asyncio.ensure_future(
                self.remote.generate(ForgeRequest(zone=zone, difficulty=difficulty, node_id=node_id))
            )
            self._pending = task
            try:
                problem = await task
            except asyncio.CancelledError:
                if turn != self._turn:
                    self.discarded_responses += 1
                    raise StaleTurnError(f"Turn {turn} superseded by turn {self._turn}")
                raise
            except ForgeGenerationFailure as e:
                logger.warning(f"Remote forge failed for zone {zone}, using template: {e}")
            except Exception:
                logger.exception(f"Unexpected remote forge error for zone {zone}, using template")
            else:
                if turn != self._turn:
                    self.discarded_responses += 1
                    logger.info(f"Discarding late forge response {problem.id} from turn {turn}")
                    raise StaleTurnError(f"Turn {turn} superseded by turn {self._turn}")
                return problem
            finally:
                if self._pending is task:
                    self._pending = None

            if turn != self._turn:
                raise StaleTurnError(f"Turn {turn} superseded by turn {self._turn}")

        return self.templates.generate(zone, difficulty, node_id=node_id)

    # ── Grading ─────────────────────────────────────────────────────────

    def lookup(self, problem_id: str) -> ProblemSpec:
        """
        Raises:
            UnknownProblemError: `problem_id` is not the active problem
        """
        if self._active is None or self._active.id != problem_id:
            raise UnknownProblemError(problem_id)
        return self._active

    def retire(self, problem_id: str) -> ProblemSpec:
        """Remove the active problem once graded."""
        problem = self.lookup(problem_id)
        self._active = None
        return problem
