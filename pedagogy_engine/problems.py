"""
Problem Contract Module

ProblemSpec validates itself on construction, so a structurally incomplete
problem can never be handed to a caller.
"""

import re
import uuid
from fractions import Fraction
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .exceptions import ProblemContractError

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
TOOL_DIFFICULTY = 4  # at or above this, a calculator is recommended

# Plain decimals and simple fractions only; exponent notation is never parsed
NUMERIC_ANSWER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)(/\d+)?$")
MAX_NUMERIC_LENGTH = 32


class Provenance(Enum):
    """Where a problem came from."""
    STATIC = "static"
    AI = "ai"
    TEMPLATE = "template"


def clamp_difficulty(value: float) -> int:
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, int(value)))


def new_problem_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ProblemSpec:
    """A single practice problem."""
    id: str
    prompt: str
    answer_key: str
    solution_steps: Tuple[str, ...]
    difficulty: int
    provenance: Provenance
    options: Optional[Tuple[str, ...]] = None
    requires_tool: bool = False
    zone: Optional[str] = None
    node_id: Optional[str] = None
    hint: Optional[str] = None
    concept_tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Normalize sequences so callers may pass lists
        object.__setattr__(self, "solution_steps", tuple(self.solution_steps))
        object.__setattr__(self, "concept_tags", tuple(self.concept_tags))
        if self.options is not None:
            object.__setattr__(self, "options", tuple(str(o) for o in self.options))
        validate_problem(self)

    @property
    def is_multiple_choice(self) -> bool:
        return self.options is not None

    @property
    def explanation(self) -> str:
        return " ".join(self.solution_steps)

    @property
    def concept(self) -> str:
        """Concept used for remediation tracking."""
        if self.concept_tags:
            return self.concept_tags[0]
        return self.node_id or self.zone or self.id

    def to_dict(self, include_answer: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "prompt": self.prompt,
            "options": list(self.options) if self.options is not None else None,
            "solution_steps": list(self.solution_steps),
            "difficulty": self.difficulty,
            "requires_tool": self.requires_tool,
            "provenance": self.provenance.value,
            "zone": self.zone,
            "node_id": self.node_id,
            "hint": self.hint,
            "concept_tags": list(self.concept_tags),
        }
        if include_answer:
            data["answer_key"] = self.answer_key
        else:
            data.pop("solution_steps")
        return data


def validate_problem(problem: ProblemSpec, option_count: Optional[int] = None):
    """
    Check the structural contract.

    Raises:
        ProblemContractError: prompt/answer missing, answer not among options,
            duplicate options, wrong option count, difficulty out of range,
            or no solution steps.
    """
    if not problem.id:
        raise ProblemContractError("Problem id is required")
    if not problem.prompt or not problem.prompt.strip():
        raise ProblemContractError(f"{problem.id}: prompt is empty")
    if problem.answer_key is None or not str(problem.answer_key).strip():
        raise ProblemContractError(f"{problem.id}: answer key is missing")
    if not isinstance(problem.difficulty, int) or not (
        MIN_DIFFICULTY <= problem.difficulty <= MAX_DIFFICULTY
    ):
        raise ProblemContractError(f"{problem.id}: difficulty {problem.difficulty!r} outside 1-5")
    if not problem.solution_steps or not any(s.strip() for s in problem.solution_steps):
        raise ProblemContractError(f"{problem.id}: explanation is missing")

    if problem.options is not None:
        if len(set(problem.options)) != len(problem.options):
            raise ProblemContractError(f"{problem.id}: duplicate options")
        if problem.answer_key not in problem.options:
            raise ProblemContractError(f"{problem.id}: answer key not among options")
        if option_count is not None and len(problem.options) != option_count:
            raise ProblemContractError(
                f"{problem.id}: expected {option_count} options, got {len(problem.options)}"
            )


def _normalize(answer: str) -> str:
    return " ".join(str(answer).strip().lower().split())


def _is_numeric(text: str) -> bool:
    return len(text) <= MAX_NUMERIC_LENGTH and NUMERIC_ANSWER.match(text) is not None


def answers_match(expected: str, submitted: Any) -> bool:
    """
    Case/whitespace-insensitive comparison, with exact numeric equivalence
    so "0.75" matches ".75", "5" matches "5.0" and "10/16" matches "5/8".
    """
    if submitted is None:
        return False
    left, right = _normalize(expected), _normalize(submitted)
    if left == right:
        return True
    if not (_is_numeric(left) and _is_numeric(right)):
        return False
    try:
        return Fraction(left) == Fraction(right)
    except (ValueError, ZeroDivisionError):
        return False
