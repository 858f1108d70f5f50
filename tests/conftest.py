"""Shared fixtures for pedagogy engine tests."""

import random
import sys
from pathlib import Path

import pytest

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pedagogy_engine.bank import StaticProblemBank
from pedagogy_engine.config import EngineConfig


class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def small_bank():
    """Two-problem node in zone Bravo, plus an empty node in zone Delta."""
    return StaticProblemBank.from_dict({
        "nodes": {
            "n-1": {
                "title": "Substitution",
                "zone": "Bravo",
                "difficulty": 2,
                "tactical_tip": "Use [STO] to store values.",
                "concept_tags": ["substitution"],
                "problems": [
                    {
                        "id": "s1",
                        "question": "If x = 2, evaluate 3x",
                        "answer": "6",
                        "options": ["6", "5", "8", "32"],
                        "solution": ["Step 1: 3 × 2 = 6"],
                    },
                    {
                        "id": "s2",
                        "question": "If x = 4, evaluate x + 9",
                        "answer": "13",
                        "solution": ["Step 1: 4 + 9 = 13"],
                    },
                ],
            },
            "n-empty": {
                "title": "Statistics",
                "zone": "Delta",
                "problems": [],
            },
        }
    })
