"""
Static Problem Bank

Curated problems per learning node, loaded from a JSON content file.
Each node carries its zone, a tactical hint and concept tags as explicit
metadata.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .problems import ProblemSpec, Provenance, TOOL_DIFFICULTY, clamp_difficulty

logger = logging.getLogger(__name__)

DEFAULT_BANK_PATH = Path(__file__).parent / "data" / "problem_bank.json"


@dataclass
class BankNode:
    """A learning node and its curated problems."""
    node_id: str
    title: str
    zone: str
    hint: Optional[str] = None
    concept_tags: List[str] = field(default_factory=list)
    problems: List[ProblemSpec] = field(default_factory=list)


class StaticProblemBank:
    """Read-only lookup of curated problems by node."""

    def __init__(self, nodes: Optional[Dict[str, BankNode]] = None):
        self.nodes: Dict[str, BankNode] = nodes or {}

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "StaticProblemBank":
        """Load a bank from JSON (defaults to the packaged content file)."""
        bank_path = Path(path) if path else DEFAULT_BANK_PATH
        with open(bank_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        bank = cls.from_dict(data)
        logger.info(f"Loaded {len(bank.nodes)} nodes from {bank_path.name}")
        return bank

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StaticProblemBank":
        nodes = {}
        for node_id, raw in data.get("nodes", {}).items():
            tags = list(raw.get("concept_tags", []))
            node = BankNode(
                node_id=node_id,
                title=raw.get("title", node_id),
                zone=raw["zone"],
                hint=raw.get("tactical_tip"),
                concept_tags=tags,
            )
            node.problems = [
                cls._parse_problem(node, item, raw.get("difficulty", 2))
                for item in raw.get("problems", [])
            ]
            nodes[node_id] = node
        return cls(nodes)

    @staticmethod
    def _parse_problem(node: BankNode, item: Dict[str, Any], default_difficulty: int) -> ProblemSpec:
        difficulty = clamp_difficulty(item.get("difficulty", default_difficulty))
        options = item.get("options")
        return ProblemSpec(
            id=item["id"],
            prompt=item["question"],
            answer_key=str(item["answer"]),
            options=tuple(options) if options else None,
            solution_steps=tuple(item.get("solution", [])),
            difficulty=difficulty,
            requires_tool=difficulty >= TOOL_DIFFICULTY,
            provenance=Provenance.STATIC,
            zone=node.zone,
            node_id=node.node_id,
            hint=item.get("tactical_tip", node.hint),
            concept_tags=tuple(item.get("concept_tags", node.concept_tags)),
        )

    def node(self, node_id: str) -> Optional[BankNode]:
        return self.nodes.get(node_id)

    def zone_for(self, node_id: str) -> Optional[str]:
        node = self.nodes.get(node_id)
        return node.zone if node else None

    def problems_for(self, node_id: str) -> List[ProblemSpec]:
        node = self.nodes.get(node_id)
        return list(node.problems) if node else []

    def node_ids(self) -> List[str]:
        return list(self.nodes.keys())

    def __len__(self) -> int:
        return len(self.nodes)
