"""
Tests for the deterministic Template Forge.
"""

import random
from fractions import Fraction

import pytest
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pedagogy_engine.exceptions import ForgeConfigurationError, ForgeTemplateExhaustion
from pedagogy_engine.problems import Provenance, answers_match
from pedagogy_engine.templates import (
    TemplateForge, ZONE_TEMPLATES, build_options, format_number
)


class TestTemplateForge:
    """Generated problems are contract-compliant by construction."""

    def setup_method(self):
        self.forge = TemplateForge(rng=random.Random(7))

    def test_alpha_offline_scenario(self):
        problem = self.forge.generate("Alpha", 2)

        assert problem.provenance == Provenance.TEMPLATE
        assert len(problem.options) == 4
        assert problem.answer_key in problem.options
        assert problem.difficulty == 2
        assert problem.zone == "Alpha"

    @pytest.mark.parametrize("zone", ["Alpha", "Bravo", "Charlie", "Delta"])
    @pytest.mark.parametrize("difficulty", [1, 2, 3, 4, 5])
    def test_every_zone_and_difficulty(self, zone, difficulty):
        forge = TemplateForge(rng=random.Random(difficulty))
        for _ in range(25):
            problem = forge.generate(zone, difficulty)

            assert problem.prompt
            assert problem.solution_steps
            assert len(problem.options) == 4
            assert problem.answer_key in problem.options
            assert problem.requires_tool == (difficulty >= 4)

    @pytest.mark.parametrize("zone", ["Alpha", "Bravo", "Charlie", "Delta"])
    def test_only_one_option_is_correct(self, zone):
        """No distractor is numerically equal to the answer."""
        forge = TemplateForge(rng=random.Random(11))
        for _ in range(40):
            problem = forge.generate(zone, 3)
            matches = [o for o in problem.options if answers_match(problem.answer_key, o)]
            assert matches == [problem.answer_key]

    def test_bravo_answer_is_computed(self):
        problem = TemplateForge(rng=random.Random(3)).generate("Bravo", 1)
        assert problem.concept_tags == ("substitution",)
        assert problem.hint == ZONE_TEMPLATES["Bravo"].tactical_tip

    def test_unknown_zone_uses_default(self):
        problem = self.forge.generate("Omega", 2)
        assert problem.zone == "Alpha"
        assert problem.provenance == Provenance.TEMPLATE

    def test_template_for_unknown_zone_raises(self):
        with pytest.raises(ForgeTemplateExhaustion):
            self.forge.template_for("Omega")

    def test_missing_default_zone_is_fatal(self):
        with pytest.raises(ForgeConfigurationError):
            TemplateForge(default_zone="Omega")

    def test_registry_without_default_is_fatal(self):
        templates = {"Bravo": ZONE_TEMPLATES["Bravo"]}
        with pytest.raises(ForgeConfigurationError):
            TemplateForge(templates=templates)

    def test_difficulty_is_clamped(self):
        assert self.forge.generate("Delta", 9).difficulty == 5
        assert self.forge.generate("Delta", 0).difficulty == 1

    def test_node_id_is_carried(self):
        problem = self.forge.generate("Charlie", 3, node_id="ged-201")
        assert problem.node_id == "ged-201"

    def test_same_seed_same_problem(self):
        a = TemplateForge(rng=random.Random(99)).generate("Charlie", 3)
        b = TemplateForge(rng=random.Random(99)).generate("Charlie", 3)
        assert a.prompt == b.prompt
        assert a.options == b.options


class TestBuildOptions:
    """Option assembly and padding."""

    def test_duplicates_by_value_are_dropped(self):
        options = build_options("0.5", ["0.50", "1/2", "0.25", "0.75", "1"], random.Random(1))

        assert len(options) == 4
        assert "0.50" not in options
        assert "1/2" not in options
        assert len({Fraction(o) for o in options}) == 4

    def test_numeric_padding(self):
        options = build_options("12", ["12", "12.0"], random.Random(1))

        assert len(options) == 4
        assert "12" in options
        assert len({Fraction(o) for o in options}) == 4

    def test_decimal_padding_keeps_places(self):
        options = build_options("3.14", [], random.Random(1))
        assert all(len(o.split(".")[1]) == 2 for o in options)

    @pytest.mark.parametrize("value,expected", [(18, "18"), (18.0, "18"), (18.333, "18.33"), (2.5, "2.50")])
    def test_format_number(self, value, expected):
        assert format_number(value) == expected
