"""
Template Forge - Deterministic Problem Generation

Last link of the fallback chain. Each zone template procedurally builds a
multiple-choice problem from randomized numeric parameters. The answer is
computed, never guessed, and distractors are deduplicated by value, so every
problem is contract-compliant by construction.

Zones:
    Alpha   - fraction <-> decimal conversion
    Bravo   - variable substitution
    Charlie - formula application (volume / surface area)
    Delta   - mean and median
"""

import logging
import math
import random
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, Dict, List, Optional, Tuple

from .exceptions import ForgeConfigurationError, ForgeTemplateExhaustion
from .problems import (
    ProblemSpec,
    Provenance,
    TOOL_DIFFICULTY,
    clamp_difficulty,
    new_problem_id,
)

logger = logging.getLogger(__name__)


@dataclass
class TemplateDraft:
    """Raw output of a zone generator, before options are assembled."""
    prompt: str
    answer: str
    distractors: List[str]
    steps: List[str]


@dataclass
class ZoneTemplate:
    """A zone's teaching metadata plus its procedural generator."""
    zone: str
    focus: str
    concept: str
    tactical_tip: str
    context: str
    examples: List[str] = field(default_factory=list)
    generator: Optional[Callable[[int, random.Random], TemplateDraft]] = None


def format_number(value, places: int = 2) -> str:
    """Integers print bare; everything else rounds to `places` decimals."""
    value = float(value)
    if math.isclose(value, round(value), abs_tol=1e-9):
        return str(int(round(value)))
    return f"{value:.{places}f}"


def _value_key(option: str):
    """Dedup key: exact numeric value when parseable, else normalized text."""
    try:
        return Fraction(option.strip())
    except (ValueError, ZeroDivisionError):
        return option.strip().lower()


def build_options(
    answer: str,
    candidates: List[str],
    rng: random.Random,
    count: int = 4
) -> Tuple[str, ...]:
    """
    Assemble `count` distinct options containing `answer`.

    Candidates equal in value to the answer (or to each other) are dropped;
    numeric answers are padded with nearby values when candidates run out.
    """
    options = [answer]
    seen = {_value_key(answer)}
    for candidate in candidates:
        if len(options) == count:
            break
        key = _value_key(candidate)
        if key in seen:
            continue
        seen.add(key)
        options.append(candidate)

    step = 1
    while len(options) < count:
        base = _value_key(answer)
        if isinstance(base, Fraction):
            places = len(answer.split(".")[1]) if "." in answer else 0
            for delta in (step, -step):
                padded = format_number(float(base + delta), places) if places else str(base + delta)
                if _value_key(padded) not in seen and len(options) < count:
                    seen.add(_value_key(padded))
                    options.append(padded)
        else:
            padded = f"{answer} ({step})"
            seen.add(_value_key(padded))
            options.append(padded)
        step += 1

    rng.shuffle(options)
    return tuple(options)


# ── Zone generators ─────────────────────────────────────────────────────

def _alpha_generator(difficulty: int, rng: random.Random) -> TemplateDraft:
    if rng.random() < 0.5:
        denominators = [2, 4, 5, 8, 10] if difficulty <= 2 else [3, 6, 7, 8, 12, 16, 20]
        den = rng.choice(denominators)
        num = rng.randint(1, den * (1 if difficulty <= 3 else 2))
        answer = f"{num / den:.3f}"
        return TemplateDraft(
            prompt=f"Convert {num}/{den} to a decimal (round to 3 places)",
            answer=answer,
            distractors=[
                f"{den / num:.3f}",
                f"{(num + den) / den:.3f}",
                f"{num / (den + 1):.3f}",
                f"{(num + 1) / den:.3f}",
            ],
            steps=[
                "Step 1: Divide the numerator by the denominator",
                f"Step 2: {num} ÷ {den} = {answer}",
            ],
        )

    den = rng.choice([2, 4, 5, 8, 10, 16, 20])
    frac = Fraction(rng.randint(1, den - 1), den)
    decimal = f"{float(frac):.4f}".rstrip("0").rstrip(".")
    answer = f"{frac.numerator}/{frac.denominator}"
    return TemplateDraft(
        prompt=f"Convert {decimal} to a fraction in lowest terms",
        answer=answer,
        distractors=[
            f"{frac.denominator}/{frac.numerator}",
            f"{frac.numerator + 1}/{frac.denominator}",
            f"{frac.numerator}/{frac.denominator + 1}",
            f"{frac.numerator}/{frac.denominator * 2}",
        ],
        steps=[
            f"Step 1: Write {decimal} over a power of ten",
            f"Step 2: Simplify to lowest terms: {answer}",
        ],
    )


def _bravo_generator(difficulty: int, rng: random.Random) -> TemplateDraft:
    high = 5 + 3 * difficulty
    x = rng.randint(1, high)
    y = rng.randint(1, high)
    forms = ["+", "-", "×", "÷"]
    if difficulty >= 3:
        forms.append("linear")
    if difficulty >= 4:
        forms.append("square")
    form = rng.choice(forms)

    if form == "+":
        expression, answer, wrong = "x + y", x + y, x * y
    elif form == "-":
        expression, answer, wrong = "x - y", x - y, y - x
    elif form == "×":
        expression, answer, wrong = "x × y", x * y, x + y
    elif form == "÷":
        # Choose x as a multiple of y so the quotient is exact
        x = y * rng.randint(1, high)
        expression, answer, wrong = "x ÷ y", x // y, x * y
    elif form == "linear":
        a, b = rng.randint(2, 9), rng.randint(2, 9)
        expression, answer, wrong = f"{a}x + {b}y", a * x + b * y, a * y + b * x
    else:
        expression, answer, wrong = "x² + y", x * x + y, 2 * x + y

    return TemplateDraft(
        prompt=f"If x = {x} and y = {y}, evaluate {expression}",
        answer=str(answer),
        distractors=[str(wrong), str(answer + 1), str(answer - 1), str(answer * 2)],
        steps=[
            f"Step 1: Substitute x = {x} and y = {y}",
            f"Step 2: Calculate {expression} = {answer}",
        ],
    )


def _charlie_generator(difficulty: int, rng: random.Random) -> TemplateDraft:
    high = 3 + 2 * difficulty
    r = rng.randint(1, high)
    h = rng.randint(1, high)
    shape = rng.choice(["cylinder", "sphere", "cone", "prism"])

    if shape == "cylinder":
        value = math.pi * r * r * h
        prompt = f"Find the volume of a cylinder with radius {r} and height {h} (round to 2 decimals)"
        formula = f"V = πr²h = π({r})²({h})"
        wrong = [math.pi * r * h, 2 * math.pi * r * h, math.pi * r * r]
    elif shape == "sphere":
        value = 4 * math.pi * r * r
        prompt = f"Find the surface area of a sphere with radius {r} (round to 2 decimals)"
        formula = f"SA = 4πr² = 4π({r})²"
        wrong = [2 * math.pi * r * r, math.pi * r * r, 3 * math.pi * r * r]
    elif shape == "cone":
        value = math.pi * r * r * h / 3
        prompt = f"Find the volume of a cone with radius {r} and height {h} (round to 2 decimals)"
        formula = f"V = (1/3)πr²h = (1/3)π({r})²({h})"
        wrong = [math.pi * r * r * h, math.pi * r * r * h / 2, math.pi * r * r * h / 4]
    else:
        w = rng.randint(1, high)
        value = r * w * h
        prompt = f"Find the volume of a rectangular prism measuring {r} × {w} × {h}"
        formula = f"V = l × w × h = {r} × {w} × {h}"
        wrong = [r + w + h, r * w, r * h]

    places = 0 if shape == "prism" else 2
    answer = format_number(value, places) if places else str(int(value))
    return TemplateDraft(
        prompt=prompt,
        answer=answer,
        distractors=[format_number(v, places) if places else str(int(v)) for v in wrong],
        steps=[f"Step 1: {formula}", f"Step 2: Result = {answer}"],
    )


def _delta_generator(difficulty: int, rng: random.Random) -> TemplateDraft:
    size = rng.randint(5, 6 + difficulty)
    data = [rng.randint(10, 40 + 10 * difficulty) for _ in range(size)]
    ordered = sorted(data)

    mean = sum(data) / size
    middle = size // 2
    median = ordered[middle] if size % 2 else (ordered[middle - 1] + ordered[middle]) / 2

    if rng.random() < 0.5:
        measure, value, other = "mean", mean, median
        steps = [
            f"Step 1: Sum all values: {sum(data)}",
            f"Step 2: Divide by the count: {sum(data)} ÷ {size} = {format_number(mean)}",
        ]
    else:
        measure, value, other = "median", median, mean
        steps = [
            f"Step 1: Order the data: {', '.join(str(v) for v in ordered)}",
            f"Step 2: The middle value is {format_number(median)}",
        ]

    answer = format_number(value)
    return TemplateDraft(
        prompt=f"Find the {measure} (round to 2 decimals if needed): {', '.join(str(v) for v in data)}",
        answer=answer,
        distractors=[
            format_number(other),
            format_number(value + 1),
            format_number(value - 1),
            str(data[0]),
            str(ordered[-1] - ordered[0]),
        ],
        steps=steps,
    )


ZONE_TEMPLATES: Dict[str, ZoneTemplate] = {
    "Alpha": ZoneTemplate(
        zone="Alpha",
        focus="Fraction-to-Decimal",
        concept="fraction-decimal",
        tactical_tip="Tactical Tip: Use [n/d] key for fractions. Press [f◊►d] to toggle between fraction and decimal.",
        context="Convert between fractions and decimals with precision.",
        examples=[
            "Convert 3/4 to decimal",
            "Convert 0.625 to fraction",
            "Add: 2/3 + 1/4",
        ],
        generator=_alpha_generator,
    ),
    "Bravo": ZoneTemplate(
        zone="Bravo",
        focus="Variable Substitution",
        concept="substitution",
        tactical_tip="Tactical Tip: Use [STO] to store values. Use [ALPHA] + [X,T,θ,n] for variables.",
        context="Master calculator memory and variable operations.",
        examples=[
            "If x = 5, evaluate 3x + 7",
            "If y = -3, evaluate 2y² + 4y",
            "If a = 7 and b = 3, evaluate ab² - 2ab",
        ],
        generator=_bravo_generator,
    ),
    "Charlie": ZoneTemplate(
        zone="Charlie",
        focus="Formula Application",
        concept="geometry-formulas",
        tactical_tip="Tactical Tip: Use [x²] for squares, [√] for roots. Store intermediate results.",
        context="Apply formulas for volume and surface area.",
        examples=[
            "Find volume of cylinder with radius 4, height 10",
            "Find surface area of sphere with radius 6",
            "Find volume of cone with radius 5, height 12",
        ],
        generator=_charlie_generator,
    ),
    "Delta": ZoneTemplate(
        zone="Delta",
        focus="Mean and Median",
        concept="central-tendency",
        tactical_tip="Tactical Tip: Use calculator memory for running totals. [2nd] [STAT] for statistics.",
        context="Calculate central tendency from data sets.",
        examples=[
            "Find mean: 12, 15, 18, 21, 24",
            "Find median: 8, 12, 16, 20, 25",
            "Find mean: 45, 52, 48, 61, 59, 55",
        ],
        generator=_delta_generator,
    ),
}


class TemplateForge:
    """
    Procedural generator over a registry of zone templates.

    Unknown zones fall back to `default_zone`; a registry without the default
    zone is rejected at construction.
    """

    def __init__(
        self,
        templates: Optional[Dict[str, ZoneTemplate]] = None,
        default_zone: str = "Alpha",
        rng: Optional[random.Random] = None,
        option_count: int = 4
    ):
        self.templates = dict(ZONE_TEMPLATES if templates is None else templates)
        self.default_zone = default_zone
        self.rng = rng or random.Random()
        self.option_count = option_count

        default = self.templates.get(default_zone)
        if default is None or default.generator is None:
            raise ForgeConfigurationError(
                f"Default zone '{default_zone}' has no template; "
                f"registered zones: {sorted(self.templates)}"
            )

    @property
    def zones(self) -> List[str]:
        return list(self.templates.keys())

    def template_for(self, zone: str) -> ZoneTemplate:
        template = self.templates.get(zone)
        if template is None or template.generator is None:
            raise ForgeTemplateExhaustion(zone)
        return template

    def resolve(self, zone: Optional[str]) -> ZoneTemplate:
        """Template for `zone`, or the default zone's when none exists."""
        try:
            return self.template_for(zone)
        except ForgeTemplateExhaustion:
            logger.info(f"No template for zone '{zone}', using '{self.default_zone}'")
            return self.templates[self.default_zone]

    def generate(
        self,
        zone: Optional[str],
        difficulty: int,
        node_id: Optional[str] = None
    ) -> ProblemSpec:
        template = self.resolve(zone)
        difficulty = clamp_difficulty(difficulty)
        draft = template.generator(difficulty, self.rng)

        return ProblemSpec(
            id=new_problem_id(f"tpl-{template.zone.lower()}"),
            prompt=draft.prompt,
            answer_key=draft.answer,
            options=build_options(draft.answer, draft.distractors, self.rng, self.option_count),
            solution_steps=tuple(draft.steps),
            difficulty=difficulty,
            requires_tool=difficulty >= TOOL_DIFFICULTY,
            provenance=Provenance.TEMPLATE,
            zone=template.zone,
            node_id=node_id,
            hint=template.tactical_tip,
            concept_tags=(template.concept,),
        )
