#!/usr/bin/env python3
"""
Pedagogy Engine - Main Runner

Local runner demonstrating stress sensing, mode control and the
content fallback chain.

Usage:
    python main.py stress        # Rage clicks, jitter and a stall
    python main.py practice      # Answer streaks, level-downs and review
    python main.py forge         # Offline problem forging per zone
"""

import argparse
import asyncio
import logging
import random

from pedagogy_engine import (
    EngineConfig,
    LevelDownEvent,
    Mode,
    PedagogyEngine,
    StressReading,
    TemplateForge,
)


def print_header(text: str):
    """Print a formatted header."""
    print("\n" + "=" * 60)
    print(f"  {text}")
    print("=" * 60)


def print_section(text: str):
    """Print a formatted section header."""
    print(f"\n--- {text} ---")


class ManualClock:
    """Millisecond clock advanced by hand so the demo is reproducible."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


def build_engine(config: EngineConfig, clock=None, seed: int = 7) -> PedagogyEngine:
    engine = PedagogyEngine(config, clock=clock, rng=random.Random(seed))

    def on_stress(reading: StressReading):
        flags = ", ".join(reading.flags()) or "calm"
        print(f"  [stress] level={reading.level:3d}  ({flags})")

    def on_mode(mode: Mode, level: int):
        print(f"  [mode]   {mode.value}  support={level}")

    def on_level_down(event: LevelDownEvent):
        print(f"  [level]  support {event.previous_level} -> {event.support_level}")

    engine.on_stress_change(on_stress)
    engine.on_mode_change(on_mode)
    engine.on_level_down(on_level_down)
    return engine


def run_stress_demo(config: EngineConfig):
    print_header("Stress Sensing Demo")
    clock = ManualClock(1000.0)
    engine = build_engine(config, clock)
    engine.select_mode(Mode.FORGE)

    print_section("Rage clicks (t, t+5, t+8, t+11 ms)")
    for offset in (0, 5, 3, 3):
        engine.stress.on_click(clock.advance(offset))
    print(f"  click velocity: {engine.stress.current_reading.click_velocity:.1f}/s")

    print_section("Calm down")
    engine.stress.reset(clock.advance(3000))

    print_section("Jittery pointer")
    for i in range(config.min_move_samples + 2):
        x = 0 if i % 2 == 0 else 120
        engine.stress.on_move(x, i * 4, clock.advance(40))

    print_section("25 seconds of silence")
    engine.stress.reset(clock.advance(500))
    engine.stress.tick(clock.advance(25000))

    print_section("Tab hidden")
    engine.stress.on_visibility(True, clock.advance(10))

    print(f"\n  Final mode: {engine.controller.mode.value}")
    engine.close()


async def run_practice_demo(config: EngineConfig):
    print_header("Practice Demo - Streaks and Review")
    engine = build_engine(config)

    print_section("Five correct answers")
    for _ in range(config.mastery_streak):
        problem = await engine.get_next_problem("ged-101")
        outcome = engine.report_answer(problem.id, problem.answer_key)
        print(f"  {problem.prompt[:48]:48s}  streak={outcome.updated_streak}")

    print_section("Two misses on the same concept")
    for _ in range(config.miss_limit):
        problem = await engine.get_next_problem("Charlie")
        outcome = engine.report_answer(problem.id, "not an answer")
        print(f"  {problem.prompt[:48]:48s}  correct={outcome.correct}")

    print_section("Review answer")
    problem = await engine.get_next_problem("Charlie")
    outcome = engine.report_answer(problem.id, problem.answer_key)
    print(f"  {problem.prompt[:48]:48s}  mode={outcome.mode.value}")

    print(f"\n  Snapshot: {engine.snapshot().to_dict()}")
    engine.close()


def run_forge_demo(seed: int):
    print_header("Template Forge Demo (offline)")
    forge = TemplateForge(rng=random.Random(seed))
    for zone in forge.zones + ["Omega"]:
        for difficulty in (2, 4):
            problem = forge.generate(zone, difficulty)
            print_section(f"Zone {zone} / difficulty {difficulty}")
            print(f"  {problem.prompt}")
            print(f"  options: {', '.join(problem.options)}")
            print(f"  answer:  {problem.answer_key}  (tool: {problem.requires_tool})")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Pedagogy Engine - Stress-Aware Adaptive Practice"
    )
    parser.add_argument(
        "mode",
        nargs="?",
        default="stress",
        choices=["stress", "practice", "forge"],
        help="Run mode: stress (sensing), practice (streaks), forge (templates)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=7,
        help="Random seed for problem selection and templates"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show engine log output"
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    config = EngineConfig.from_env()

    if args.mode == "stress":
        run_stress_demo(config)
    elif args.mode == "practice":
        asyncio.run(run_practice_demo(config))
    elif args.mode == "forge":
        run_forge_demo(args.seed)


if __name__ == "__main__":
    main()
