"""
Engine Configuration

Thresholds, weights and forge credentials supplied at construction.
Values can be loaded from the environment (.env.local, then .env).
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Mapping

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StressWeights:
    """Additive contribution of each distress flag to the stress level."""
    raging: int = 40
    jittery: int = 30
    stalled: int = 20
    hidden: int = 25


@dataclass(frozen=True)
class EngineConfig:
    """Construction-time configuration for a pedagogy engine."""
    # Stress sensing
    rage_threshold: float = 4.0          # clicks/sec above which the learner is "raging"
    stall_threshold_ms: float = 20000.0
    jitter_threshold: float = 50.0       # mean pixels per pointer segment
    reversal_ratio_threshold: float = 3.0
    click_window_ms: float = 2000.0
    click_buffer_size: int = 10
    move_buffer_size: int = 20
    min_move_samples: int = 10
    max_click_velocity: float = 100.0
    weights: StressWeights = field(default_factory=StressWeights)

    # Mode controller
    mastery_streak: int = 5
    miss_limit: int = 2

    # Content provider
    default_zone: str = "Alpha"
    selection_order: str = "random"      # "random" or "sequence"
    option_count: int = 4

    # Remote forge (optional)
    forge_provider: Optional[str] = None  # "gemini" or "openai"
    forge_endpoint: Optional[str] = None
    forge_api_key: Optional[str] = None
    forge_model: Optional[str] = None
    forge_timeout_s: float = 8.0

    @property
    def forge_enabled(self) -> bool:
        return bool(self.forge_provider and self.forge_api_key)

    @classmethod
    def from_env(
        cls,
        env_dir: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None
    ) -> "EngineConfig":
        """
        Build a config from environment variables.

        Loads `.env.local` first (local development), then `.env` as fallback,
        from `env_dir` (defaults to the current working directory).
        """
        if environ is None:
            base = Path(env_dir) if env_dir else Path.cwd()
            env_local = base / ".env.local"
            env_file = base / ".env"
            if env_local.exists():
                load_dotenv(env_local)
            elif env_file.exists():
                load_dotenv(env_file)
            environ = os.environ

        defaults = cls()
        api_key = (
            environ.get("PEDAGOGY_FORGE_API_KEY")
            or environ.get("GEMINI_API_KEY")
            or environ.get("GOOGLE_API_KEY")
        )
        provider = environ.get("PEDAGOGY_FORGE_PROVIDER", "gemini" if api_key else "")
        provider = provider.strip().lower() or None

        if provider and not api_key:
            logger.warning(
                f"Forge provider '{provider}' configured without an API key; "
                "problem generation will use templates only."
            )

        return cls(
            rage_threshold=float(environ.get("PEDAGOGY_RAGE_THRESHOLD", defaults.rage_threshold)),
            stall_threshold_ms=float(environ.get("PEDAGOGY_STALL_THRESHOLD_MS", defaults.stall_threshold_ms)),
            jitter_threshold=float(environ.get("PEDAGOGY_JITTER_THRESHOLD", defaults.jitter_threshold)),
            default_zone=environ.get("PEDAGOGY_DEFAULT_ZONE", defaults.default_zone),
            forge_provider=provider,
            forge_endpoint=environ.get("PEDAGOGY_FORGE_ENDPOINT") or None,
            forge_api_key=api_key or None,
            forge_model=environ.get("PEDAGOGY_FORGE_MODEL") or None,
            forge_timeout_s=float(environ.get("PEDAGOGY_FORGE_TIMEOUT", defaults.forge_timeout_s)),
        )
