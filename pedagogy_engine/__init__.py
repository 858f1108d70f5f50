"""
Pedagogy Engine - Stress-Aware Adaptive Practice

Observes interaction telemetry, classifies it into a real-time stress
signal, and drives a pedagogical mode / support-level state machine.
A companion content provider resolves the next practice problem through a
resilient generation chain so the learner is never left without an exercise.

Stress Sensing (synchronous):
1. Signal Collector (rolling windows) - signals.py
2. Feature Extractor (velocity, jitter, inactivity) - features.py
3. Stress Classifier (composite score + flags) - classifier.py
4. Stress Engine (watchdog, ordering guard) - stress_engine.py

Control:
5. Mode Controller (VERVE / AURA / FORGE x support 1-5) - modes.py

Content (asynchronous):
6. Problem contract - problems.py
7. Static problem bank - bank.py
8. Template forge (deterministic) - templates.py
9. Remote forge (Gemini / OpenAI-compatible) - forge.py
10. Adaptive Content Provider (fallback chain) - content.py

Facade:
11. Pedagogy Engine - engine.py
12. HTTP adapter (FastAPI) - api.py
"""

from .config import (
    EngineConfig,
    StressWeights,
)

from .exceptions import (
    PedagogyEngineError,
    ProblemContractError,
    ForgeGenerationFailure,
    ForgeTemplateExhaustion,
    ForgeConfigurationError,
    InvalidModeTransition,
    UnknownProblemError,
    StaleTurnError,
)

from .observers import (
    Observable,
    MultiArgObservable,
)

from .signals import (
    SignalCollector,
    SignalWindow,
    InteractionSample,
    SampleKind,
    EventSource,
    ReplayEventSource,
)

from .features import (
    FeatureExtractor,
    SignalFeatures,
)

from .classifier import (
    StressClassifier,
    StressReading,
)

from .stress_engine import (
    StressEngine,
    StallWatchdog,
)

from .modes import (
    ModeController,
    Mode,
    ModeEvent,
    ModeTransition,
    LevelDownEvent,
    LearnerState,
)

from .problems import (
    ProblemSpec,
    Provenance,
    validate_problem,
    answers_match,
)

from .bank import (
    StaticProblemBank,
    BankNode,
)

from .templates import (
    TemplateForge,
    ZoneTemplate,
    ZONE_TEMPLATES,
)

from .forge import (
    RemoteForge,
    ForgeRequest,
    ForgePayload,
    GeminiForgeBackend,
    HttpForgeBackend,
    create_remote_forge,
)

from .content import (
    AdaptiveContentProvider,
    ContentRequest,
    estimate_difficulty,
)

from .engine import (
    PedagogyEngine,
    AnswerOutcome,
)

__version__ = "0.1.0"
__all__ = [
    # Config
    "EngineConfig",
    "StressWeights",
    # Errors
    "PedagogyEngineError",
    "ProblemContractError",
    "ForgeGenerationFailure",
    "ForgeTemplateExhaustion",
    "ForgeConfigurationError",
    "InvalidModeTransition",
    "UnknownProblemError",
    "StaleTurnError",
    # Observers
    "Observable",
    "MultiArgObservable",
    # Signals
    "SignalCollector",
    "SignalWindow",
    "InteractionSample",
    "SampleKind",
    "EventSource",
    "ReplayEventSource",
    # Features / Classifier
    "FeatureExtractor",
    "SignalFeatures",
    "StressClassifier",
    "StressReading",
    "StressEngine",
    "StallWatchdog",
    # Modes
    "ModeController",
    "Mode",
    "ModeEvent",
    "ModeTransition",
    "LevelDownEvent",
    "LearnerState",
    # Problems
    "ProblemSpec",
    "Provenance",
    "validate_problem",
    "answers_match",
    "StaticProblemBank",
    "BankNode",
    # Forge
    "TemplateForge",
    "ZoneTemplate",
    "ZONE_TEMPLATES",
    "RemoteForge",
    "ForgeRequest",
    "ForgePayload",
    "GeminiForgeBackend",
    "HttpForgeBackend",
    "create_remote_forge",
    # Content
    "AdaptiveContentProvider",
    "ContentRequest",
    "estimate_difficulty",
    # Engine
    "PedagogyEngine",
    "AnswerOutcome",
]
