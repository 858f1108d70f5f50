"""
Error taxonomy for the pedagogy engine.

Most of these never reach a learner: generation failures fall through to
templates and invalid transitions are no-ops. Only configuration errors and
caller mistakes (grading an unknown problem) propagate.
"""


class PedagogyEngineError(Exception):
    """Base class for all engine errors."""


class ProblemContractError(PedagogyEngineError, ValueError):
    """A problem is structurally incomplete (missing answer key, bad options...)."""


class ForgeGenerationFailure(PedagogyEngineError):
    """Remote generation failed: network, non-2xx, malformed JSON or contract."""


class ForgeTemplateExhaustion(PedagogyEngineError, LookupError):
    """No template registered for the requested zone."""


class ForgeConfigurationError(PedagogyEngineError):
    """The default zone has no template. Raised at construction time."""


class InvalidModeTransition(PedagogyEngineError):
    """Event/state pair outside the transition table. Handled as a no-op."""


class UnknownProblemError(PedagogyEngineError, KeyError):
    """An answer was reported for a problem that is not the active one."""


class StaleTurnError(PedagogyEngineError):
    """A forge response arrived for a turn that has already been superseded."""
