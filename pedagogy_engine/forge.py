"""
Remote Problem Forge

Asks a generative model for a fresh problem, validates the reply against the
problem contract and converts it into a ProblemSpec. Every failure mode
(no network, non-2xx, timeout, malformed JSON, contract violation) surfaces
as ForgeGenerationFailure so the content provider can fall through to
templates.

Backends:
    GeminiForgeBackend - google-generativeai SDK
    HttpForgeBackend   - OpenAI-compatible chat-completions over httpx
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import google.generativeai as genai
import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .config import EngineConfig
from .exceptions import ForgeConfigurationError, ForgeGenerationFailure, ProblemContractError
from .problems import (
    ProblemSpec,
    Provenance,
    TOOL_DIFFICULTY,
    clamp_difficulty,
    new_problem_id,
    validate_problem,
)
from .templates import ZONE_TEMPLATES, ZoneTemplate

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class ForgeRequest:
    """What to generate: a zone and a target difficulty."""
    zone: str
    difficulty: int
    node_id: Optional[str] = None


class ForgePayload(BaseModel):
    """Shape a model reply must have to become a problem."""
    model_config = ConfigDict(populate_by_name=True)

    problem: str = Field(min_length=1)
    options: List[str]
    correct: str = Field(min_length=1)
    tactical_tip: Optional[str] = Field(default=None, alias="tacticalTip")
    explanation: str = Field(min_length=1)
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)

    @field_validator("options", mode="before")
    @classmethod
    def _stringify_options(cls, value: Any) -> Any:
        # Models sometimes return numeric options
        if isinstance(value, list):
            return [str(v).strip() for v in value]
        return value

    @field_validator("correct", mode="before")
    @classmethod
    def _stringify_correct(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("options")
    @classmethod
    def _unique_options(cls, value: List[str]) -> List[str]:
        if any(not v for v in value):
            raise ValueError("options must be non-empty strings")
        if len(set(value)) != len(value):
            raise ValueError("options must be distinct")
        return value

    @model_validator(mode="after")
    def _correct_among_options(self) -> "ForgePayload":
        if self.correct not in self.options:
            raise ValueError("correct answer is not among the options")
        return self

    def to_problem(self, request: ForgeRequest, option_count: int = 4) -> ProblemSpec:
        """Convert to a ProblemSpec, enforcing the option count."""
        difficulty = clamp_difficulty(self.difficulty or request.difficulty)
        steps = [line.strip() for line in self.explanation.splitlines() if line.strip()]
        problem = ProblemSpec(
            id=new_problem_id("ai"),
            prompt=self.problem.strip(),
            answer_key=self.correct,
            options=tuple(self.options),
            solution_steps=tuple(steps),
            difficulty=difficulty,
            requires_tool=difficulty >= TOOL_DIFFICULTY,
            provenance=Provenance.AI,
            zone=request.zone,
            node_id=request.node_id,
            hint=self.tactical_tip,
        )
        validate_problem(problem, option_count=option_count)
        return problem


def build_prompt(template: ZoneTemplate, request: ForgeRequest, option_count: int = 4) -> str:
    """Prompt asking for a single problem as strict JSON."""
    examples = "\n".join(f"- {ex}" for ex in template.examples)
    return f"""Create a Level {request.difficulty} GED math problem for Zone {template.zone} with focus on {template.focus}.

Context: {template.context}
{template.tactical_tip}

Examples of similar problems:
{examples}

Return a JSON response with this exact format:
{{
  "problem": "Clear problem statement with context",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correct": "Correct answer from options",
  "tacticalTip": "Specific TI-30XS calculator instructions",
  "explanation": "Step-by-step solution explanation, one step per line",
  "difficulty": {request.difficulty}
}}

Requirements:
- Problem must be appropriate for GED level
- Provide {option_count} distinct multiple choice options with exactly one correct answer
- The "correct" value must appear verbatim in "options"
- Include specific calculator key instructions
- Difficulty should match the requested level (1-5)"""


def parse_payload(text: str) -> ForgePayload:
    """
    Extract the JSON object from a model reply and validate it.

    Raises:
        ForgeGenerationFailure: no JSON found, or it fails validation
    """
    if not text or not text.strip():
        raise ForgeGenerationFailure("Empty response from forge backend")

    match = _JSON_BLOCK.search(text)
    raw = match.group(0) if match else text
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ForgeGenerationFailure(f"Invalid JSON response: {e}") from e
    if not isinstance(data, dict):
        raise ForgeGenerationFailure("Forge response is not a JSON object")

    try:
        return ForgePayload.model_validate(data)
    except ValidationError as e:
        raise ForgeGenerationFailure(f"Forge response failed validation: {e.error_count()} error(s)") from e


# ── Backends ────────────────────────────────────────────────────────────

class ForgeBackend(ABC):
    """A text-completion service."""

    name = "backend"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return raw model text for `prompt`, or raise ForgeGenerationFailure."""


class GeminiForgeBackend(ForgeBackend):
    """Gemini via the google-generativeai SDK."""

    name = "gemini"

    def __init__(self, api_key: str, model_name: Optional[str] = None, model: Any = None):
        self.model_name = model_name or DEFAULT_GEMINI_MODEL
        if model is None:
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(self.model_name)
        self.model = model

    async def complete(self, prompt: str) -> str:
        try:
            response = await self.model.generate_content_async(prompt)
            return response.text
        except Exception as e:
            raise ForgeGenerationFailure(f"Gemini API error: {e}") from e


class HttpForgeBackend(ForgeBackend):
    """OpenAI-compatible chat-completions endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        endpoint: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout_s: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.endpoint = endpoint or DEFAULT_OPENAI_ENDPOINT
        self.model_name = model_name or DEFAULT_OPENAI_MODEL
        self.timeout_s = timeout_s
        self.transport = transport

    def _body(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.7,
            "max_tokens": 500,
        }

    async def complete(self, prompt: str) -> str:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                resp = await client.post(self.endpoint, json=self._body(prompt), headers=headers)
        except httpx.HTTPError as e:
            raise ForgeGenerationFailure(f"Forge request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ForgeGenerationFailure(f"Forge API error: {resp.status_code}")

        try:
            data = resp.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ForgeGenerationFailure("Unexpected chat-completions response shape") from e


# ── Forge ───────────────────────────────────────────────────────────────

class RemoteForge:
    """Generates contract-checked problems through a backend, with a hard timeout."""

    def __init__(
        self,
        backend: ForgeBackend,
        templates: Optional[Dict[str, ZoneTemplate]] = None,
        default_zone: str = "Alpha",
        timeout_s: float = 8.0,
        option_count: int = 4
    ):
        self.backend = backend
        self.templates = dict(ZONE_TEMPLATES if templates is None else templates)
        self.default_zone = default_zone
        self.timeout_s = timeout_s
        self.option_count = option_count

    def _template(self, zone: str) -> ZoneTemplate:
        return self.templates.get(zone) or self.templates[self.default_zone]

    async def generate(self, request: ForgeRequest) -> ProblemSpec:
        """
        Raises:
            ForgeGenerationFailure: on any backend, parsing or contract failure
        """
        prompt = build_prompt(self._template(request.zone), request, self.option_count)
        try:
            text = await asyncio.wait_for(self.backend.complete(prompt), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise ForgeGenerationFailure(
                f"{self.backend.name} timed out after {self.timeout_s}s"
            ) from e

        payload = parse_payload(text)
        try:
            problem = payload.to_problem(request, self.option_count)
        except ProblemContractError as e:
            raise ForgeGenerationFailure(f"Forge problem violates contract: {e}") from e

        logger.debug(f"Forged {problem.id} for zone {request.zone} via {self.backend.name}")
        return problem


def create_remote_forge(
    config: EngineConfig,
    templates: Optional[Dict[str, ZoneTemplate]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[RemoteForge]:
    """
    Build the configured remote forge, or None when no provider/key is set.

    Raises:
        ForgeConfigurationError: unknown provider name
    """
    if not config.forge_enabled:
        return None

    provider = config.forge_provider
    if provider == "gemini":
        backend = GeminiForgeBackend(config.forge_api_key, model_name=config.forge_model)
    elif provider in ("openai", "http"):
        backend = HttpForgeBackend(
            config.forge_api_key,
            endpoint=config.forge_endpoint,
            model_name=config.forge_model,
            timeout_s=config.forge_timeout_s,
            transport=transport,
        )
    else:
        raise ForgeConfigurationError(f"Unknown forge provider '{provider}'")

    logger.info(f"Remote forge enabled ({backend.name})")
    return RemoteForge(
        backend,
        templates=templates,
        default_zone=config.default_zone,
        timeout_s=config.forge_timeout_s,
        option_count=config.option_count,
    )
