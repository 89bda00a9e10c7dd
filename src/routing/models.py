"""Pydantic models for model descriptors and routing decisions."""

from typing import ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

UsageContext = Literal["general", "codeReview", "debugging", "learning", "projectHelp"]

USAGE_CONTEXTS: tuple[str, ...] = (
    "general",
    "codeReview",
    "debugging",
    "learning",
    "projectHelp",
)

SkillLevel = Literal["beginner", "intermediate", "advanced"]


class PerformanceMetrics(BaseModel):
    """Static quality metrics for a model, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    accuracy: float = Field(ge=0.0, le=1.0)
    speed: float = Field(ge=0.0, le=1.0)
    cost_efficiency: float = Field(ge=0.0, le=1.0)
    reliability: float = Field(ge=0.0, le=1.0)


class ModelDescriptor(BaseModel):
    """Registry entry describing one routable model.

    Immutable after process start.

    Args:
        id: Public model id (e.g. "gpt-4o-mini").
        provider: Provider id serving the model ("openai" or "openrouter").
        provider_model_id: Model id sent upstream.
        name: Display name.
        cost_per_1k_input: USD per 1 000 prompt tokens.
        cost_per_1k_output: USD per 1 000 completion tokens.
        max_tokens: Ceiling for completion tokens per request.
        context_window: Total context window in tokens.
        premium_required: Whether free plans are gated from this model.
        capabilities: Capability tags (e.g. "coding", "reasoning").
        fallbacks: Ordered fallback model ids.
        performance: Static performance metrics.
        context_specialties: Usage contexts this model is tuned for.
        code_specialties: Languages/domains the model is strong in.
        max_concurrent: Concurrency ceiling used for availability scoring.
        expected_latency_ms: Baseline latency for slow-response detection.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    provider_model_id: str
    name: str
    cost_per_1k_input: float = Field(ge=0.0)
    cost_per_1k_output: float = Field(ge=0.0)
    max_tokens: int = Field(gt=0)
    context_window: int = Field(gt=0)
    premium_required: bool = False
    capabilities: frozenset[str] = frozenset()
    fallbacks: tuple[str, ...] = ()
    performance: PerformanceMetrics
    context_specialties: frozenset[str] = frozenset()
    code_specialties: frozenset[str] = frozenset()
    max_concurrent: int = Field(default=10, gt=0)
    expected_latency_ms: int = Field(default=5000, gt=0)

    @property
    def is_free(self) -> bool:
        """True when both per-token rates are zero."""
        return self.cost_per_1k_input == 0 and self.cost_per_1k_output == 0

    def cost_for(self, input_tokens: int, output_tokens: int) -> float:
        """USD cost of a call with the given token counts."""
        return (input_tokens / 1000.0) * self.cost_per_1k_input + (
            output_tokens / 1000.0
        ) * self.cost_per_1k_output


class UserProfile(BaseModel):
    """Caller profile used for prompt shaping and routing.

    Args:
        skills: Languages/technologies the user knows.
        level: Self-reported skill level.
        preferences: Free-form preference flags, e.g. {"speed": "high"}.
    """

    skills: list[str] = Field(default_factory=list)
    level: Optional[SkillLevel] = None
    preferences: dict[str, object] = Field(default_factory=dict)

    def prefers(self, key: str) -> bool:
        """Whether the user expressed a strong preference for `key`.

        Accepts True, "high"/"true"/"yes", or a number >= 0.7.
        """
        value = self.preferences.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value >= 0.7
        if isinstance(value, str):
            return value.strip().lower() in {"high", "true", "yes", "1"}
        return False


class ModelScore(BaseModel):
    """Seven-signal routing score for one candidate model.

    Every signal is in [0, 1]; the weighted total is in [0, 1].
    """

    WEIGHTS: ClassVar[dict[str, float]] = {
        "capability": 0.25,
        "performance": 0.20,
        "cost": 0.15,
        "availability": 0.15,
        "preference": 0.10,
        "context": 0.10,
        "health": 0.05,
    }

    model_id: str
    capability: float = Field(default=0.0, ge=0.0, le=1.0)
    performance: float = Field(default=0.0, ge=0.0, le=1.0)
    cost: float = Field(default=0.0, ge=0.0, le=1.0)
    availability: float = Field(default=0.0, ge=0.0, le=1.0)
    preference: float = Field(default=0.0, ge=0.0, le=1.0)
    context: float = Field(default=0.0, ge=0.0, le=1.0)
    health: float = Field(default=0.0, ge=0.0, le=1.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        """Weighted sum of all seven signals."""
        return sum(getattr(self, name) * weight for name, weight in self.WEIGHTS.items())


class RoutingDecision(BaseModel):
    """Ordered candidate shortlist produced by the router.

    Args:
        candidates: Model ids in attempt order (primary first).
        scores: Score breakdown per ranked model id.
        requested_model: Model explicitly requested by the caller, if any.
    """

    candidates: list[str]
    scores: dict[str, ModelScore] = Field(default_factory=dict)
    requested_model: Optional[str] = None

    @property
    def primary(self) -> Optional[str]:
        return self.candidates[0] if self.candidates else None


class ModelRecommendation(BaseModel):
    """Router recommendation with human-readable reasoning."""

    model_id: str
    name: str
    score: ModelScore
    reasoning: str
    rank: int = Field(ge=1)


class ModelHealth(BaseModel):
    """Live health snapshot for one model."""

    model_id: str
    health: float = Field(ge=0.0, le=1.0)
    current_load: int = Field(ge=0)
    max_concurrent: int = Field(gt=0)
    status: Literal["healthy", "degraded", "unhealthy"]
