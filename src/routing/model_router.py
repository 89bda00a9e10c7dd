"""Seven-signal model routing with rolling health and per-user preference tracking."""

import logging
from typing import Iterable, Optional

from src.routing.model_registry import ModelRegistry
from src.routing.models import (
    ModelDescriptor,
    ModelHealth,
    ModelRecommendation,
    ModelScore,
    RoutingDecision,
    UserProfile,
)
from src.routing.token_limits import UNLIMITED, get_token_limit, requires_premium

logger = logging.getLogger(__name__)

MAX_CANDIDATES: int = 3

# Capability tags that serve each usage context
CONTEXT_CAPABILITIES: dict[str, tuple[str, ...]] = {
    "general": ("general",),
    "codeReview": ("coding", "analysis"),
    "debugging": ("coding", "reasoning"),
    "learning": ("explanation", "general"),
    "projectHelp": ("analysis", "reasoning"),
}

# Capability tag that suits each skill level
LEVEL_CAPABILITIES: dict[str, str] = {
    "beginner": "explanation",
    "intermediate": "coding",
    "advanced": "reasoning",
}

_CONTEXT_TAG_BONUS: float = 0.35
_SKILL_BONUS: float = 0.1
_MAX_SKILL_BONUS: float = 0.2
_LEVEL_BONUS: float = 0.1


class RouterState:
    """Process-wide soft routing state: health, load and user preferences.

    Rebuilt from zero on restart. Mutations are synchronous and never await,
    so each update is atomic with respect to other coroutines on the loop.
    """

    MIN_HEALTH: float = 0.1
    MAX_HEALTH: float = 1.0
    SUCCESS_STEP: float = 0.01
    FAILURE_STEP: float = 0.05
    SLOW_PENALTY: float = 0.02
    SLOW_FACTOR: float = 2.0

    def __init__(self) -> None:
        self._health: dict[str, float] = {}
        self._load: dict[str, int] = {}
        self._history: dict[str, dict[str, int]] = {}

    def health(self, model_id: str) -> float:
        return self._health.get(model_id, self.MAX_HEALTH)

    def _set_health(self, model_id: str, value: float) -> float:
        bounded = round(min(self.MAX_HEALTH, max(self.MIN_HEALTH, value)), 4)
        self._health[model_id] = bounded
        return bounded

    def _apply_latency(
        self, model_id: str, latency_ms: Optional[float], expected_latency_ms: Optional[int]
    ) -> None:
        if latency_ms is None or expected_latency_ms is None:
            return
        if latency_ms > self.SLOW_FACTOR * expected_latency_ms:
            self._set_health(model_id, self.health(model_id) - self.SLOW_PENALTY)
            logger.info(
                f"router_slow_response: model={model_id}, latency_ms={latency_ms:.0f}, "
                f"expected_ms={expected_latency_ms}"
            )

    def record_success(
        self,
        model_id: str,
        latency_ms: Optional[float] = None,
        expected_latency_ms: Optional[int] = None,
    ) -> float:
        """Nudge health up after a successful call. Returns the new health."""
        self._set_health(model_id, self.health(model_id) + self.SUCCESS_STEP)
        self._apply_latency(model_id, latency_ms, expected_latency_ms)
        return self.health(model_id)

    def record_failure(
        self,
        model_id: str,
        latency_ms: Optional[float] = None,
        expected_latency_ms: Optional[int] = None,
    ) -> float:
        """Decay health after a failed call. Returns the new health."""
        self._set_health(model_id, self.health(model_id) - self.FAILURE_STEP)
        self._apply_latency(model_id, latency_ms, expected_latency_ms)
        return self.health(model_id)

    def record_usage(self, user_id: str, model_id: str) -> None:
        """Count one request from `user_id` to `model_id`."""
        counts = self._history.setdefault(user_id, {})
        counts[model_id] = counts.get(model_id, 0) + 1

    def preference_share(self, user_id: Optional[str], model_id: str) -> float:
        """Share of this user's requests that went to `model_id` (0.5 with no history)."""
        counts = self._history.get(user_id or "", {})
        total = sum(counts.values())
        if total == 0:
            return 0.5
        return counts.get(model_id, 0) / total

    def acquire(self, model_id: str) -> None:
        self._load[model_id] = self._load.get(model_id, 0) + 1

    def release(self, model_id: str) -> None:
        self._load[model_id] = max(0, self._load.get(model_id, 0) - 1)

    def current_load(self, model_id: str) -> int:
        return self._load.get(model_id, 0)


class ModelRouter:
    """Scores registry models for a request and returns a ranked shortlist.

    Signals and weights (see ModelScore.WEIGHTS): capability 0.25,
    performance 0.20, cost 0.15, availability 0.15, user preference 0.10,
    context specialty 0.10, live health 0.05.

    Args:
        registry: Model catalog.
        state: Shared RouterState. A fresh one is created when omitted.
    """

    def __init__(self, registry: ModelRegistry, state: Optional[RouterState] = None) -> None:
        self._registry: ModelRegistry = registry
        self._state: RouterState = state if state is not None else RouterState()

    @property
    def state(self) -> RouterState:
        return self._state

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @staticmethod
    def capability_score(model: ModelDescriptor, context: str, profile: UserProfile) -> float:
        """Fixed bonuses for context tags, skill overlap and level fit, capped at 1.0."""
        score = 0.0
        for tag in CONTEXT_CAPABILITIES.get(context, ("general",)):
            if tag in model.capabilities:
                score += _CONTEXT_TAG_BONUS

        specialties = {s.lower() for s in model.code_specialties}
        overlap = sum(1 for skill in profile.skills if skill.lower() in specialties)
        score += min(_MAX_SKILL_BONUS, overlap * _SKILL_BONUS)

        if profile.level is not None:
            level_tag = LEVEL_CAPABILITIES.get(profile.level)
            if level_tag is not None and level_tag in model.capabilities:
                score += _LEVEL_BONUS

        return min(1.0, score)

    @staticmethod
    def performance_score(model: ModelDescriptor, profile: UserProfile) -> float:
        """Blend of speed, accuracy and reliability, reweighted by stated preference."""
        wants_speed = profile.prefers("speed")
        wants_accuracy = profile.prefers("accuracy")
        if wants_speed and not wants_accuracy:
            weights = (0.5, 0.3, 0.2)
        elif wants_accuracy and not wants_speed:
            weights = (0.2, 0.6, 0.2)
        else:
            weights = (0.3, 0.4, 0.3)

        metrics = model.performance
        return min(
            1.0,
            metrics.speed * weights[0]
            + metrics.accuracy * weights[1]
            + metrics.reliability * weights[2],
        )

    @staticmethod
    def cost_score(
        model: ModelDescriptor,
        plan: str,
        remaining_tokens: Optional[int],
        profile: Optional[UserProfile] = None,
    ) -> float:
        """1.0 for free models; otherwise cost efficiency blended with budget left.

        Unlimited budgets count as a full budget ratio. Zero-limit models are
        excluded before scoring and never reach this formula.
        """
        if model.is_free:
            return 1.0

        limit = get_token_limit(model.id, plan)
        if limit == UNLIMITED:
            budget_ratio = 1.0
        else:
            remaining = limit if remaining_tokens is None else remaining_tokens
            if remaining <= 0 or limit <= 0:
                return 0.0
            budget_ratio = min(1.0, remaining / limit)

        efficiency_weight = 0.7 if profile is not None and profile.prefers("cost") else 0.5
        return min(
            1.0,
            model.performance.cost_efficiency * efficiency_weight
            + budget_ratio * (1.0 - efficiency_weight),
        )

    def availability_score(self, model: ModelDescriptor, plan: str) -> float:
        """0 when premium-gated for the plan, else the free concurrency share."""
        if requires_premium(model.id, plan) or (model.premium_required and plan == "free"):
            return 0.0
        load = self._state.current_load(model.id)
        return max(0.0, min(1.0, 1.0 - load / model.max_concurrent))

    @staticmethod
    def context_score(model: ModelDescriptor, context: str) -> float:
        if context in model.context_specialties:
            return 1.0
        if "general" in model.capabilities:
            return 0.7
        return 0.3

    def score_model(
        self,
        model: ModelDescriptor,
        context: str,
        profile: UserProfile,
        plan: str,
        remaining_budget: dict[str, int],
        user_id: Optional[str] = None,
    ) -> ModelScore:
        """Compute the full seven-signal score for one model."""
        return ModelScore(
            model_id=model.id,
            capability=self.capability_score(model, context, profile),
            performance=self.performance_score(model, profile),
            cost=self.cost_score(model, plan, remaining_budget.get(model.id), profile),
            availability=self.availability_score(model, plan),
            preference=self._state.preference_share(user_id, model.id),
            context=self.context_score(model, context),
            health=self._state.health(model.id),
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def score_all(
        self,
        context: str,
        profile: UserProfile,
        plan: str,
        remaining_budget: dict[str, int],
        user_id: Optional[str] = None,
        models: Optional[Iterable[ModelDescriptor]] = None,
    ) -> list[ModelScore]:
        """Score every model the plan can access, best first."""
        pool = list(models) if models is not None else self._registry.all()
        eligible = [m for m in pool if get_token_limit(m.id, plan) != 0]
        scores = [
            self.score_model(m, context, profile, plan, remaining_budget, user_id)
            for m in eligible
        ]
        scores.sort(key=lambda s: s.total, reverse=True)
        return scores

    def rank(
        self,
        context: str,
        profile: UserProfile,
        plan: str,
        remaining_budget: dict[str, int],
        user_id: Optional[str] = None,
        requested_model: Optional[str] = None,
        models: Optional[Iterable[ModelDescriptor]] = None,
    ) -> RoutingDecision:
        """Build the ordered candidate list (primary plus up to two fallbacks).

        Args:
            context: Usage context id.
            profile: Caller profile.
            plan: Subscription plan id.
            remaining_budget: Remaining daily tokens per model id (-1 = unlimited).
            user_id: Caller id for preference weighting.
            requested_model: Explicit model that must be tried first.
            models: Candidate pool. Defaults to the whole registry.

        Returns:
            RoutingDecision with candidates and their scores.
        """
        pool = list(models) if models is not None else self._registry.all()
        scores = self.score_all(context, profile, plan, remaining_budget, user_id, pool)
        ranked = [s.model_id for s in scores]

        if requested_model is not None:
            candidates = [requested_model] + [
                m for m in ranked if m != requested_model
            ][: MAX_CANDIDATES - 1]
        else:
            candidates = ranked[:MAX_CANDIDATES]

        # Top up a short list from the primary's declared fallbacks
        if candidates and len(candidates) < MAX_CANDIDATES:
            pool_ids = {m.id for m in pool}
            primary = self._registry.get(candidates[0])
            for fallback_id in primary.fallbacks if primary is not None else ():
                if len(candidates) >= MAX_CANDIDATES:
                    break
                if (
                    fallback_id not in candidates
                    and fallback_id in pool_ids
                    and get_token_limit(fallback_id, plan) != 0
                ):
                    candidates.append(fallback_id)

        logger.info(
            f"model_router_ranked: context={context}, plan={plan}, "
            f"requested={requested_model}, candidates={candidates}"
        )
        return RoutingDecision(
            candidates=candidates,
            scores={s.model_id: s for s in scores},
            requested_model=requested_model,
        )

    def recommend(
        self,
        context: str,
        profile: UserProfile,
        plan: str,
        remaining_budget: dict[str, int],
        user_id: Optional[str] = None,
        models: Optional[Iterable[ModelDescriptor]] = None,
        limit: int = MAX_CANDIDATES,
    ) -> list[ModelRecommendation]:
        """Top models with a short explanation of why each ranks where it does."""
        scores = self.score_all(context, profile, plan, remaining_budget, user_id, models)
        recommendations: list[ModelRecommendation] = []
        for rank, score in enumerate(scores[:limit], start=1):
            model = self._registry.get(score.model_id)
            if model is None:
                continue
            recommendations.append(
                ModelRecommendation(
                    model_id=model.id,
                    name=model.name,
                    score=score,
                    reasoning=self._reasoning(model, score, context),
                    rank=rank,
                )
            )
        return recommendations

    @staticmethod
    def _reasoning(model: ModelDescriptor, score: ModelScore, context: str) -> str:
        reasons: list[str] = []
        if score.capability >= 0.7:
            reasons.append(f"strong capability match for {context}")
        if score.context == 1.0:
            reasons.append(f"specialized for {context}")
        if model.is_free:
            reasons.append("free to use")
        elif score.cost < 0.3:
            reasons.append("little budget left today")
        if score.availability == 0.0:
            reasons.append("requires a premium plan")
        if score.health < 0.8:
            reasons.append("recently unreliable")
        if score.performance >= 0.85:
            reasons.append("high performance")
        if not reasons:
            reasons.append("balanced overall fit")
        return f"{model.name}: " + ", ".join(reasons) + f" (score {score.total:.2f})"

    def health_report(self, models: Optional[Iterable[ModelDescriptor]] = None) -> list[ModelHealth]:
        """Live health, load and status label for each model."""
        report: list[ModelHealth] = []
        for model in models if models is not None else self._registry.all():
            health = self._state.health(model.id)
            if health >= 0.8:
                status = "healthy"
            elif health >= 0.5:
                status = "degraded"
            else:
                status = "unhealthy"
            report.append(
                ModelHealth(
                    model_id=model.id,
                    health=health,
                    current_load=self._state.current_load(model.id),
                    max_concurrent=model.max_concurrent,
                    status=status,
                )
            )
        return report
