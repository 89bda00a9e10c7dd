"""Static catalog of AI models available to the router."""

import logging
from typing import Iterable, Optional

from src.routing.models import ModelDescriptor, PerformanceMetrics

logger = logging.getLogger(__name__)

DEFAULT_MODELS: list[ModelDescriptor] = [
    ModelDescriptor(
        id="gpt-4o-mini",
        provider="openai",
        provider_model_id="gpt-4o-mini",
        name="GPT-4o Mini",
        cost_per_1k_input=0.00015,
        cost_per_1k_output=0.0006,
        max_tokens=16384,
        context_window=128000,
        premium_required=False,
        capabilities=frozenset({"general", "coding", "fast", "explanation"}),
        fallbacks=("gpt-3.5-turbo", "qwen3-coder"),
        performance=PerformanceMetrics(
            accuracy=0.80, speed=0.90, cost_efficiency=0.90, reliability=0.95
        ),
        context_specialties=frozenset({"general", "learning"}),
        code_specialties=frozenset({"javascript", "python", "typescript", "html", "css"}),
        max_concurrent=50,
        expected_latency_ms=3000,
    ),
    ModelDescriptor(
        id="gpt-3.5-turbo",
        provider="openai",
        provider_model_id="gpt-3.5-turbo",
        name="GPT-3.5 Turbo",
        cost_per_1k_input=0.0005,
        cost_per_1k_output=0.0015,
        max_tokens=4096,
        context_window=16385,
        premium_required=False,
        capabilities=frozenset({"general", "fast", "explanation"}),
        fallbacks=("gpt-4o-mini", "deepseek-r1"),
        performance=PerformanceMetrics(
            accuracy=0.70, speed=0.95, cost_efficiency=0.85, reliability=0.90
        ),
        context_specialties=frozenset({"general"}),
        code_specialties=frozenset({"javascript", "python"}),
        max_concurrent=50,
        expected_latency_ms=2500,
    ),
    ModelDescriptor(
        id="deepseek-r1",
        provider="openrouter",
        provider_model_id="deepseek/deepseek-r1:free",
        name="DeepSeek R1",
        cost_per_1k_input=0.0,
        cost_per_1k_output=0.0,
        max_tokens=8192,
        context_window=163840,
        premium_required=False,
        capabilities=frozenset({"reasoning", "analysis", "coding"}),
        fallbacks=("qwen3-coder", "gpt-4o-mini"),
        performance=PerformanceMetrics(
            accuracy=0.88, speed=0.45, cost_efficiency=1.0, reliability=0.80
        ),
        context_specialties=frozenset({"debugging", "learning"}),
        code_specialties=frozenset({"python", "c++", "java", "algorithms"}),
        max_concurrent=10,
        expected_latency_ms=15000,
    ),
    ModelDescriptor(
        id="qwen3-coder",
        provider="openrouter",
        provider_model_id="qwen/qwen3-coder:free",
        name="Qwen3 Coder",
        cost_per_1k_input=0.0,
        cost_per_1k_output=0.0,
        max_tokens=8192,
        context_window=262144,
        premium_required=False,
        capabilities=frozenset({"coding", "analysis"}),
        fallbacks=("deepseek-r1", "gpt-4o-mini"),
        performance=PerformanceMetrics(
            accuracy=0.85, speed=0.70, cost_efficiency=1.0, reliability=0.82
        ),
        context_specialties=frozenset({"codeReview", "debugging", "projectHelp"}),
        code_specialties=frozenset(
            {"python", "javascript", "typescript", "java", "go", "rust"}
        ),
        max_concurrent=10,
        expected_latency_ms=8000,
    ),
    ModelDescriptor(
        id="gpt-4o",
        provider="openai",
        provider_model_id="gpt-4o",
        name="GPT-4o",
        cost_per_1k_input=0.005,
        cost_per_1k_output=0.015,
        max_tokens=16384,
        context_window=128000,
        premium_required=True,
        capabilities=frozenset({"general", "coding", "analysis", "reasoning", "explanation"}),
        fallbacks=("gpt-4o-mini", "deepseek-r1"),
        performance=PerformanceMetrics(
            accuracy=0.95, speed=0.75, cost_efficiency=0.50, reliability=0.95
        ),
        context_specialties=frozenset({"codeReview", "projectHelp", "debugging"}),
        code_specialties=frozenset(
            {"python", "javascript", "typescript", "java", "go", "rust", "c++"}
        ),
        max_concurrent=20,
        expected_latency_ms=6000,
    ),
]


class ModelRegistry:
    """Read-only lookup over model descriptors.

    Args:
        models: Descriptors to serve. Defaults to DEFAULT_MODELS.
    """

    def __init__(self, models: Optional[Iterable[ModelDescriptor]] = None) -> None:
        catalog = list(models) if models is not None else list(DEFAULT_MODELS)
        self._models: dict[str, ModelDescriptor] = {m.id: m for m in catalog}

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        """Descriptor for `model_id`, or None when unknown."""
        return self._models.get(model_id)

    def is_known_model(self, model_id: str) -> bool:
        return model_id in self._models

    def all(self) -> list[ModelDescriptor]:
        """Every descriptor, in catalog order."""
        return list(self._models.values())

    def available(self, configured_providers: Iterable[str]) -> list[ModelDescriptor]:
        """Descriptors whose provider has a configured client.

        Args:
            configured_providers: Provider ids with credentials present.

        Returns:
            Matching descriptors in catalog order.
        """
        providers = set(configured_providers)
        models = [m for m in self._models.values() if m.provider in providers]
        if not models:
            logger.warning(f"model_registry_no_available_models: providers={sorted(providers)}")
        return models
