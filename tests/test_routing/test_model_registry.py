"""Tests for ModelRegistry and ModelDescriptor."""

import pytest
from pydantic import ValidationError

from src.routing.model_registry import DEFAULT_MODELS, ModelRegistry


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry()


def test_default_catalog_ids(registry: ModelRegistry) -> None:
    assert [m.id for m in registry.all()] == [
        "gpt-4o-mini",
        "gpt-3.5-turbo",
        "deepseek-r1",
        "qwen3-coder",
        "gpt-4o",
    ]


def test_get_and_is_known(registry: ModelRegistry) -> None:
    model = registry.get("qwen3-coder")
    assert model is not None
    assert model.provider == "openrouter"
    assert model.provider_model_id == "qwen/qwen3-coder:free"
    assert registry.is_known_model("qwen3-coder") is True
    assert registry.get("unknown") is None
    assert registry.is_known_model("unknown") is False


def test_available_filters_by_configured_provider(registry: ModelRegistry) -> None:
    assert [m.id for m in registry.available({"openai"})] == [
        "gpt-4o-mini",
        "gpt-3.5-turbo",
        "gpt-4o",
    ]
    assert [m.id for m in registry.available(["openrouter"])] == ["deepseek-r1", "qwen3-coder"]


def test_available_without_providers_is_empty(registry: ModelRegistry) -> None:
    assert registry.available(set()) == []


def test_fallbacks_reference_known_models() -> None:
    ids = {m.id for m in DEFAULT_MODELS}
    for model in DEFAULT_MODELS:
        assert set(model.fallbacks) <= ids
        assert model.id not in model.fallbacks


def test_descriptor_cost_and_free_flag(registry: ModelRegistry) -> None:
    mini = registry.get("gpt-4o-mini")
    deepseek = registry.get("deepseek-r1")
    assert mini is not None and deepseek is not None

    assert mini.cost_for(1000, 1000) == pytest.approx(0.00075)
    assert mini.is_free is False
    assert deepseek.cost_for(5000, 5000) == 0.0
    assert deepseek.is_free is True


def test_descriptor_is_immutable(registry: ModelRegistry) -> None:
    model = registry.get("gpt-4o")
    assert model is not None
    with pytest.raises(ValidationError):
        model.max_tokens = 1  # type: ignore[misc]
