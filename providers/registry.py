"""
Provider registry — maps FEEDBACK_PROVIDER names to provider factories.

The processor only knows the configured name ("stub", "openrouter") and needs
an instance to call. This registry does that lookup, so there is one place
that knows all the providers.
"""

from typing import Callable

from config.settings import settings
from providers.base import AbstractFeedbackProvider
from providers.openrouter import OpenRouterFeedbackProvider
from providers.stub import StubFeedbackProvider

_REGISTRY: dict[str, Callable[[], AbstractFeedbackProvider]] = {
    "stub": StubFeedbackProvider,
    "openrouter": OpenRouterFeedbackProvider,
}


def get_provider(name: str | None = None) -> AbstractFeedbackProvider:
    """Build the provider for `name` (defaults to settings). Raises ValueError if unknown."""
    name = name or settings.FEEDBACK_PROVIDER
    factory = _REGISTRY.get(name)
    if factory is None:
        raise ValueError(
            f"Unknown feedback provider: '{name}'. Available: {list(_REGISTRY.keys())}"
        )
    return factory()
