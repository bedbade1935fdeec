"""Model registry for resolving the descriptor used by the synthesizer.

Constructed once at startup and passed by reference to the services
that need it:

    registry = ModelRegistry([DEFAULT_MODEL])
    model = registry.resolve()          # best active model
    model = registry.resolve("custom")  # by name
"""

from __future__ import annotations

import logging
from typing import Iterable

from signal_core.errors import NoModelAvailable
from signal_core.models import ModelDescriptor

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Mapping of model name -> descriptor."""

    def __init__(self, models: Iterable[ModelDescriptor] = ()):
        self._models: dict[str, ModelDescriptor] = {}
        for model in models:
            self.register(model)

    def register(self, model: ModelDescriptor) -> None:
        """Register a model descriptor.

        Raises:
            ValueError: If a model with the same name is already registered.
        """
        if model.name in self._models:
            raise ValueError(f"Model '{model.name}' is already registered")
        self._models[model.name] = model
        logger.debug(f"Registered model: {model.name} v{model.version}")

    def get(self, name: str) -> ModelDescriptor:
        """Get an active model by name.

        Raises:
            NoModelAvailable: If the model is unknown or inactive.
        """
        model = self._models.get(name)
        if model is None or not model.is_active:
            available = ", ".join(self.list_models()) or "(none)"
            raise NoModelAvailable(
                f"No active model '{name}'. Available: {available}"
            )
        return model

    def best(self) -> ModelDescriptor:
        """Return the active model with the highest accuracy.

        Raises:
            NoModelAvailable: If no active model is registered.
        """
        active = [m for m in self._models.values() if m.is_active]
        if not active:
            raise NoModelAvailable("No active models available")
        return max(active, key=lambda m: m.accuracy)

    def resolve(self, name: str | None = None) -> ModelDescriptor:
        """Resolve by name, or fall back to the best active model."""
        if name:
            return self.get(name)
        return self.best()

    def active_models(self) -> list[ModelDescriptor]:
        """Active descriptors, highest accuracy first."""
        active = [m for m in self._models.values() if m.is_active]
        return sorted(active, key=lambda m: m.accuracy, reverse=True)

    def list_models(self) -> list[str]:
        """Return a sorted list of active model names."""
        return sorted(n for n, m in self._models.items() if m.is_active)

    def __len__(self) -> int:
        return len(self._models)
