"""Static provider/model catalog.

Hides which models each provider exposes through the backend and the rules
for keeping a (provider, model) pair consistent.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Order matters: the first entry is the provider's default model
PROVIDER_MODELS: dict[str, list[str]] = {
    "gemini": [
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
    ],
    "openai": ["gpt-4o-mini", "gpt-4o"],
    "claude": ["claude-3-5-haiku-latest", "claude-3-7-sonnet-latest"],
}

DEFAULT_PROVIDER = "gemini"
UNKNOWN_PROVIDER = "unknown"

_MODEL_PREFIXES = {
    "gemini": "gemini",
    "gpt": "openai",
    "text-davinci": "openai",
    "claude": "claude",
}


def providers() -> list[str]:
    """Get all known provider names."""
    return list(PROVIDER_MODELS)


def models_for(provider: str) -> list[str]:
    """Get the models offered for a provider (empty for unknown providers)."""
    return list(PROVIDER_MODELS.get(provider.lower(), []))


def resolve_model(provider: str, model: str | None = None) -> str:
    """Keep a model consistent with its provider.

    Args:
        provider: Provider name
        model: Currently selected model, if any

    Returns:
        ``model`` if the provider offers it, otherwise the provider's first model

    Raises:
        ValueError: If the provider is not in the catalog
    """
    models = models_for(provider)
    if not models:
        raise ValueError(
            f"Unsupported provider: {provider}. "
            f"Supported providers: {', '.join(PROVIDER_MODELS)}"
        )
    if model in models:
        return model
    return models[0]


def provider_for_model(model: str | None) -> str:
    """Guess the provider that produced a message from its model name."""
    if not model:
        return UNKNOWN_PROVIDER
    for prefix, provider in _MODEL_PREFIXES.items():
        if model.startswith(prefix):
            return provider
    return UNKNOWN_PROVIDER


class ModelSelection(BaseModel):
    """A provider together with one of its models."""

    model_config = ConfigDict(frozen=True)

    provider: str = Field(default=DEFAULT_PROVIDER, description="Provider name")
    model: str | None = Field(default=None, description="Model name (reset if not offered)")

    @model_validator(mode="after")
    def _reset_model(self) -> "ModelSelection":
        resolved = resolve_model(self.provider, self.model)
        if resolved != self.model or self.provider != self.provider.lower():
            object.__setattr__(self, "provider", self.provider.lower())
            object.__setattr__(self, "model", resolved)
        return self

    def with_provider(self, provider: str) -> "ModelSelection":
        """Switch provider, keeping the model only if the new provider offers it."""
        return ModelSelection(provider=provider, model=self.model)

    def with_model(self, model: str) -> "ModelSelection":
        """Switch model within the current provider."""
        return ModelSelection(provider=self.provider, model=model)

    def __str__(self) -> str:
        return f"{self.provider}/{self.model}"
