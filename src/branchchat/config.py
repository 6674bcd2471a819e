"""Runtime configuration for branchchat.

Hides where configuration values come from (environment, .env file) and
their defaults. Views and factories receive a Settings instance instead of
reading the environment themselves.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .catalog import DEFAULT_PROVIDER, PROVIDER_MODELS, resolve_model
from .conversation.models import FailurePolicy

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 60.0
DEFAULT_TYPING_DELAY = 0.5


class Settings(BaseModel):
    """Client settings resolved at startup."""

    api_url: str = Field(default=DEFAULT_API_URL, description="Backend base URL")
    token: str | None = Field(default=None, description="Bearer token for the backend")
    provider: str = Field(default=DEFAULT_PROVIDER, description="Default LLM provider")
    model: str | None = Field(default=None, description="Default model (None = provider's first)")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Request timeout in seconds")
    typing_delay: float = Field(
        default=DEFAULT_TYPING_DELAY,
        ge=0,
        description="Delay before the assistant placeholder appears"
    )
    single_failure: FailurePolicy = Field(
        default=FailurePolicy.KEEP,
        description="What a failed single-chat send does with its placeholder"
    )
    dual_failure: FailurePolicy = Field(
        default=FailurePolicy.REMOVE,
        description="What a failed dual-chat send does with its placeholders"
    )

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        if value not in PROVIDER_MODELS:
            raise ValueError(f"Unknown provider: {value}")
        return value

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def default_model(self) -> str:
        """Model to use when none is chosen explicitly."""
        return resolve_model(self.provider, self.model)


def load_settings(env_file: str | None = None) -> Settings:
    """Build Settings from the environment.

    Environment variables:
        BRANCHCHAT_API_URL: Backend base URL (default: http://localhost:8000)
        BRANCHCHAT_TOKEN: Bearer token (unset = authentication not ready)
        BRANCHCHAT_PROVIDER: Default provider (default: gemini)
        BRANCHCHAT_MODEL: Default model (default: provider's first model)
        BRANCHCHAT_TIMEOUT: Request timeout in seconds (default: 60)
        BRANCHCHAT_TYPING_DELAY: Placeholder delay in seconds (default: 0.5)
        BRANCHCHAT_SINGLE_FAILURE: keep | remove (default: keep)
        BRANCHCHAT_DUAL_FAILURE: keep | remove (default: remove)

    Args:
        env_file: Optional path to a .env file (default: search upwards)

    Returns:
        Validated settings
    """
    load_dotenv(env_file)

    return Settings(
        api_url=os.getenv("BRANCHCHAT_API_URL", DEFAULT_API_URL),
        token=os.getenv("BRANCHCHAT_TOKEN") or None,
        provider=os.getenv("BRANCHCHAT_PROVIDER", DEFAULT_PROVIDER).lower(),
        model=os.getenv("BRANCHCHAT_MODEL") or None,
        timeout=float(os.getenv("BRANCHCHAT_TIMEOUT", str(DEFAULT_TIMEOUT))),
        typing_delay=float(os.getenv("BRANCHCHAT_TYPING_DELAY", str(DEFAULT_TYPING_DELAY))),
        single_failure=os.getenv("BRANCHCHAT_SINGLE_FAILURE", FailurePolicy.KEEP.value).lower(),
        dual_failure=os.getenv("BRANCHCHAT_DUAL_FAILURE", FailurePolicy.REMOVE.value).lower(),
    )
