"""Bearer token sources.

Hides where access tokens come from. The backend client only asks whether a
token is available and what it is.
"""

import os
from abc import ABC, abstractmethod


class TokenProvider(ABC):
    """Source of bearer tokens for backend requests."""

    @abstractmethod
    async def get_token(self) -> str | None:
        """Return the current token, or None if authentication is not ready."""

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether a token can be obtained right now."""


class StaticTokenProvider(TokenProvider):
    """Token fixed at construction time."""

    def __init__(self, token: str | None):
        self._token = token or None

    async def get_token(self) -> str | None:
        return self._token

    @property
    def is_ready(self) -> bool:
        return self._token is not None


class EnvTokenProvider(TokenProvider):
    """Token read from an environment variable on every request."""

    def __init__(self, variable: str = "BRANCHCHAT_TOKEN"):
        self._variable = variable

    async def get_token(self) -> str | None:
        return os.getenv(self._variable) or None

    @property
    def is_ready(self) -> bool:
        return bool(os.getenv(self._variable))
