"""Error taxonomy shared by the store, the provider client and the renderers.

Callers can catch `HolderGraphError` for everything raised on purpose by the
package. `ProviderError` subclasses carry an HTTP-like status code so delivery
layers can map them to responses without re-parsing messages.
"""
from __future__ import annotations

from typing import Optional


class HolderGraphError(Exception):
    """Base class for all package errors."""


class NotFoundError(HolderGraphError):
    """A requested analysis record does not exist."""


class ValidationError(HolderGraphError):
    """Malformed address, chain or graph shape; raised before any fetch or render."""


class ProviderError(HolderGraphError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status {self.status_code})"


class ProviderUnavailable(ProviderError):
    """Network or provider-side failure."""


class ProviderDataUnavailable(ProviderError):
    """The provider answered, but has no data for this token (401 or status 'KO')."""


class RenderError(HolderGraphError):
    """Layout or rendering failed on otherwise valid data."""


__all__ = [
    "HolderGraphError",
    "NotFoundError",
    "ValidationError",
    "ProviderError",
    "ProviderUnavailable",
    "ProviderDataUnavailable",
    "RenderError",
]
