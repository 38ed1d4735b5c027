"""
Exception types shared across the Safe Passage backend.
Each one is caught at the boundary of the action that raised it and turned
into a user-facing message by the API layer.
"""

from typing import Optional


class SafePassageError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SafePassageError):
    """Missing or below-threshold input, detected before any external call."""


class AuthFailure(SafePassageError):
    """Credential rejection, unconfirmed account, rate limiting, etc."""


class ProfileStoreFailure(SafePassageError):
    """Persistence backend error. `code` carries the backend error code if any."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class GenerationFailure(SafePassageError):
    """The content provider could not produce a response."""


class InvalidTransition(SafePassageError):
    """A search flow action was attempted from the wrong state."""
