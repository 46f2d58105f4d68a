"""
InfiniXO error hierarchy.

Rejected moves are not errors: the rule engine reports them as values on
``MoveResult``. Exceptions are reserved for state that cannot be trusted.

Usage:
    from infinixo.errors import StateDecodeError

    try:
        state = deserialize(payload)
    except StateDecodeError as e:
        logger.warning("Bad state payload: %s", e.message)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "ConfigurationError",
    "InfiniXOError",
    "StateDecodeError",
    "StateInvariantError",
]


class InfiniXOError(Exception):
    """Base exception for all InfiniXO errors.

    Attributes:
        code: Machine-readable error code for categorization
        message: Human-readable error description
        context: Additional context for debugging
    """

    code: str = "INFINIXO_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class StateDecodeError(InfiniXOError):
    """Serialized state could not be parsed or is missing required fields."""

    code: str = "STATE_DECODE_ERROR"


class StateInvariantError(InfiniXOError):
    """Decoded state breaks a game invariant (e.g. too many live pieces).

    Never repaired silently: the state is rejected as a whole.
    """

    code: str = "STATE_INVARIANT_VIOLATION"


class ConfigurationError(InfiniXOError):
    """An environment setting has an unusable value."""

    code: str = "CONFIGURATION_ERROR"
