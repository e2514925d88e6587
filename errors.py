"""
Domain errors for the Tamagotcho API.

Services raise these; `main` turns every one of them into a JSON response
with the status code carried by the class. Nothing here knows about HTTP
beyond that number.
"""
from typing import Any, Dict, Optional


class TamagotchiError(Exception):
    """Base class for every error raised by the game services."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.error_code = self.__class__.__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class InvalidArgumentError(TamagotchiError):
    """Unknown action or state, bad id, negative amount."""

    status_code = 400


class UnauthorizedError(TamagotchiError):
    status_code = 401


class NotFoundError(TamagotchiError):
    """Monster, quest, wallet or accessory missing for this owner."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found",
            {"resource": resource, "identifier": str(identifier)},
        )


class PreconditionFailedError(TamagotchiError):
    """The requested transition is not allowed from the current state."""

    status_code = 409


class ConflictError(TamagotchiError):
    """A concurrent writer changed the document first."""

    status_code = 409


class ConfigurationError(TamagotchiError):
    """Static game data (XP level table) or a required secret is missing."""

    status_code = 500
