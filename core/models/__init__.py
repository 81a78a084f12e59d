"""Core domain models."""

from core.models.registration import Registration

__all__ = [
    "Registration",
]
