"""Domain layer: session engine models, errors and services."""

from src.domain.models import User

__all__ = ["User"]
