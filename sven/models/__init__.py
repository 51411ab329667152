"""Pydantic data models."""

from sven.models.secret import Secret

__all__ = ["Secret"]
