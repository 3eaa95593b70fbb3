"""Mock clients for testing."""

from .email import MockEmailClient

__all__ = ["MockEmailClient"]
