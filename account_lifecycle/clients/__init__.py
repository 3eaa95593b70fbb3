"""API clients for external services."""

from account_lifecycle.clients.email import EmailClient, validate_email
from account_lifecycle.clients.templates import render_email, format_date

__all__ = [
    "EmailClient",
    "validate_email",
    "render_email",
    "format_date",
]
