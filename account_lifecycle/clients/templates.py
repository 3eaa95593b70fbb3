"""Jinja2 rendering for lifecycle emails."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from jinja2 import Environment, PackageLoader, select_autoescape

env = Environment(
    loader=PackageLoader("account_lifecycle", "templates/email"),
    autoescape=select_autoescape(["html"]),
)

# Subject line per template name
EMAIL_SUBJECTS: dict[str, str] = {
    "deleted": "Account Deactivated",
    "scheduled": "Important: Account Deletion Scheduled",
    "reminder": "Final Notice: Account Deletion Approaching",
    "restored": "Account Restored",
}


def format_date(value: datetime, tz_name: str = "UTC") -> str:
    """Render a naive-UTC timestamp in the notification timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    local = value.astimezone(tz)
    return local.strftime("%B %d, %Y at %I:%M %p %Z")


def render_email(template_name: str, context: dict) -> tuple[str, str]:
    """
    Render subject and HTML body for a notification.

    Returns:
        Tuple of (subject, html)
    """
    template = env.get_template(f"{template_name}.html")
    return EMAIL_SUBJECTS[template_name], template.render(**context)
