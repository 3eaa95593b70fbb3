"""Tests for email rendering, the email client and the notification dispatcher."""

import json
from datetime import datetime
from zoneinfo import available_timezones

import httpx
import pytest

from account_lifecycle.clients.email import EmailClient, validate_email
from account_lifecycle.clients.templates import format_date, render_email
from account_lifecycle.models import HistoryAction
from account_lifecycle.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
)
from tests.helpers import NOW, deliver_pending


def _email_client(handler) -> EmailClient:
    client = EmailClient("https://email.test", "re_test_key", "noreply@example.com")
    client._client = httpx.AsyncClient(
        base_url=client.base_url,
        transport=httpx.MockTransport(handler),
        headers={"Authorization": f"Bearer {client.api_key}"},
    )
    return client


class TestTemplates:
    """Jinja2 email rendering."""

    def test_render_deleted(self):
        subject, html = render_email(
            "deleted",
            {
                "user_name": "Jane Doe",
                "date": "March 02, 2026 at 12:00 PM UTC",
                "reason": "Terms of service violation",
                "contact_email": "support@example.com",
            },
        )

        assert subject == "Account Deactivated"
        assert "Dear Jane Doe" in html
        assert "Terms of service violation" in html
        assert "mailto:support@example.com" in html

    def test_user_input_is_escaped(self):
        _, html = render_email(
            "restored",
            {"user_name": "<script>alert(1)</script>", "date": "today", "contact_email": ""},
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_format_date_utc(self):
        assert format_date(datetime(2026, 3, 9, 12, 0)) == "March 09, 2026 at 12:00 PM UTC"

    @pytest.mark.skipif("America/New_York" not in available_timezones(), reason="no tz database")
    def test_format_date_timezone(self):
        # 12:00 UTC is 07:00 in New York (EST) on this date
        formatted = format_date(datetime(2026, 1, 15, 12, 0), "America/New_York")
        assert formatted == "January 15, 2026 at 07:00 AM EST"


class TestEmailClient:
    """HTTP client for the email provider."""

    @pytest.mark.asyncio
    async def test_send_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "email-123"})

        client = _email_client(handler)
        ok, message = await client.send_email("jane@example.com", "Subject", "<p>Hi</p>")
        await client.close()

        assert ok is True
        assert message == "email-123"
        body = json.loads(requests[0].content)
        assert body["to"] == ["jane@example.com"]
        assert body["from"] == "noreply@example.com"
        assert requests[0].url.path == "/emails"
        assert requests[0].headers["Authorization"] == "Bearer re_test_key"

    @pytest.mark.asyncio
    async def test_send_provider_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"message": "Invalid `to` field"})

        client = _email_client(handler)
        ok, message = await client.send_email("jane@example.com", "Subject", "<p>Hi</p>")

        assert ok is False
        assert message == "Invalid `to` field"

    @pytest.mark.asyncio
    async def test_send_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _email_client(handler)
        ok, message = await client.send_email("jane@example.com", "Subject", "<p>Hi</p>")

        assert ok is False
        assert "Request error" in message

    @pytest.mark.asyncio
    async def test_invalid_recipient_not_sent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not be called")

        client = _email_client(handler)
        ok, message = await client.send_email("not-an-email", "Subject", "<p>Hi</p>")

        assert ok is False
        assert "Invalid email format" in message

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = EmailClient("https://email.test", "", "noreply@example.com")

        ok, message = await client.send_email("jane@example.com", "Subject", "<p>Hi</p>")

        assert ok is False
        assert message == "Email service is not properly configured"

    def test_validate_email(self):
        assert validate_email("jane@example.com")
        assert not validate_email("jane@example")
        assert not validate_email("")


class TestNotificationDispatcher:
    """Queue, delivery and audit flag."""

    @pytest.mark.asyncio
    async def test_send_does_not_deliver_inline(self, dispatcher, mock_email):
        queued = dispatcher.send(NotificationKind.RESTORED, "jane@example.com", {"user_name": "Jane"})

        assert queued is True
        assert dispatcher.pending == 1
        assert mock_email.sent == []

        await deliver_pending(dispatcher)

        assert dispatcher.pending == 0
        assert mock_email.subjects_for("jane@example.com") == ["Account Restored"]

    @pytest.mark.asyncio
    @pytest.mark.skipif("Europe/Berlin" not in available_timezones(), reason="no tz database")
    async def test_date_rendered_in_configured_timezone(self, dispatcher, mock_email):
        dispatcher.timezone_name = "Europe/Berlin"

        await dispatcher.deliver(
            Notification(
                kind=NotificationKind.REMINDER,
                recipient="jane@example.com",
                payload={"user_name": "Jane", "date": NOW},
            )
        )

        # NOW is 12:00 UTC, 13:00 CET
        assert "March 02, 2026 at 01:00 PM CET" in mock_email.sent[0]["html"]

    @pytest.mark.asyncio
    async def test_success_flags_history_entry(self, dispatcher, audit, session_factory, create_account):
        account = await create_account()
        async with session_factory() as db:
            entry = await audit.append(db, account.id, HistoryAction.DELETED, "Spam account cleanup", "admin-1")
            await db.commit()

        delivered = await dispatcher.deliver(
            Notification(
                kind=NotificationKind.DELETED,
                recipient="jane@example.com",
                payload={"user_name": "Jane", "date": NOW, "reason": "Spam account cleanup"},
                history_entry_id=entry.id,
            )
        )

        assert delivered is True
        async with session_factory() as db:
            history = await audit.get_history(db, account.id)
        assert history[0].notification_sent is True

    @pytest.mark.asyncio
    async def test_failure_leaves_flag_false(self, dispatcher, audit, mock_email, session_factory, create_account):
        account = await create_account()
        async with session_factory() as db:
            entry = await audit.append(db, account.id, HistoryAction.DELETED, "Spam account cleanup", "admin-1")
            await db.commit()
        mock_email.fail_next("provider unavailable")

        delivered = await dispatcher.deliver(
            Notification(
                kind=NotificationKind.DELETED,
                recipient="jane@example.com",
                payload={"user_name": "Jane", "date": NOW},
                history_entry_id=entry.id,
            )
        )

        assert delivered is False
        async with session_factory() as db:
            history = await audit.get_history(db, account.id)
        assert history[0].notification_sent is False

    @pytest.mark.asyncio
    async def test_client_exception_is_contained(self, dispatcher, mock_email):
        async def broken_send(to, subject, html):
            raise RuntimeError("boom")

        mock_email.send_email = broken_send

        delivered = await dispatcher.deliver(
            Notification(kind=NotificationKind.RESTORED, recipient="jane@example.com")
        )

        assert delivered is False

    @pytest.mark.asyncio
    async def test_worker_survives_failures(self, dispatcher, mock_email):
        mock_email.fail_next(times=2)
        for _ in range(3):
            dispatcher.send(NotificationKind.RESTORED, "jane@example.com", {"user_name": "Jane"})

        await deliver_pending(dispatcher)

        assert len(mock_email.sent) == 1

    @pytest.mark.asyncio
    async def test_disabled(self, mock_email, session_factory, audit):
        dispatcher = NotificationDispatcher(mock_email, session_factory, audit, enabled=False)

        queued = dispatcher.send(NotificationKind.DELETED, "jane@example.com", {"user_name": "Jane"})

        assert queued is False
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_raising(self, mock_email, session_factory, audit):
        dispatcher = NotificationDispatcher(mock_email, session_factory, audit, queue_size=1)

        assert dispatcher.send(NotificationKind.DELETED, "a@example.com", {}) is True
        assert dispatcher.send(NotificationKind.DELETED, "b@example.com", {}) is False
        assert dispatcher.pending == 1
