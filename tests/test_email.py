"""
Unit tests for email providers.
"""
import base64
import json
from unittest.mock import AsyncMock, patch

import pytest

from checkout_core.config.models import DemoEmailSettings, SendGridSettings, SesSettings
from checkout_core.errors import ServiceConstructionError
from checkout_core.services.email import (
    DemoEmailService,
    EmailAttachment,
    EmailMessage,
    EmailResult,
    EmailService,
    SendGridEmailService,
    SesEmailService,
    order_confirmation_message,
    password_reset_message,
    welcome_message,
)


def _sendgrid(**overrides: str) -> SendGridEmailService:
    values = {"api_key": "SG.test-key", "from_email": "orders@shop.example.com"}
    values.update(overrides)
    return SendGridEmailService(
        SendGridSettings(**values), site_url="https://shop.example.com", latency=0
    )


def _ses() -> SesEmailService:
    return SesEmailService(
        SesSettings(
            region="eu-west-1",
            access_key_id="AKIATEST",
            secret_access_key="ses-secret",
            from_email="orders@shop.example.com",
        ),
        latency=0,
    )


class TestTemplates:
    """Test suite for message templates."""

    @pytest.mark.unit
    def test_order_confirmation(self) -> None:
        message = order_confirmation_message("ord_42", "buyer@example.com", {"total": "59.00"})

        assert message.to == "buyer@example.com"
        assert message.subject == "Order Confirmation - ord_42"
        assert "Total: $59.00" in message.text
        assert "ord_42" in message.html

    @pytest.mark.unit
    def test_password_reset(self) -> None:
        message = password_reset_message("buyer@example.com", "https://shop/reset?token=abc")
        assert message.subject == "Reset Your Password - Kin Workspace"
        assert "https://shop/reset?token=abc" in message.html

    @pytest.mark.unit
    def test_welcome(self) -> None:
        message = welcome_message("buyer@example.com", "Ada")
        assert message.subject == "Welcome to Kin Workspace!"
        assert "Ada" in message.text

    @pytest.mark.unit
    def test_html_escapes_interpolated_values(self) -> None:
        order = order_confirmation_message(
            "<script>x</script>", "buyer@example.com", {"total": "<b>1</b>"}
        )
        reset = password_reset_message("buyer@example.com", 'https://shop/r?a=1&b="><img>')
        welcome = welcome_message("buyer@example.com", "<img src=x onerror=alert(1)>")

        assert "<script>" not in order.html
        assert "&lt;script&gt;x&lt;/script&gt;" in order.html
        assert "&lt;b&gt;1&lt;/b&gt;" in order.html
        assert 'href="https://shop/r?a=1&amp;b=&quot;&gt;&lt;img&gt;"' in reset.html
        assert "<img" not in welcome.html
        assert "Welcome to Kin Workspace, <img src=x onerror=alert(1)>!" in welcome.text

    @pytest.mark.unit
    def test_recipients(self) -> None:
        single = EmailMessage(to="a@example.com", subject="s", html="<p>x</p>")
        many = EmailMessage(to=["a@example.com", "b@example.com"], subject="s", html="<p>x</p>")
        assert single.recipients == ["a@example.com"]
        assert many.recipients == ["a@example.com", "b@example.com"]


class TestDemoEmailService:
    """Test suite for DemoEmailService."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_send_email(self) -> None:
        service = DemoEmailService(DemoEmailSettings(simulate_delay=0))

        result = await service.send_email(
            EmailMessage(to="buyer@example.com", subject="Hello", html="<p>Hi</p>")
        )

        assert isinstance(service, EmailService)
        assert service.is_demo() is True
        assert result.success is True
        assert result.message_id.startswith("demo_")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_password_reset_link_uses_site_url(self) -> None:
        service = DemoEmailService(
            DemoEmailSettings(simulate_delay=0), site_url="https://shop.example.com"
        )

        with patch.object(
            service, "send_email", new=AsyncMock(return_value=EmailResult(success=True))
        ) as send:
            await service.send_password_reset("buyer@example.com", "tok123")

        message = send.await_args.args[0]
        assert "https://shop.example.com/reset-password?token=tok123" in message.html


class TestSendGridEmailService:
    """Test suite for SendGridEmailService."""

    @pytest.mark.unit
    def test_requires_api_key(self) -> None:
        with pytest.raises(
            ServiceConstructionError,
            match="SendGrid API key is required for production email service",
        ):
            SendGridEmailService(SendGridSettings(api_key=""))

        with pytest.raises(ServiceConstructionError):
            SendGridEmailService(None)

    @pytest.mark.unit
    def test_accessors(self) -> None:
        service = _sendgrid()
        assert service.is_demo() is False
        assert service.get_sendgrid_api_key() == "SG.test-key"
        assert service.get_from_email() == "orders@shop.example.com"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_send_email(self) -> None:
        result = await _sendgrid().send_order_confirmation(
            "ord_1", "buyer@example.com", {"total": "10.00"}
        )
        assert result.success is True
        assert result.message_id.startswith("sg_")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejected_recipient(self) -> None:
        result = await _sendgrid().send_welcome_email("fail@example.com", "Nope")
        assert result.success is False
        assert result.error == "Invalid email address"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_from_email(self) -> None:
        result = await _sendgrid(from_email="").send_welcome_email("buyer@example.com", "Ada")
        assert result.success is False
        assert result.error == "Invalid SendGrid credentials"

    @pytest.mark.unit
    def test_build_payload(self) -> None:
        message = EmailMessage(
            to=["a@example.com", "b@example.com"],
            subject="Invoice",
            html="<p>Invoice</p>",
            text="Invoice",
            reply_to="support@shop.example.com",
            attachments=[
                EmailAttachment(
                    filename="invoice.txt", content=b"total: 10", content_type="text/plain"
                )
            ],
        )

        payload = _sendgrid().build_payload(message)

        assert payload["personalizations"] == [
            {
                "to": [{"email": "a@example.com"}, {"email": "b@example.com"}],
                "subject": "Invoice",
            }
        ]
        assert payload["from"] == {"email": "orders@shop.example.com", "name": "Kin Workspace"}
        assert [part["type"] for part in payload["content"]] == ["text/html", "text/plain"]
        assert payload["reply_to"] == {"email": "support@shop.example.com"}
        attachment = payload["attachments"][0]
        assert base64.b64decode(attachment["content"]) == b"total: 10"
        assert attachment["disposition"] == "attachment"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_events(self) -> None:
        events = [
            {"event": "delivered", "email": "a@example.com", "timestamp": 1700000000},
            {"event": "bounce", "email": "b@example.com", "reason": "mailbox full"},
        ]

        result = await _sendgrid().handle_webhook(json.dumps(events), "signature")

        assert result == {"success": True, "events": events}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_single_event(self) -> None:
        result = await _sendgrid().handle_webhook({"event": "open"}, "signature")
        assert result["success"] is True
        assert len(result["events"]) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_missing_signature(self) -> None:
        result = await _sendgrid().handle_webhook("[]", None)
        assert result == {"success": False, "error": "Missing SendGrid signature"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["{broken", "[1, 2]", '"text"'])
    async def test_webhook_invalid_payload(self, payload: str) -> None:
        result = await _sendgrid().handle_webhook(payload, "signature")
        assert result["success"] is False
        assert result["error"].startswith("Invalid webhook payload")


class TestSesEmailService:
    """Test suite for SesEmailService."""

    @pytest.mark.unit
    def test_requires_credentials(self) -> None:
        with pytest.raises(
            ServiceConstructionError,
            match="SES credentials are required for production email service",
        ):
            SesEmailService(SesSettings(region="eu-west-1"))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_send_email(self) -> None:
        result = await _ses().send_welcome_email("buyer@example.com", "Ada")
        assert result.success is True
        assert result.message_id.startswith("ses_")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejected_recipient(self) -> None:
        result = await _ses().send_welcome_email("fail@example.com", "Nope")
        assert result.success is False
