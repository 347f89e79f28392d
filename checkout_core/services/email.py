"""
Transactional email providers.

Providers:
- demo: logs messages instead of delivering them
- sendgrid: builds SendGrid v3 mail payloads
- ses: Amazon SES sender

Real transports are out of scope; SendGrid and SES submit to a simulated
transport with realistic latency. Recipients containing ``fail@`` are
rejected so failure paths can be exercised.
"""
import asyncio
import base64
import html
import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

import structlog
from pydantic import BaseModel, Field

from ..config.models import DemoEmailSettings, SendGridSettings, SesSettings
from ..errors import ServiceConstructionError, WebhookError
from ..monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

DEFAULT_FROM_EMAIL = "noreply@kinworkspace.com"


class EmailAttachment(BaseModel):
    filename: str
    content: Union[bytes, str]
    content_type: str


class EmailMessage(BaseModel):
    to: Union[str, List[str]]
    subject: str
    html: str
    text: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    attachments: List[EmailAttachment] = Field(default_factory=list)

    @property
    def recipients(self) -> List[str]:
        return [self.to] if isinstance(self.to, str) else list(self.to)


class EmailResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    delivery_time: Optional[float] = Field(default=None, description="Milliseconds")


@runtime_checkable
class EmailService(Protocol):
    """Contract shared by every email provider."""

    async def send_email(self, message: EmailMessage) -> EmailResult:
        ...

    async def send_order_confirmation(
        self, order_id: str, customer_email: str, order_data: Dict[str, Any]
    ) -> EmailResult:
        ...

    async def send_password_reset(self, email: str, reset_token: str) -> EmailResult:
        ...

    async def send_welcome_email(self, email: str, customer_name: str) -> EmailResult:
        ...

    def is_demo(self) -> bool:
        ...


# Templates


def order_confirmation_message(
    order_id: str, customer_email: str, order_data: Dict[str, Any]
) -> EmailMessage:
    total = order_data.get("total") or "0.00"
    order_date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background: #141414; color: white; padding: 20px; text-align: center;">
          <h1 style="margin: 0;">Kin Workspace</h1>
          <p style="margin: 10px 0 0 0; opacity: 0.8;">Create Calm. Work Better.</p>
        </div>
        <div style="padding: 30px 20px;">
          <h2 style="color: #141414;">Thank you for your order!</h2>
          <p><strong>Order ID:</strong> {html.escape(order_id)}</p>
          <p><strong>Order Date:</strong> {order_date}</p>
          <p><strong>Total:</strong> ${html.escape(str(total))}</p>
        </div>
      </div>
    """
    text = (
        f"Thank you for your order!\n\n"
        f"Order ID: {order_id}\nOrder Date: {order_date}\nTotal: ${total}\n"
    )
    return EmailMessage(
        to=customer_email, subject=f"Order Confirmation - {order_id}", html=body, text=text
    )


def password_reset_message(email: str, reset_url: str) -> EmailMessage:
    body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #141414;">Reset Your Password</h2>
        <p>Click the link below to choose a new password. The link expires in 1 hour.</p>
        <p><a href="{html.escape(reset_url)}">Reset Password</a></p>
        <p style="color: #666; font-size: 14px;">If you did not request this, ignore this email.</p>
      </div>
    """
    text = (
        "Reset Your Password\n\n"
        f"Visit {reset_url} to choose a new password. The link expires in 1 hour.\n"
    )
    return EmailMessage(
        to=email, subject="Reset Your Password - Kin Workspace", html=body, text=text
    )


def welcome_message(email: str, customer_name: str) -> EmailMessage:
    body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #141414;">Welcome to Kin Workspace, {html.escape(customer_name)}!</h2>
        <p>Thoughtfully designed workspace essentials to help you create calm and work better.</p>
      </div>
    """
    text = (
        f"Welcome to Kin Workspace, {customer_name}!\n\n"
        "Thoughtfully designed workspace essentials to help you create calm and work better.\n"
    )
    return EmailMessage(to=email, subject="Welcome to Kin Workspace!", html=body, text=text)


def _message_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


# Providers


class DemoEmailService:
    """Logs emails instead of delivering them."""

    def __init__(
        self,
        settings: Optional[DemoEmailSettings] = None,
        site_url: str = "http://localhost:3000",
    ):
        self.settings = settings or DemoEmailSettings()
        self.site_url = site_url

    def is_demo(self) -> bool:
        return True

    async def send_email(self, message: EmailMessage) -> EmailResult:
        if self.settings.simulate_delay > 0:
            await asyncio.sleep(self.settings.simulate_delay / 1000)

        if self.settings.log_emails:
            logger.info(
                "demo_email_sent",
                to=message.to,
                subject=message.subject,
                from_email=message.from_email or DEFAULT_FROM_EMAIL,
                preview=(message.text or message.html)[:100],
            )

        metrics.record_email("demo", True)
        return EmailResult(
            success=True,
            message_id=_message_id("demo"),
            delivery_time=self.settings.simulate_delay,
        )

    async def send_order_confirmation(
        self, order_id: str, customer_email: str, order_data: Dict[str, Any]
    ) -> EmailResult:
        return await self.send_email(order_confirmation_message(order_id, customer_email, order_data))

    async def send_password_reset(self, email: str, reset_token: str) -> EmailResult:
        reset_url = f"{self.site_url}/reset-password?token={reset_token}"
        return await self.send_email(password_reset_message(email, reset_url))

    async def send_welcome_email(self, email: str, customer_name: str) -> EmailResult:
        return await self.send_email(welcome_message(email, customer_name))


class SendGridEmailService:
    """
    SendGrid provider.

    Builds v3 ``mail/send`` payloads and accepts SendGrid event webhooks.
    """

    def __init__(
        self,
        settings: Optional[SendGridSettings],
        site_url: str = "http://localhost:3000",
        latency: float = 0.5,
    ):
        """
        Initialize SendGrid provider.

        Args:
            settings: API key and sender identity
            site_url: Base URL for links in templates
            latency: Simulated transport latency in seconds

        Raises:
            ServiceConstructionError: If the API key is absent
        """
        if settings is None or not settings.api_key:
            raise ServiceConstructionError(
                "SendGrid API key is required for production email service",
                capability="email",
            )
        self.settings = settings
        self.site_url = site_url
        self.latency = latency

    def is_demo(self) -> bool:
        return False

    def get_sendgrid_api_key(self) -> str:
        return self.settings.api_key

    def get_from_email(self) -> str:
        return self.settings.from_email

    def _has_valid_credentials(self) -> bool:
        return bool(self.settings.api_key and self.settings.from_email)

    def build_payload(self, message: EmailMessage) -> Dict[str, Any]:
        """Translate a message into a SendGrid v3 mail payload."""
        content = [{"type": "text/html", "value": message.html}]
        if message.text:
            content.append({"type": "text/plain", "value": message.text})

        payload: Dict[str, Any] = {
            "personalizations": [
                {
                    "to": [{"email": email} for email in message.recipients],
                    "subject": message.subject,
                }
            ],
            "from": {
                "email": message.from_email or self.settings.from_email,
                "name": self.settings.from_name or "Kin Workspace",
            },
            "content": content,
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        if message.attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(
                        att.content.encode() if isinstance(att.content, str) else att.content
                    ).decode(),
                    "filename": att.filename,
                    "type": att.content_type,
                    "disposition": "attachment",
                }
                for att in message.attachments
            ]
        return payload

    async def _submit(self, payload: Dict[str, Any]) -> EmailResult:
        await asyncio.sleep(self.latency)

        first_recipient = payload["personalizations"][0]["to"][0]["email"]
        if "fail@" in first_recipient:
            return EmailResult(success=False, error="Invalid email address")

        return EmailResult(
            success=True, message_id=_message_id("sg"), delivery_time=self.latency * 1000
        )

    async def send_email(self, message: EmailMessage) -> EmailResult:
        if not self._has_valid_credentials():
            logger.error("sendgrid_invalid_credentials")
            metrics.record_email("sendgrid", False)
            return EmailResult(success=False, error="Invalid SendGrid credentials")

        result = await self._submit(self.build_payload(message))
        metrics.record_email("sendgrid", result.success)
        if result.success:
            logger.info("sendgrid_email_sent", message_id=result.message_id, subject=message.subject)
        else:
            logger.error("sendgrid_email_failed", error=result.error)
        return result

    async def send_order_confirmation(
        self, order_id: str, customer_email: str, order_data: Dict[str, Any]
    ) -> EmailResult:
        return await self.send_email(order_confirmation_message(order_id, customer_email, order_data))

    async def send_password_reset(self, email: str, reset_token: str) -> EmailResult:
        reset_url = f"{self.site_url}/reset-password?token={reset_token}"
        return await self.send_email(password_reset_message(email, reset_url))

    async def send_welcome_email(self, email: str, customer_name: str) -> EmailResult:
        return await self.send_email(welcome_message(email, customer_name))

    async def handle_webhook(
        self, payload: Union[str, bytes, List[Dict[str, Any]], Dict[str, Any]], signature: Optional[str]
    ) -> Dict[str, Any]:
        """
        Process a SendGrid event webhook.

        Args:
            payload: Event list, single event, or raw JSON body
            signature: Signature header value

        Returns:
            Dict[str, Any]: ``{"success": True, "events": [...]}`` or
            ``{"success": False, "error": ...}``
        """
        started = time.monotonic()
        try:
            if not signature:
                raise WebhookError("Missing SendGrid signature")

            if isinstance(payload, (str, bytes)):
                try:
                    payload = json.loads(payload)
                except ValueError as e:
                    raise WebhookError(f"Invalid webhook payload: {str(e)}")

            events = payload if isinstance(payload, list) else [payload]
            if not all(isinstance(event, dict) for event in events):
                raise WebhookError("Invalid webhook payload: expected JSON objects")
        except WebhookError as e:
            logger.error("sendgrid_webhook_rejected", error=str(e))
            metrics.record_webhook_event("sendgrid", "unknown", "failed", time.monotonic() - started)
            return {"success": False, "error": str(e)}

        for event in events:
            event_type = event.get("event")
            if event_type == "delivered":
                logger.info("email_delivered", email=event.get("email"), timestamp=event.get("timestamp"))
            elif event_type == "bounce":
                logger.warning("email_bounced", email=event.get("email"), reason=event.get("reason"))
            elif event_type == "open":
                logger.info("email_opened", email=event.get("email"), timestamp=event.get("timestamp"))
            elif event_type == "click":
                logger.info("email_link_clicked", email=event.get("email"), url=event.get("url"))
            else:
                logger.info("sendgrid_event_unhandled", event_type=event_type)
            metrics.record_webhook_event(
                "sendgrid", str(event_type), "success", time.monotonic() - started
            )

        return {"success": True, "events": events}


class SesEmailService:
    """Amazon SES provider."""

    def __init__(
        self,
        settings: Optional[SesSettings],
        site_url: str = "http://localhost:3000",
        latency: float = 0.5,
    ):
        if settings is None or not all(
            (settings.region, settings.access_key_id, settings.secret_access_key, settings.from_email)
        ):
            raise ServiceConstructionError(
                "SES credentials are required for production email service",
                capability="email",
            )
        self.settings = settings
        self.site_url = site_url
        self.latency = latency

    def is_demo(self) -> bool:
        return False

    async def send_email(self, message: EmailMessage) -> EmailResult:
        await asyncio.sleep(self.latency)

        if any("fail@" in email for email in message.recipients[:1]):
            metrics.record_email("ses", False)
            logger.error("ses_email_failed", error="Invalid email address")
            return EmailResult(success=False, error="Invalid email address")

        message_id = _message_id("ses")
        metrics.record_email("ses", True)
        logger.info(
            "ses_email_sent",
            message_id=message_id,
            region=self.settings.region,
            subject=message.subject,
        )
        return EmailResult(success=True, message_id=message_id, delivery_time=self.latency * 1000)

    async def send_order_confirmation(
        self, order_id: str, customer_email: str, order_data: Dict[str, Any]
    ) -> EmailResult:
        return await self.send_email(order_confirmation_message(order_id, customer_email, order_data))

    async def send_password_reset(self, email: str, reset_token: str) -> EmailResult:
        reset_url = f"{self.site_url}/reset-password?token={reset_token}"
        return await self.send_email(password_reset_message(email, reset_url))

    async def send_welcome_email(self, email: str, customer_name: str) -> EmailResult:
        return await self.send_email(welcome_message(email, customer_name))
