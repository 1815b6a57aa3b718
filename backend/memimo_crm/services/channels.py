# Overview: Outbound delivery channels for campaign messages.

"""
Campaign Delivery Channels

Every channel exposes the same contract:

    send(customer, message) -> DeliveryOutcome
    status() -> ChannelStatus

send() never raises for a per-recipient problem. Missing contact data,
provider rejections and transport errors are raised internally as
RecipientSendFailed, caught here and reported as a failed outcome, so the
dispatcher can keep going with the next customer. Any other exception
raised while sending is logged with its traceback and reported the same
way. ensure_configured()
raises ChannelNotConfigured and is meant to be called once, before any
campaign data is written.

CHANNELS:
- email      Resend HTTP API (POST /emails)
- telegram   Telegram Bot API (POST /bot<token>/sendMessage)
- anything else: SimulatedChannel, which never touches the network

NOTE: TelegramChannel delivers every message to the single configured
TELEGRAM_CHAT_ID. Customers carry no Telegram chat id, so "one message per
customer" means one message per customer into that shared chat.
"""

from __future__ import annotations

import html
import logging
import time
from dataclasses import dataclass, field
from string import Template
from typing import Callable

import httpx

from ..errors import ChannelNotConfigured, RecipientSendFailed
from ..models import Customer


logger = logging.getLogger(__name__)


NO_EMAIL_REASON = "no email on file"

EMAIL_SUBJECT_TEMPLATE = "🍦 {name} - Heladería Memimo"

EMAIL_HTML_TEMPLATE = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: linear-gradient(135deg, #f22121, #ff4444); color: white;
              padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background: #ffffff; padding: 30px; border: 2px solid #f0f0f0;
               border-radius: 0 0 10px 10px; }
    .button { display: inline-block; padding: 12px 30px; background: #f22121;
              color: white !important; text-decoration: none; border-radius: 8px;
              margin: 20px 0; font-weight: bold; }
    .footer { text-align: center; margin-top: 30px; padding: 20px; color: #999; font-size: 12px; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>🍦 Heladería Memimo</h1>
      <p>$campaign_name</p>
    </div>
    <div class="content">
      <h2>¡Hola $first_name! 👋</h2>
      $body
      $contact_button
    </div>
    <div class="footer">
      <p>Heladería Memimo - Huancayo, Perú</p>
      <p>Este correo fue enviado porque eres parte de nuestra familia Memimo 💕</p>
      <p style="font-size: 10px; color: #ccc;">
        Si no deseas recibir más correos, responde con "BAJA" a este email.
      </p>
    </div>
  </div>
</body>
</html>
""")

WHATSAPP_BUTTON_TEMPLATE = Template(
    '<div style="text-align: center;">'
    '<a href="https://wa.me/51$phone" class="button">💬 Contáctanos por WhatsApp</a>'
    '</div>'
)

TELEGRAM_TEMPLATE = "<b>¡Hola {first_name}! 🍦</b>\n\n{body}\n\n<i>- Heladería Memimo Huancayo</i>"


@dataclass
class DeliveryOutcome:
    """Result of one send attempt for one customer."""
    customer_id: int
    customer_name: str
    success: bool
    channel: str
    destination: str | None = None
    error: str | None = None
    simulated: bool = False

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "success": self.success,
            "channel": self.channel,
            "destination": self.destination,
            "error": self.error,
            "simulated": self.simulated,
        }


@dataclass
class ChannelStatus:
    channel: str
    configured: bool
    real: bool
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "configured": self.configured,
            "real": self.real,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class Channel:
    """
    Base class for campaign delivery channels.

    Subclasses implement deliver(), which returns the destination on
    success and raises RecipientSendFailed otherwise.
    """

    name = "channel"
    real = False
    # Real providers are rate limited; the dispatcher spaces their sends
    throttled = False

    def status(self) -> ChannelStatus:
        raise NotImplementedError

    def ensure_configured(self) -> None:
        status = self.status()
        if not status.configured:
            raise ChannelNotConfigured(f"{self.name}: {status.message}")

    def deliver(self, customer: Customer, message: str) -> str | None:
        raise NotImplementedError

    def send(self, customer: Customer, message: str) -> DeliveryOutcome:
        outcome = DeliveryOutcome(
            customer_id=customer.id,
            customer_name=customer.full_name,
            success=False,
            channel=self.name,
            simulated=not self.real,
        )
        try:
            outcome.destination = self.deliver(customer, message)
        except RecipientSendFailed as e:
            outcome.error = e.message
            return outcome
        except Exception as e:
            logger.exception("Unexpected %s send failure for customer %s", self.name, customer.id)
            outcome.error = str(e) or type(e).__name__
            return outcome
        outcome.success = True
        return outcome

    def finish_batch(self) -> None:
        """Called once after the last send of a dispatch."""

    def close(self) -> None:
        """Release any transport owned by the channel."""


class _HTTPChannel(Channel):
    """Shared httpx plumbing for the real providers."""

    real = True
    throttled = True

    def __init__(self, http_client: httpx.Client | None = None, timeout: float | None = None):
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            # timeout=None: a hung provider call blocks this send indefinitely
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _post_json(self, url: str, payload: dict, headers: dict | None = None) -> httpx.Response:
        try:
            return self.client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise RecipientSendFailed(f"Network error: {e}")

    @staticmethod
    def _json_body(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None


class EmailChannel(_HTTPChannel):
    """Resend-backed email delivery."""

    name = "email"

    def __init__(
        self,
        api_key: str | None,
        campaign_name: str,
        api_url: str = "https://api.resend.com/emails",
        from_email: str = "onboarding@resend.dev",
        sender_name: str = "Heladería Memimo",
        http_client: httpx.Client | None = None,
        timeout: float | None = None,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.api_key = api_key
        self.api_url = api_url
        self.from_email = from_email
        self.sender_name = sender_name
        self.campaign_name = campaign_name

    @property
    def subject(self) -> str:
        return EMAIL_SUBJECT_TEMPLATE.format(name=self.campaign_name)

    def status(self) -> ChannelStatus:
        if not self.api_key:
            return ChannelStatus(self.name, False, True, "RESEND_API_KEY is not configured")
        return ChannelStatus(self.name, True, True, "Configured", {"from": self.from_email})

    def render(self, customer: Customer, message: str) -> str:
        body = html.escape(message, quote=False).replace("\n", "<br>")
        button = ""
        if customer.phone:
            digits = "".join(ch for ch in customer.phone if ch.isdigit())
            if digits:
                button = WHATSAPP_BUTTON_TEMPLATE.substitute(phone=digits)
        return EMAIL_HTML_TEMPLATE.substitute(
            campaign_name=html.escape(self.campaign_name),
            first_name=html.escape(customer.first_name or ""),
            body=body,
            contact_button=button,
        )

    def deliver(self, customer: Customer, message: str) -> str | None:
        email = (customer.email or "").strip()
        if not email:
            raise RecipientSendFailed(NO_EMAIL_REASON)

        response = self._post_json(
            self.api_url,
            {
                "from": f"{self.sender_name} <{self.from_email}>",
                "to": [email],
                "subject": self.subject,
                "html": self.render(customer, message),
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

        if not response.is_success:
            data = self._json_body(response)
            reason = data.get("message") or f"Email provider returned HTTP {response.status_code}"
            raise RecipientSendFailed(reason)

        return email


class TelegramChannel(_HTTPChannel):
    """Telegram bot delivery into the configured chat."""

    name = "telegram"

    def __init__(
        self,
        bot_token: str | None,
        chat_id: str | None,
        api_url: str = "https://api.telegram.org",
        http_client: httpx.Client | None = None,
        timeout: float | None = None,
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")

    def _method_url(self, method: str) -> str:
        return f"{self.api_url}/bot{self.bot_token}/{method}"

    def status(self) -> ChannelStatus:
        if not self.bot_token:
            return ChannelStatus(self.name, False, True, "TELEGRAM_BOT_TOKEN is not configured")
        if not self.chat_id:
            return ChannelStatus(self.name, False, True, "TELEGRAM_CHAT_ID is not configured")
        return ChannelStatus(self.name, True, True, "Configured", {"chat_id": str(self.chat_id)})

    def verify_bot(self) -> ChannelStatus:
        """
        Ask the Bot API who we are (getMe).

        Unlike status(), this makes a network call.
        """
        status = self.status()
        if not self.bot_token:
            return status
        try:
            response = self.client.get(self._method_url("getMe"))
        except httpx.HTTPError as e:
            return ChannelStatus(self.name, False, True, f"Network error: {e}")
        data = self._json_body(response)
        if not data.get("ok"):
            return ChannelStatus(self.name, False, True, "Invalid bot token")
        bot = data.get("result") or {}
        return ChannelStatus(self.name, status.configured, True, "Bot reachable", {"bot": bot.get("username")})

    def render(self, customer: Customer, message: str) -> str:
        return TELEGRAM_TEMPLATE.format(
            first_name=html.escape(customer.first_name or ""),
            body=html.escape(message, quote=False),
        )

    def deliver(self, customer: Customer, message: str) -> str | None:
        response = self._post_json(
            self._method_url("sendMessage"),
            {
                "chat_id": self.chat_id,
                "text": self.render(customer, message),
                "parse_mode": "HTML",
            },
        )
        data = self._json_body(response)
        if not data.get("ok"):
            reason = data.get("description") or f"Telegram returned HTTP {response.status_code}"
            raise RecipientSendFailed(reason)
        return str(self.chat_id)


class SimulatedChannel(Channel):
    """
    Demo delivery for channels without a provider integration.

    Every recipient succeeds immediately; the batch ends with a single
    settle pause so the operator sees the simulated run.
    """

    def __init__(self, name: str, pause_seconds: float = 3.0, sleep: Callable[[float], None] = time.sleep):
        self.name = name
        self.pause_seconds = pause_seconds or 0.0
        self._sleep = sleep

    def status(self) -> ChannelStatus:
        return ChannelStatus(self.name, True, False, "Simulated delivery (no messages are sent)")

    def deliver(self, customer: Customer, message: str) -> str | None:
        return None

    def finish_batch(self) -> None:
        if self.pause_seconds > 0:
            self._sleep(self.pause_seconds)


def build_channel(
    name: str,
    config: dict,
    campaign_name: str = "",
    http_client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Channel:
    """Pick the channel implementation for a campaign's channel value."""
    timeout = config.get("CHANNEL_HTTP_TIMEOUT_SECONDS")

    if name == "email":
        return EmailChannel(
            api_key=config.get("RESEND_API_KEY"),
            campaign_name=campaign_name,
            api_url=config.get("RESEND_API_URL") or "https://api.resend.com/emails",
            from_email=config.get("EMAIL_FROM") or "onboarding@resend.dev",
            sender_name=config.get("EMAIL_SENDER_NAME") or "Heladería Memimo",
            http_client=http_client,
            timeout=timeout,
        )

    if name == "telegram":
        return TelegramChannel(
            bot_token=config.get("TELEGRAM_BOT_TOKEN"),
            chat_id=config.get("TELEGRAM_CHAT_ID"),
            api_url=config.get("TELEGRAM_API_URL") or "https://api.telegram.org",
            http_client=http_client,
            timeout=timeout,
        )

    return SimulatedChannel(
        name=name,
        pause_seconds=config.get("SIMULATED_CHANNEL_PAUSE_SECONDS", 3.0),
        sleep=sleep,
    )
