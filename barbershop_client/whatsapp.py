"""WhatsApp Business messaging for booking notifications.

Messages go through the Graph API when the integration is configured. When
it is not, or the API call fails and ``use_direct_link`` is set, callers get
a ``wa.me`` link back so the message can be sent by hand.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests

from .models.validation import ValidationResult

logger = logging.getLogger(__name__)

COUNTRY_CODE = "55"
_PLACEHOLDER_PREFIX = "YOUR_"

DEFAULT_TEMPLATES = {
    "hello_world": "hello_world",
    "booking_confirmed": "agendamento_confirmado",
    "booking_reminder": "lembrete_agendamento",
    "booking_cancelled": "agendamento_cancelado",
}


@dataclass
class WhatsAppConfig:
    access_token: str | None = None
    phone_number_id: str | None = None
    api_version: str = "v21.0"
    base_url: str = "https://graph.facebook.com"
    webhook_url: str | None = None
    language_code: str = "pt_BR"
    use_direct_link: bool = True
    timeout_s: float = 12.0
    templates: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TEMPLATES))


@dataclass
class SendResult:
    sent: bool
    fallback_url: str | None = None


def _unset(value: str | None) -> bool:
    return not value or value.startswith(_PLACEHOLDER_PREFIX)


def validate_config(config: WhatsAppConfig) -> ValidationResult:
    result = ValidationResult()
    if _unset(config.access_token):
        result.errors.append("WHATSAPP_ACCESS_TOKEN is not configured")
    if _unset(config.phone_number_id):
        result.errors.append("WHATSAPP_PHONE_NUMBER_ID is not configured")
    if _unset(config.webhook_url):
        result.warnings.append("Webhook is not configured (optional)")
    return result


def format_phone_number(phone: str) -> str:
    """Normalize a Brazilian phone number to international digits.

    Example:
        >>> format_phone_number("(11) 99999-8888")
        '5511999998888'
    """
    digits = re.sub(r"[^0-9]", "", phone or "")
    if digits.startswith(COUNTRY_CODE) and len(digits) >= 12:
        return digits
    if len(digits) in (10, 11):
        return f"{COUNTRY_CODE}{digits}"
    return digits


def direct_link(phone: str, message: str) -> str:
    digits = re.sub(r"[^0-9]", "", phone or "")
    if not digits.startswith(COUNTRY_CODE):
        digits = f"{COUNTRY_CODE}{digits}"
    return f"https://wa.me/{digits}?text={quote(message)}"


# Message builders


def booking_request_message(
    barber: dict[str, Any], client: dict[str, Any], date: str, time: str
) -> str:
    service = barber.get("especialidade") or "Corte e barba"
    return (
        f"Olá {barber.get('nome', '')}! 👋\n\n"
        f"Sou {client.get('nome', '')} e gostaria de agendar um horário.\n\n"
        f"📅 Data: {date}\n"
        f"🕐 Horário: {time}\n"
        f"💰 Serviço: {service}\n\n"
        "Aguardo confirmação. Obrigado! 🙏"
    )


def confirmation_message(
    client: dict[str, Any], date: str, time: str, barber_name: str
) -> str:
    return (
        f"Olá {client.get('nome', '')}! 👋\n\n"
        "Seu agendamento foi confirmado! ✅\n\n"
        f"👨‍💼 Barbeiro: {barber_name}\n"
        f"📅 Data: {date}\n"
        f"🕐 Horário: {time}\n\n"
        "Nos vemos em breve! 💪"
    )


def cancellation_message(
    client: dict[str, Any], date: str, time: str, reason: str = ""
) -> str:
    text = (
        f"Olá {client.get('nome', '')}! 👋\n\n"
        "Infelizmente precisamos cancelar seu agendamento:\n\n"
        f"📅 Data: {date}\n"
        f"🕐 Horário: {time}"
    )
    if reason:
        text += f"\n\n❗ Motivo: {reason}"
    text += (
        "\n\nPor favor, reagende quando for conveniente. "
        "Obrigado pela compreensão! 🙏"
    )
    return text


def reminder_message(
    client: dict[str, Any], date: str, time: str, barber_name: str
) -> str:
    return (
        f"Olá {client.get('nome', '')}! 👋\n\n"
        "🔔 Lembrete do seu agendamento:\n\n"
        f"👨‍💼 Barbeiro: {barber_name}\n"
        f"📅 Data: {date}\n"
        f"🕐 Horário: {time}\n\n"
        "Te esperamos! 💪"
    )


class WhatsAppClient:
    def __init__(self, config: WhatsAppConfig) -> None:
        self.config = config
        self.validation = validate_config(config)
        if not self.validation.is_valid:
            logger.info("WhatsApp API not configured: %s", "; ".join(self.validation.errors))

    def is_configured(self) -> bool:
        return self.validation.is_valid

    def config_status(self) -> dict[str, object]:
        """Configuration summary without credentials."""
        return {
            "configured": self.validation.is_valid,
            "errors": list(self.validation.errors),
            "warnings": list(self.validation.warnings),
            "version": self.config.api_version,
            "fallback_enabled": self.config.use_direct_link,
        }

    def _messages_url(self) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/{self.config.api_version}/{self.config.phone_number_id}/messages"

    def _post(self, payload: dict[str, Any]) -> None:
        headers = {
            "Authorization": f"Bearer {self.config.access_token}",
            "Content-Type": "application/json",
        }
        resp = requests.post(
            self._messages_url(),
            json=payload,
            headers=headers,
            timeout=self.config.timeout_s,
        )
        if not resp.ok:
            snippet = resp.text[:300].replace("\n", " ")
            raise RuntimeError(f"WhatsApp HTTP {resp.status_code}: {snippet}")

    def _fallback(self, to: str, message: str) -> SendResult:
        if not self.config.use_direct_link:
            return SendResult(sent=False)
        return SendResult(sent=False, fallback_url=direct_link(to, message))

    async def send_text_message(self, to: str, message: str) -> SendResult:
        if not self.is_configured():
            return self._fallback(to, message)
        payload = {
            "messaging_product": "whatsapp",
            "to": format_phone_number(to),
            "type": "text",
            "text": {"body": message},
        }
        try:
            await asyncio.to_thread(self._post, payload)
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("WhatsApp text message failed: %s", e)
            return self._fallback(to, message)
        logger.debug("WhatsApp text message sent to %s", payload["to"])
        return SendResult(sent=True)

    async def send_template_message(
        self, to: str, template_name: str, parameters: list[str] | None = None
    ) -> SendResult:
        if not self.is_configured():
            return self._fallback(to, f"Template: {template_name}")
        template: dict[str, Any] = {
            "name": self.config.templates.get(template_name, template_name),
            "language": {"code": self.config.language_code},
        }
        if parameters:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": p} for p in parameters],
                }
            ]
        payload = {
            "messaging_product": "whatsapp",
            "to": format_phone_number(to),
            "type": "template",
            "template": template,
        }
        try:
            await asyncio.to_thread(self._post, payload)
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("WhatsApp template %s failed: %s", template_name, e)
            return SendResult(sent=False)
        return SendResult(sent=True)
