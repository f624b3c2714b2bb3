from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable

import httpx

from pedidobot.core.config import META_API_VERSION, META_WA_ACCESS_TOKEN, META_WA_PHONE_NUMBER_ID
from pedidobot.whatsapp.base import (
    WhatsAppSendResult,
    buttons_payload,
    safe_json,
    sanitize_payload,
    template_payload,
    text_payload,
)

logger = logging.getLogger(__name__)


def _message_text(msg: dict[str, Any]) -> tuple[str, str]:
    msg_type = msg.get("type") or "text"
    if msg_type == "text":
        return msg_type, ((msg.get("text") or {}).get("body")) or ""
    if msg_type == "interactive":
        interactive = msg.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return msg_type, reply.get("id") or reply.get("title") or ""
    if msg_type == "button":
        button = msg.get("button") or {}
        return msg_type, button.get("text") or button.get("payload") or ""
    return msg_type, ""


def parse_cloud_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Flatten a Cloud API webhook into one dict per inbound message.

    Status callbacks and messages without id or sender are skipped.
    """
    messages: list[dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            phone_number_id = metadata.get("phone_number_id")

            contacts = value.get("contacts") or []
            contact_name = None
            if contacts:
                contact_name = ((contacts[0].get("profile") or {}).get("name")) or None

            for msg in value.get("messages", []) or []:
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                msg_type, text = _message_text(msg)
                messages.append(
                    {
                        "message_id": message_id,
                        "from_number": from_number,
                        "text": text.strip(),
                        "message_type": msg_type,
                        "phone_number_id": phone_number_id,
                        "contact_name": contact_name,
                        "raw": msg,
                    }
                )
    return messages


class CloudWhatsAppProvider:
    name = "cloud"
    MAX_RETRIES = 3
    RETRY_DELAY_SECONDS = 0.5

    def __init__(
        self,
        *,
        access_token: str = META_WA_ACCESS_TOKEN,
        phone_number_id: str = META_WA_PHONE_NUMBER_ID,
        api_version: str = META_API_VERSION,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def send_text(self, *, to_phone: str, text: str) -> WhatsAppSendResult:
        return self._send(text_payload(to_phone, text), message_type="text")

    def send_buttons(self, *, to_phone: str, text: str, buttons: list[str]) -> WhatsAppSendResult:
        return self._send(buttons_payload(to_phone, text, buttons), message_type="interactive")

    def send_template(
        self,
        *,
        to_phone: str,
        template_name: str,
        language: str,
        parameters: list[str],
    ) -> WhatsAppSendResult:
        payload = template_payload(to_phone, template_name, language, parameters)
        return self._send(payload, message_type="template")

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        return parse_cloud_webhook(payload)

    def _send(self, payload: dict[str, Any], *, message_type: str) -> WhatsAppSendResult:
        if not self.is_configured:
            return WhatsAppSendResult(
                status="failed",
                provider=self.name,
                message_type=message_type,
                error="Credenciales de WhatsApp Cloud incompletas",
                payload=payload,
            )

        url = f"https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}

        last_error: str | None = None
        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                with httpx.Client(timeout=20.0, transport=self._transport) as client:
                    response = client.post(url, headers=headers, json=payload)

                body_text = response.text
                if 200 <= response.status_code < 300:
                    provider_id = None
                    try:
                        data = response.json()
                        provider_id = (data.get("messages") or [{}])[0].get("id")
                    except json.JSONDecodeError:
                        data = {"raw": body_text}
                    return WhatsAppSendResult(
                        status="sent",
                        provider=self.name,
                        message_type=message_type,
                        provider_message_id=provider_id,
                        payload=payload,
                        response_payload=data,
                    )

                last_error = f"Error WhatsApp {response.status_code}: {body_text}"
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    break
            except httpx.HTTPError as exc:
                last_error = str(exc)

            logger.warning(
                "whatsapp send attempt %s/%s failed: %s", attempt, self.MAX_RETRIES, last_error, extra={"provider": self.name}
            )
            if attempt < self.MAX_RETRIES:
                time.sleep(self.RETRY_DELAY_SECONDS * attempt)

        logger.error(
            "whatsapp send failed payload=%s", safe_json(sanitize_payload(payload)), extra={"provider": self.name}
        )
        return WhatsAppSendResult(
            status="failed",
            provider=self.name,
            message_type=message_type,
            error=last_error,
            payload=payload,
        )
