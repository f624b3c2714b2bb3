from __future__ import annotations

import uuid
from typing import Any, Iterable

from pedidobot.whatsapp.base import WhatsAppSendResult, buttons_payload, template_payload, text_payload


class MockWhatsAppProvider:
    """Keeps every outbound payload in ``outbox`` instead of calling the network."""

    name = "mock"

    def __init__(self) -> None:
        self.outbox: list[dict[str, Any]] = []

    def send_text(self, *, to_phone: str, text: str) -> WhatsAppSendResult:
        return self._record(text_payload(to_phone, text), message_type="text")

    def send_buttons(self, *, to_phone: str, text: str, buttons: list[str]) -> WhatsAppSendResult:
        return self._record(buttons_payload(to_phone, text, buttons), message_type="interactive")

    def send_template(
        self,
        *,
        to_phone: str,
        template_name: str,
        language: str,
        parameters: list[str],
    ) -> WhatsAppSendResult:
        payload = template_payload(to_phone, template_name, language, parameters)
        return self._record(payload, message_type="template")

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        message = payload.get("message") or {}
        if not message:
            return []
        return [
            {
                "message_id": message.get("id") or f"mock-{uuid.uuid4().hex[:8]}",
                "from_number": message.get("from"),
                "text": (message.get("text") or "").strip(),
                "message_type": message.get("type", "text"),
                "contact_name": message.get("contact_name"),
                "raw": message,
            }
        ]

    def clear(self) -> None:
        self.outbox.clear()

    def _record(self, payload: dict[str, Any], *, message_type: str) -> WhatsAppSendResult:
        self.outbox.append(payload)
        return WhatsAppSendResult(
            status="sent",
            provider=self.name,
            message_type=message_type,
            provider_message_id=f"mock-{uuid.uuid4().hex[:10]}",
            payload=payload,
        )
