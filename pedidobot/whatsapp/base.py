from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20

SENSITIVE_KEYS = {"access_token", "verify_token", "authorization", "token", "api_key"}


class WhatsAppSendError(RuntimeError):
    pass


@dataclass
class WhatsAppSendResult:
    status: str
    provider: str
    message_type: str
    provider_message_id: str | None = None
    error: str | None = None
    payload: dict[str, Any] | None = None
    response_payload: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"

    def raise_for_status(self) -> None:
        if not self.ok:
            raise WhatsAppSendError(self.error or "WhatsApp send failed")


class WhatsAppProvider(Protocol):
    name: str

    def send_text(self, *, to_phone: str, text: str) -> WhatsAppSendResult:
        ...

    def send_buttons(self, *, to_phone: str, text: str, buttons: list[str]) -> WhatsAppSendResult:
        ...

    def send_template(
        self,
        *,
        to_phone: str,
        template_name: str,
        language: str,
        parameters: list[str],
    ) -> WhatsAppSendResult:
        ...

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        ...


def text_payload(to_phone: str, text: str) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "to": to_phone,
        "type": "text",
        "text": {"preview_url": False, "body": text},
    }


def buttons_payload(to_phone: str, text: str, buttons: list[str]) -> dict[str, Any]:
    """Interactive reply-button message.

    The button id carries the full label so a tap is read back as the same
    text even when the visible title had to be cut to the API limit.
    """
    if not buttons:
        raise ValueError("buttons must not be empty")
    if len(buttons) > MAX_BUTTONS:
        raise ValueError(f"at most {MAX_BUTTONS} buttons are allowed")
    return {
        "messaging_product": "whatsapp",
        "to": to_phone,
        "type": "interactive",
        "interactive": {
            "type": "button",
            "body": {"text": text},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": label, "title": label[:MAX_BUTTON_TITLE]}}
                    for label in buttons
                ]
            },
        },
    }


def template_payload(to_phone: str, template_name: str, language: str, parameters: list[str]) -> dict[str, Any]:
    template: dict[str, Any] = {"name": template_name, "language": {"code": language}}
    if parameters:
        template["components"] = [
            {"type": "body", "parameters": [{"type": "text", "text": str(value)} for value in parameters]}
        ]
    return {
        "messaging_product": "whatsapp",
        "to": to_phone,
        "type": "template",
        "template": template,
    }


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize_value(key, inner) for key, inner in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    def _sanitize_value(key: str, value: Any) -> Any:
        if key.lower() in SENSITIVE_KEYS:
            return _mask_value(value)
        return _sanitize(value)

    return _sanitize(payload)


def safe_json(payload: dict[str, Any]) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return "{}"
