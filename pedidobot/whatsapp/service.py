from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pedidobot.core.config import IS_DEV, WHATSAPP_PROVIDER
from pedidobot.models.chat_turn import OUTGOING
from pedidobot.services.conversation_store import save_turn
from pedidobot.whatsapp.base import WhatsAppProvider, WhatsAppSendResult, sanitize_payload
from pedidobot.whatsapp.cloud_provider import CloudWhatsAppProvider
from pedidobot.whatsapp.mock_provider import MockWhatsAppProvider
from pedidobot.whatsapp.templates import get_template

logger = logging.getLogger(__name__)


class WhatsAppService:
    """Outbound messaging gateway.

    Every send made on behalf of a known user is stored as an outgoing chat
    turn, with buttons or template data in the raw payload.
    """

    def __init__(self, provider: WhatsAppProvider | None = None) -> None:
        self._mock_provider = MockWhatsAppProvider()
        self._cloud_provider = CloudWhatsAppProvider()
        self._provider = provider

    @property
    def provider(self) -> WhatsAppProvider:
        return self._select_provider()

    def _select_provider(self) -> WhatsAppProvider:
        if self._provider is not None:
            return self._provider
        if WHATSAPP_PROVIDER == "cloud" and self._cloud_provider.is_configured:
            return self._cloud_provider
        if WHATSAPP_PROVIDER == "cloud" and not IS_DEV:
            return self._cloud_provider
        return self._mock_provider

    def _should_fallback(self) -> bool:
        return IS_DEV

    def _record(
        self,
        db: Session,
        *,
        user_id: int | None,
        text: str,
        result: WhatsAppSendResult,
        extra: dict[str, Any] | None = None,
    ) -> None:
        if not result.ok:
            logger.warning("whatsapp message not delivered: %s", result.error, extra={"provider": result.provider})
        if user_id is None:
            return
        raw_payload = {
            "type": result.message_type,
            "status": result.status,
            "provider": result.provider,
            "provider_message_id": result.provider_message_id,
            **(extra or {}),
        }
        if result.error:
            raw_payload["error"] = result.error
        try:
            save_turn(db, user_id=user_id, message=text, direction=OUTGOING, raw_payload=sanitize_payload(raw_payload))
        except SQLAlchemyError:
            db.rollback()
            logger.exception("failed to store outgoing turn user_id=%s", user_id)

    def send_text(self, db: Session, *, to_phone: str, text: str, user_id: int | None = None) -> WhatsAppSendResult:
        provider = self._select_provider()
        result = provider.send_text(to_phone=to_phone, text=text)
        if not result.ok and provider is self._cloud_provider and self._should_fallback():
            logger.warning("WhatsApp Cloud failed, using mock")
            result = self._mock_provider.send_text(to_phone=to_phone, text=text)
        self._record(db, user_id=user_id, text=text, result=result)
        return result

    def send_buttons(
        self,
        db: Session,
        *,
        to_phone: str,
        text: str,
        buttons: list[str],
        user_id: int | None = None,
    ) -> WhatsAppSendResult:
        provider = self._select_provider()
        result = provider.send_buttons(to_phone=to_phone, text=text, buttons=buttons)
        if not result.ok and provider is self._cloud_provider and self._should_fallback():
            logger.warning("WhatsApp Cloud failed, using mock")
            result = self._mock_provider.send_buttons(to_phone=to_phone, text=text, buttons=buttons)
        self._record(db, user_id=user_id, text=text, result=result, extra={"buttons": list(buttons)})
        return result

    def send_template(
        self,
        db: Session,
        *,
        to_phone: str,
        template_name: str,
        variables: dict[str, Any],
        user_id: int | None = None,
    ) -> WhatsAppSendResult:
        template = get_template(template_name)
        parameters = template.ordered_parameters(variables)
        provider = self._select_provider()
        result = provider.send_template(
            to_phone=to_phone,
            template_name=template.name,
            language=template.language,
            parameters=parameters,
        )
        if not result.ok and provider is self._cloud_provider and self._should_fallback():
            logger.warning("WhatsApp Cloud failed, using mock")
            result = self._mock_provider.send_template(
                to_phone=to_phone,
                template_name=template.name,
                language=template.language,
                parameters=parameters,
            )
        self._record(
            db,
            user_id=user_id,
            text=template.render(variables),
            result=result,
            extra={"template": template.name, "variables": dict(variables)},
        )
        return result
