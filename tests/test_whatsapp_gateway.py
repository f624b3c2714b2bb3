import json

import httpx
import pytest

from pedidobot.models.chat_turn import OUTGOING, ChatTurn
from pedidobot.services.users import find_or_create_user
from pedidobot.whatsapp.base import MAX_BUTTON_TITLE, WhatsAppSendError, buttons_payload, sanitize_payload
from pedidobot.whatsapp.cloud_provider import CloudWhatsAppProvider
from pedidobot.whatsapp.mock_provider import MockWhatsAppProvider
from pedidobot.whatsapp.service import WhatsAppService
from pedidobot.whatsapp.templates import TemplateNotFoundError, get_template
from tests.fixtures_data import CUSTOMER_NAME, CUSTOMER_PHONE, build_session


def _cloud(handler):
    provider = CloudWhatsAppProvider(
        access_token="token-abcdef",
        phone_number_id="1234567890",
        api_version="v20.0",
        transport=httpx.MockTransport(handler),
    )
    provider.RETRY_DELAY_SECONDS = 0
    return provider


def test_cloud_provider_posts_text_payload():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.out.1"}]})

    result = _cloud(handler).send_text(to_phone=CUSTOMER_PHONE, text="hola")

    assert result.ok
    assert result.provider_message_id == "wamid.out.1"
    request = seen[0]
    assert str(request.url) == "https://graph.facebook.com/v20.0/1234567890/messages"
    assert request.headers["Authorization"] == "Bearer token-abcdef"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "to": CUSTOMER_PHONE,
        "type": "text",
        "text": {"preview_url": False, "body": "hola"},
    }


def test_cloud_provider_retries_server_errors():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(500, text="upstream")
        return httpx.Response(200, json={"messages": [{"id": "wamid.out.2"}]})

    result = _cloud(handler).send_buttons(to_phone=CUSTOMER_PHONE, text="¿Qué quieres hacer?", buttons=["✅ Confirmar"])

    assert result.ok
    assert len(attempts) == 3


def test_cloud_provider_does_not_retry_client_errors():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(400, json={"error": {"message": "invalid recipient"}})

    result = _cloud(handler).send_text(to_phone="123", text="hola")

    assert result.status == "failed"
    assert len(attempts) == 1
    assert "400" in result.error
    with pytest.raises(WhatsAppSendError):
        result.raise_for_status()


def test_cloud_provider_without_credentials_fails_fast():
    provider = CloudWhatsAppProvider(access_token="", phone_number_id="")

    result = provider.send_text(to_phone=CUSTOMER_PHONE, text="hola")

    assert not provider.is_configured
    assert result.status == "failed"
    assert result.error == "Credenciales de WhatsApp Cloud incompletas"


def test_buttons_payload_limits():
    payload = buttons_payload(CUSTOMER_PHONE, "Elige", ["👨🏻‍💻 Soporte", "🔄 Intentar de nuevo y algo más"])

    buttons = payload["interactive"]["action"]["buttons"]
    assert buttons[1]["reply"]["id"] == "🔄 Intentar de nuevo y algo más"
    assert len(buttons[1]["reply"]["title"]) == MAX_BUTTON_TITLE

    with pytest.raises(ValueError):
        buttons_payload(CUSTOMER_PHONE, "Elige", [])
    with pytest.raises(ValueError):
        buttons_payload(CUSTOMER_PHONE, "Elige", ["a", "b", "c", "d"])


def test_sanitize_payload_masks_secrets():
    payload = {"access_token": "abcdefgh", "nested": [{"token": "xyz"}], "to": CUSTOMER_PHONE}

    assert sanitize_payload(payload) == {
        "access_token": "****efgh",
        "nested": [{"token": "****"}],
        "to": CUSTOMER_PHONE,
    }


def test_service_records_outgoing_turns():
    db = build_session(with_catalog=False)
    user = find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)
    service = WhatsAppService(provider=MockWhatsAppProvider())

    service.send_text(db, to_phone=user.phone, text="hola", user_id=user.id)
    service.send_buttons(db, to_phone=user.phone, text="¿Qué quieres hacer?", buttons=["✅ Confirmar"], user_id=user.id)
    service.send_text(db, to_phone="5219999999999", text="sin usuario")

    turns = db.query(ChatTurn).filter(ChatTurn.direction == OUTGOING).order_by(ChatTurn.id).all()
    assert [turn.message for turn in turns] == ["hola", "¿Qué quieres hacer?"]
    assert turns[0].raw_payload["type"] == "text"
    assert turns[1].raw_payload["buttons"] == ["✅ Confirmar"]
    assert turns[1].raw_payload["status"] == "sent"


def test_templates_render_and_order_parameters():
    template = get_template("pedido_confirmado")

    assert template.ordered_parameters({"orderNumber": 17, "userName": "Ana"}) == ["Ana", "17"]
    assert "#17" in template.render({"userName": "Ana", "orderNumber": 17})
    with pytest.raises(TemplateNotFoundError):
        get_template("inexistente")
