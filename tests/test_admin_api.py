import pytest
from fastapi.testclient import TestClient

from pedidobot import deps
from pedidobot.core.database import get_db
from pedidobot.deps import get_whatsapp_service
from pedidobot.main import app
from pedidobot.models.chat_turn import INCOMING, OUTGOING, ChatTurn
from pedidobot.services.conversation_store import save_turn
from pedidobot.services.users import find_or_create_user
from pedidobot.whatsapp.base import WhatsAppSendResult
from pedidobot.whatsapp.mock_provider import MockWhatsAppProvider
from pedidobot.whatsapp.service import WhatsAppService
from tests.fixtures_data import CUSTOMER_NAME, CUSTOMER_PHONE, build_session


class DownProvider(MockWhatsAppProvider):
    name = "down"

    def send_text(self, **kwargs):
        return WhatsAppSendResult(status="failed", provider=self.name, message_type="text", error="Error WhatsApp 503")


def _client(db, provider=None):
    gateway = WhatsAppService(provider=provider or MockWhatsAppProvider())

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_service] = lambda: gateway
    return TestClient(app)


@pytest.fixture(autouse=True)
def _reset_overrides(monkeypatch):
    monkeypatch.setattr(deps, "ADMIN_API_TOKEN", "")
    yield
    app.dependency_overrides.clear()


def test_health():
    response = _client(build_session(with_catalog=False)).get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "ok"
    assert body["timestamp"]


def test_send_message_requires_phone_and_message():
    client = _client(build_session(with_catalog=False))

    missing_phone = client.post("/api/send-message", json={"message": "hola"})
    blank_message = client.post("/api/send-message", json={"phone": CUSTOMER_PHONE, "message": "   "})

    assert missing_phone.status_code == 400
    assert missing_phone.json() == {"success": False, "error": "phone is required"}
    assert blank_message.status_code == 400
    assert blank_message.json() == {"success": False, "error": "message is required"}


def test_send_message_records_outgoing_turn():
    db = build_session(with_catalog=False)
    provider = MockWhatsAppProvider()
    user = find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)

    response = _client(db, provider).post("/api/send-message", json={"phone": CUSTOMER_PHONE, "message": "Tu pedido va en camino"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["messageId"].startswith("mock-")
    assert provider.outbox[0]["text"]["body"] == "Tu pedido va en camino"
    turn = db.query(ChatTurn).filter(ChatTurn.direction == OUTGOING).one()
    assert turn.user_id == user.id


def test_send_message_failure_is_reported():
    db = build_session(with_catalog=False)

    response = _client(db, DownProvider()).post("/api/send-message", json={"phone": CUSTOMER_PHONE, "message": "hola"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Error WhatsApp 503"}


def test_send_reminder_template_uses_stored_name():
    db = build_session(with_catalog=False)
    provider = MockWhatsAppProvider()
    find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)

    response = _client(db, provider).post("/api/send-reminder-template", json={"phone": CUSTOMER_PHONE})

    assert response.json()["success"] is True
    parameters = provider.outbox[0]["template"]["components"][0]["parameters"]
    assert parameters == [{"type": "text", "text": CUSTOMER_NAME}]


def test_run_reminders_returns_counts():
    db = build_session(with_catalog=False)
    find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)

    response = _client(db).post("/api/reminders/run")

    assert response.json() == {"success": True, "result": {"sent": 0, "errors": 0, "skipped": 0}}


def test_manual_reminder_unknown_user():
    response = _client(build_session(with_catalog=False)).post("/api/reminders/send-manual", json={"userId": 999})

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Usuario 999 no encontrado"}


def test_manual_reminder_without_schedule():
    db = build_session(with_catalog=False)
    user = find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)

    response = _client(db).post("/api/reminders/send-manual", json={"userId": user.id})

    assert response.json() == {"success": False, "message": "Usuario sin configuración válida"}


def test_clear_chat_history():
    db = build_session(with_catalog=False)
    user = find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)
    save_turn(db, user_id=user.id, message="hola", direction=INCOMING)
    save_turn(db, user_id=user.id, message="¡Hola!", direction=OUTGOING)

    response = _client(db).delete(f"/api/chat/{user.id}/clear")

    assert response.json() == {"success": True, "message": "Historial de chat eliminado", "deleted": 2}
    assert db.query(ChatTurn).count() == 0


def test_block_and_unblock_user():
    db = build_session(with_catalog=False)
    user = find_or_create_user(db, CUSTOMER_PHONE, CUSTOMER_NAME)
    client = _client(db)

    blocked = client.post(f"/api/user/{user.id}/block", json={"blocked": True})
    unblocked = client.post(f"/api/user/{user.id}/block", json={"blocked": False})
    missing = client.post("/api/user/999/block", json={"blocked": True})

    assert blocked.json() == {"success": True, "message": "Usuario bloqueado", "userId": user.id, "blocked": True}
    assert unblocked.json()["blocked"] is False
    db.refresh(user)
    assert not user.is_blocked
    assert missing.status_code == 404


def test_admin_token_is_enforced_when_configured(monkeypatch):
    monkeypatch.setattr(deps, "ADMIN_API_TOKEN", "s3cret")
    db = build_session(with_catalog=False)
    client = _client(db)

    denied = client.post("/api/reminders/run")
    allowed = client.post("/api/reminders/run", headers={"X-Admin-Token": "s3cret"})
    health = client.get("/api/health")

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert health.status_code == 200
