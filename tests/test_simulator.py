import itertools

from fastapi import FastAPI
from fastapi.testclient import TestClient

from pedidobot.ai.mock_provider import MockCompletionProvider
from pedidobot.bot.orchestrator import ConversationOrchestrator
from pedidobot.bot.session import DedupCache, SessionStore
from pedidobot.core.database import get_db
from pedidobot.deps import get_orchestrator
from pedidobot.routers import simulator
from pedidobot.whatsapp.mock_provider import MockWhatsAppProvider
from pedidobot.whatsapp.service import WhatsAppService
from tests.fixtures_data import CUSTOMER_PHONE, build_session


def _client():
    db = build_session()
    ticks = itertools.count(start=0, step=60)
    orchestrator = ConversationOrchestrator(
        gateway=WhatsAppService(provider=MockWhatsAppProvider()),
        provider=MockCompletionProvider(),
        sessions=SessionStore(),
        dedup=DedupCache(clock=lambda: next(ticks)),
    )
    app = FastAPI()
    app.include_router(simulator.router)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)


def test_simulated_conversation(monkeypatch):
    monkeypatch.setattr(simulator, "ENABLE_SIMULATOR", True)
    client = _client()

    start = client.post("/simulator/message", json={"phone": CUSTOMER_PHONE, "text": "🛍 Hacer pedido"}).json()
    order = client.post(
        "/simulator/message",
        json={"phone": CUSTOMER_PHONE, "text": "dos paquetes de bida 237 mitad manzana y mitad uva"},
    ).json()

    assert start["state"] == "assistant"
    assert start["command"] == "start_order"
    assert start["replies"][0]["buttons"] == ["🚪 Salir"]
    assert order["intent"] == "free-form"
    assert order["replies"][0]["text"].startswith("¡Listo! Agregado: BIDA 237, 12 manzana + 12 uva - $360.00")
    assert order["replies"][1]["buttons"] == ["✅ Confirmar", "🛒 Ver carrito", "➕ Agregar"]


def test_simulator_disabled(monkeypatch):
    monkeypatch.setattr(simulator, "ENABLE_SIMULATOR", False)

    response = _client().post("/simulator/message", json={"phone": CUSTOMER_PHONE, "text": "hola"})

    assert response.status_code == 404
