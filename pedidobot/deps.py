from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException, status

from pedidobot.ai.service import get_provider
from pedidobot.bot.orchestrator import ConversationOrchestrator
from pedidobot.bot.session import DedupCache, SessionStore
from pedidobot.core.config import ADMIN_API_TOKEN
from pedidobot.whatsapp.service import WhatsAppService


@lru_cache
def get_whatsapp_service() -> WhatsAppService:
    return WhatsAppService()


@lru_cache
def get_orchestrator() -> ConversationOrchestrator:
    # one process-wide instance: sessions and dedup live in memory
    return ConversationOrchestrator(
        gateway=get_whatsapp_service(),
        provider=get_provider(),
        sessions=SessionStore(),
        dedup=DedupCache(),
    )


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    if not ADMIN_API_TOKEN:
        return
    if x_admin_token != ADMIN_API_TOKEN:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token de administrador inválido")
