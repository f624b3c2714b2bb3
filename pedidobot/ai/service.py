from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pedidobot.ai.base import CompletionProvider
from pedidobot.ai.mock_provider import MockCompletionProvider
from pedidobot.ai.parser import parse_order_response, split_response_text
from pedidobot.ai.prompt import build_messages, build_system_prompt
from pedidobot.ai.schema import ParseResult
from pedidobot.core.config import IS_DEV, LLM_API_KEY, LLM_HISTORY_LIMIT, LLM_PROVIDER
from pedidobot.models.ai_message_log import AIMessageLog
from pedidobot.models.user import User
from pedidobot.services import cart_store, catalog
from pedidobot.services.catalog import CatalogProduct
from pedidobot.services.conversation_store import recent_history

logger = logging.getLogger(__name__)

NO_PRODUCTS_TEXT = "No tenemos productos disponibles por el momento."
EMPTY_REPLY_TEXT = "No pude procesar tu solicitud, ¿puedes repetir?"
ERROR_REPLY_TEXT = "Hubo un error, ¿puedes intentar de nuevo?"
ITEMS_ONLY_TEXT = "¡Listo! Actualicé tu carrito."


@dataclass
class ExtractionResult:
    prose: str
    parse: ParseResult = field(default_factory=ParseResult.empty)
    raw_text: str = ""
    failed: bool = False
    catalog_empty: bool = False
    products: list[CatalogProduct] = field(default_factory=list)


def get_provider() -> CompletionProvider:
    provider = (LLM_PROVIDER or "openai").strip().lower()
    if provider == "mock" or (IS_DEV and not LLM_API_KEY):
        return MockCompletionProvider()
    from pedidobot.ai.openai_provider import OpenAICompatibleProvider

    return OpenAICompatibleProvider()


def _log_message(
    db: Session,
    *,
    phone: str,
    provider: str,
    prompt: str,
    raw_response: str | None,
    parsed: ParseResult | None = None,
    error: str | None = None,
) -> None:
    try:
        db.add(
            AIMessageLog(
                phone=phone,
                provider=provider,
                prompt=prompt,
                raw_response=raw_response,
                parsed_json=json.dumps(parsed.as_dict(), ensure_ascii=False) if parsed else None,
                error=error,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("could not store completion log")


def run_extractor(
    db: Session,
    user: User,
    message: str,
    *,
    provider: CompletionProvider,
    history_limit: int = LLM_HISTORY_LIMIT,
) -> ExtractionResult:
    """Ask the model about ``message`` and turn its reply into prose plus order operations.

    Never raises for upstream trouble: an unavailable catalog, a failed or
    empty completion all come back as a prose-only result with no operations.
    """
    try:
        products = catalog.list_products(db)
    except catalog.CatalogUnavailableError:
        logger.warning("catalog unavailable, skipping completion")
        products = []
    if not products:
        return ExtractionResult(prose=NO_PRODUCTS_TEXT, catalog_empty=True)

    sale = cart_store.get_open_cart(db, user.id)
    cart_lines = cart_store.get_lines(db, sale) if sale else []
    cart_total = sum(line.price_cents for line in cart_lines)

    messages = build_messages(
        system_prompt=build_system_prompt(products, cart_lines, cart_total),
        history=recent_history(db, user.id, history_limit),
        user_message=message,
    )
    logger.info("completion request messages=%s", len(messages), extra={"provider": provider.name})

    try:
        raw_text = provider.complete(messages)
    except Exception as exc:
        logger.exception("completion failed", extra={"provider": provider.name})
        _log_message(db, phone=user.phone, provider=provider.name, prompt=message, raw_response=None, error=str(exc))
        return ExtractionResult(prose=ERROR_REPLY_TEXT, failed=True, products=products)

    if not (raw_text or "").strip():
        _log_message(db, phone=user.phone, provider=provider.name, prompt=message, raw_response="", error="empty")
        return ExtractionResult(prose=EMPTY_REPLY_TEXT, failed=True, products=products)

    parsed = parse_order_response(raw_text)
    prose = split_response_text(raw_text)
    if not prose:
        prose = ITEMS_ONLY_TEXT if parsed.items else EMPTY_REPLY_TEXT

    _log_message(db, phone=user.phone, provider=provider.name, prompt=message, raw_response=raw_text, parsed=parsed)
    return ExtractionResult(prose=prose, parse=parsed, raw_text=raw_text, products=products)
