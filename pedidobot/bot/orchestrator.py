from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.orm import Session

from pedidobot.ai.base import CompletionProvider
from pedidobot.ai.service import run_extractor
from pedidobot.bot import messages
from pedidobot.bot.intents import Classification, Intent, classify, contains_any
from pedidobot.bot.messages import OutboundMessage
from pedidobot.bot.phrases import PhraseTables, get_phrase_tables
from pedidobot.bot.reconciler import apply_operations, load_cart_view, reprice_operations, validate_operations
from pedidobot.bot.session import DedupCache, SessionState, SessionStore
from pedidobot.core.request_context import set_request_context
from pedidobot.models.chat_turn import INCOMING
from pedidobot.models.sale import STATUS_CANCELLED, STATUS_CONFIRMED
from pedidobot.models.user import User
from pedidobot.services import cart_store
from pedidobot.services.cart_store import CartPersistenceError
from pedidobot.services.catalog import CatalogUnavailableError, list_products
from pedidobot.services.conversation_store import last_outgoing_text, save_turn
from pedidobot.services.reminders import local_now
from pedidobot.services.ticket import create_ticket_for_sale
from pedidobot.services.users import find_or_create_user, get_user_by_phone
from pedidobot.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)

Handler = Callable[[Session, User, SessionState, str], list[OutboundMessage]]


@dataclass
class TurnResult:
    replies: list[OutboundMessage] = field(default_factory=list)
    intent: str | None = None
    command: str | None = None
    state: str | None = None
    dropped: bool = False
    reason: str | None = None


class ConversationOrchestrator:
    """Runs one inbound message through classification, extraction and the cart.

    Turns of the same phone are serialized through the session lock. Replies
    are sent through the gateway, which also stores them as outgoing turns.
    """

    def __init__(
        self,
        *,
        gateway: WhatsAppService,
        provider: CompletionProvider,
        sessions: SessionStore | None = None,
        dedup: DedupCache | None = None,
        tables: PhraseTables | None = None,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.sessions = sessions or SessionStore()
        self.dedup = dedup or DedupCache()
        self.tables = tables or get_phrase_tables()
        self._commands: dict[str, Handler] = {
            "greeting": self._greeting,
            "start_order": self._start_order,
            "exit": self._exit,
            "menu": self._menu,
            "home": self._home,
            "help": self._help,
            "confirm": self._confirm,
            "view_cart": self._view_cart,
            "cancel": self._cancel,
            "add_more": self._add_more,
            "support": self._support,
            "retry": self._retry,
        }

    def handle_turn(
        self,
        db: Session,
        phone: str,
        text: str | None,
        contact_name: str | None = None,
        message_id: str | None = None,
        raw: dict[str, Any] | None = None,
    ) -> TurnResult:
        set_request_context(phone=phone)
        text = (text or "").strip()

        if self.dedup.seen(phone, text):
            logger.info("duplicate message dropped")
            return TurnResult(dropped=True, reason="duplicate")

        try:
            with self.sessions.hold(phone) as session:
                result = self._handle_locked(db, session, phone, text, contact_name, message_id, raw)
        except Exception:
            self.dedup.forget(phone, text)
            raise
        if result.reason == "error":
            self.dedup.forget(phone, text)
        return result

    def _handle_locked(
        self,
        db: Session,
        session: SessionState,
        phone: str,
        text: str,
        contact_name: str | None,
        message_id: str | None,
        raw: dict[str, Any] | None,
    ) -> TurnResult:
        try:
            existing = get_user_by_phone(db, phone)
            if existing is not None and existing.is_blocked:
                logger.info("blocked user, message ignored")
                return TurnResult(dropped=True, reason="blocked", state=session.state)

            user = find_or_create_user(db, phone, contact_name)
            session.user_id = user.id
            previous_bot_text = last_outgoing_text(db, user.id)
            save_turn(
                db,
                user_id=user.id,
                message=text,
                direction=INCOMING,
                raw_payload={"message_id": message_id, "raw": raw or {}},
            )
        except Exception:
            logger.exception("inbound message could not be recorded")
            db.rollback()
            return TurnResult(dropped=True, reason="error", state=session.state)

        classification: Classification | None = None
        if not text:
            replies = messages.not_understood()
        else:
            try:
                classification = classify(
                    text,
                    previous_bot_text=previous_bot_text,
                    assistant_mode=session.assistant_mode,
                    tables=self.tables,
                )
                replies = self._dispatch(db, user, session, text, classification)
            except Exception:
                logger.exception("turn failed")
                db.rollback()
                replies = messages.turn_failed()

        self._send(db, user, replies)

        result = TurnResult(
            replies=replies,
            intent=classification.intent.value if classification else None,
            command=classification.command if classification else None,
            state=session.state,
        )
        logger.info("turn handled command=%s state=%s", result.command, result.state, extra={"intent": result.intent})
        return result

    def _dispatch(
        self,
        db: Session,
        user: User,
        session: SessionState,
        text: str,
        classification: Classification,
    ) -> list[OutboundMessage]:
        if classification.intent == Intent.COMMAND:
            return self._commands[classification.command](db, user, session, text)
        if classification.intent == Intent.ORDER_COMPLETE:
            view = load_cart_view(db, user.id)
            return messages.order_ready(view.lines if not view.is_empty else [], view.total_cents)
        if classification.intent == Intent.SIMPLE_CONFIRMATION:
            view = load_cart_view(db, user.id)
            return messages.simple_confirmation(not view.is_empty)
        if classification.intent == Intent.FREE_FORM:
            return self._free_form(db, user, text)
        return messages.welcome(user.name)

    def _send(self, db: Session, user: User, replies: list[OutboundMessage]) -> None:
        for reply in replies:
            if reply.buttons:
                self.gateway.send_buttons(
                    db, to_phone=user.phone, text=reply.text, buttons=list(reply.buttons), user_id=user.id
                )
            else:
                self.gateway.send_text(db, to_phone=user.phone, text=reply.text, user_id=user.id)

    # free-form ordering

    def _free_form(self, db: Session, user: User, text: str) -> list[OutboundMessage]:
        extraction = run_extractor(db, user, text, provider=self.provider)
        if extraction.catalog_empty:
            return [OutboundMessage.with_buttons(extraction.prose, [messages.BTN_EXIT])]
        if extraction.failed:
            return [OutboundMessage.with_buttons(extraction.prose, messages.RETRY_BUTTONS)]

        replies = [OutboundMessage(extraction.prose)]
        ops = list(extraction.parse.items)
        if ops:
            ops = validate_operations(ops, extraction.products)
            ops = reprice_operations(ops, extraction.products)

        if ops:
            try:
                view = apply_operations(db, user.id, ops, extraction.products)
            except CartPersistenceError:
                return replies + messages.cart_save_failed()
            logger.info(
                "cart updated ops=%s total=%s",
                len(ops),
                view.total_cents,
                extra={"sale_id": view.sale.id if view.sale else None},
            )
            replies.append(messages.next_step())
        elif contains_any(extraction.prose, self.tables.followup_hints):
            if not load_cart_view(db, user.id).is_empty:
                replies.append(messages.followup_prompt())
        return replies

    # commands

    def _greeting(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = False
        return messages.welcome(user.name)

    def _start_order(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = True
        return messages.start_order()

    def _exit(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = False
        return messages.exit_assistant()

    def _menu(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = False
        try:
            products = list_products(db)
        except CatalogUnavailableError:
            products = []
        return messages.menu(products)

    def _home(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = False
        return messages.home()

    def _help(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        return messages.help_text()

    def _confirm(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = False
        view = load_cart_view(db, user.id)
        if view.sale is None:
            return messages.no_pending_order()
        if view.is_empty:
            return messages.empty_cart_confirmation()

        try:
            sale = cart_store.set_status(db, view.sale, STATUS_CONFIRMED)
        except CartPersistenceError:
            return messages.confirmation_failed()

        try:
            create_ticket_for_sale(db, sale, view.lines, user)
        except Exception:
            db.rollback()
            logger.exception("ticket generation failed sale_id=%s", sale.id, extra={"sale_id": sale.id})

        return messages.order_confirmed(view.lines, view.total_cents, user.phone, local_now())

    def _view_cart(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        view = load_cart_view(db, user.id)
        return messages.cart_summary(view.lines, view.total_cents)

    def _cancel(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        sale = cart_store.get_open_cart(db, user.id)
        if not sale:
            return messages.nothing_to_cancel()
        try:
            cart_store.set_status(db, sale, STATUS_CANCELLED)
        except CartPersistenceError:
            return messages.cart_save_failed()
        session.assistant_mode = False
        return messages.order_cancelled()

    def _add_more(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        session.assistant_mode = True
        return messages.add_more()

    def _support(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        return messages.support()

    def _retry(self, db: Session, user: User, session: SessionState, text: str) -> list[OutboundMessage]:
        return messages.retry(session.assistant_mode)
