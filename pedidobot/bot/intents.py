from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pedidobot.bot.phrases import PhraseTables, get_phrase_tables, normalize


class Intent(str, Enum):
    COMMAND = "command"
    ORDER_COMPLETE = "order-complete"
    SIMPLE_CONFIRMATION = "simple-confirmation"
    FREE_FORM = "free-form"
    IDLE = "idle"


@dataclass(frozen=True)
class Classification:
    intent: Intent
    command: str | None = None


def contains_any(text: str, phrases: list[str]) -> bool:
    normalized = f" {normalize(text)} "
    for phrase in phrases:
        phrase_norm = normalize(phrase)
        if phrase_norm and f" {phrase_norm} " in normalized:
            return True
    return False


def match_command(text: str, tables: PhraseTables | None = None, *, assistant_mode: bool = False) -> str | None:
    tables = tables or get_phrase_tables()
    command = tables.commands.get(normalize(text))
    if command:
        return command
    if assistant_mode:
        lowered = (text or "").lower()
        for label, label_command in tables.navigation_labels.items():
            if label in lowered:
                return label_command
    return None


def is_order_complete(text: str, tables: PhraseTables | None = None) -> bool:
    tables = tables or get_phrase_tables()
    return contains_any(text, tables.order_complete)


def is_simple_confirmation(text: str, previous_bot_text: str, tables: PhraseTables | None = None) -> bool:
    tables = tables or get_phrase_tables()
    normalized = normalize(text)
    if not normalized or len(normalized) > tables.max_affirmative_length:
        return False
    if normalized not in {normalize(token) for token in tables.affirmatives}:
        return False
    return contains_any(previous_bot_text or "", tables.confirmation_context)


def classify(
    text: str,
    *,
    previous_bot_text: str = "",
    assistant_mode: bool = False,
    tables: PhraseTables | None = None,
) -> Classification:
    """Decide how a message is handled.

    Commands win over everything else so that a button press is never
    swallowed by the assistant. Outside assistant mode nothing but commands
    is recognised.
    """
    tables = tables or get_phrase_tables()

    command = match_command(text, tables, assistant_mode=assistant_mode)
    if command and not (assistant_mode and command in tables.assistant_passthrough):
        return Classification(Intent.COMMAND, command)

    if not assistant_mode:
        return Classification(Intent.IDLE)

    if is_order_complete(text, tables):
        return Classification(Intent.ORDER_COMPLETE)
    if is_simple_confirmation(text, previous_bot_text, tables):
        return Classification(Intent.SIMPLE_CONFIRMATION)
    return Classification(Intent.FREE_FORM)
