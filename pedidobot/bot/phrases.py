"""Phrase tables driving intent detection and clarification checks.

Tables are plain data so they can be tuned without touching the matching
code. ``PHRASES_PATH`` may point to a JSON file with any subset of the keys
of :class:`PhraseTables`; dict tables are merged over the defaults, list
tables replace them.
"""
from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path

from pedidobot.core.config import PHRASES_PATH

logger = logging.getLogger(__name__)


def normalize(text: str) -> str:
    """Lowercase, drop accents, emoji and punctuation, collapse whitespace."""
    text = (text or "").lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[-_]", " ", text)
    text = re.sub(r"[^\w\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


COMMAND_PHRASES: dict[str, str] = {
    # welcome
    "hola": "greeting",
    "hi": "greeting",
    "hello": "greeting",
    "start": "greeting",
    "empezar": "greeting",
    "comenzar": "greeting",
    "buenos dias": "greeting",
    "buenas tardes": "greeting",
    "buenas noches": "greeting",
    "hacer pedido": "start_order",
    "hablar con persona": "start_order",
    "salir": "exit",
    "salir asistente": "exit",
    "ver menu": "menu",
    "menu": "menu",
    "inicio": "home",
    "ayuda": "help",
    "help": "help",
    # order
    "confirmar": "confirm",
    "confirmar pedido": "confirm",
    "confirmo": "confirm",
    "si confirmo": "confirm",
    "finalizar pedido": "confirm",
    "procesar pedido": "confirm",
    "ver carrito": "view_cart",
    "carrito": "view_cart",
    "mi carrito": "view_cart",
    "pedido actual": "view_cart",
    "ver pedido": "view_cart",
    "borrar pedido": "cancel",
    "cancelar pedido": "cancel",
    "cancelar": "cancel",
    "vaciar carrito": "cancel",
    "eliminar pedido": "cancel",
    "agregar": "add_more",
    "agregar mas": "add_more",
    "otro pedido": "add_more",
    "nuevo pedido": "add_more",
    "hacer nuevo pedido": "add_more",
    "soporte": "support",
    "contactar soporte": "support",
    "problema": "support",
    "intentar de nuevo": "retry",
    "reintentar": "retry",
}

# Button labels that take over a message even when surrounded by other text.
NAVIGATION_LABELS: dict[str, str] = {
    "✅ confirmar": "confirm",
    "🛒 ver carrito": "view_cart",
    "🗑️ borrar pedido": "cancel",
    "🚪 salir": "exit",
    "🏠 inicio": "home",
    "❓ ayuda": "help",
    "📋 ver menú": "menu",
    "➕ agregar": "add_more",
    "👨🏻‍💻 soporte": "support",
    "🔄 intentar de nuevo": "retry",
}

ORDER_COMPLETE_PHRASES: list[str] = [
    "seria todo",
    "es todo",
    "ya esta",
    "nada mas",
    "ya es todo",
    "ya no quiero mas",
    "no quiero mas",
    "termino",
    "listo",
]

AFFIRMATIVE_TOKENS: list[str] = ["si", "ok", "okay", "dale", "perfecto", "claro"]

# Fragments of the previous bot turn that make a bare "si" mean "go ahead".
CONFIRMATION_CONTEXT: list[str] = ["carrito", "total", "quieres confirmar"]

CLARIFICATION_FRAGMENTS: list[str] = [
    "como quieres distribuir",
    "de que sabor o sabores",
    "como lo prefieres",
    "ejemplos",
    "puedes especificar",
    "cuantos de cada",
]

# Prose hints after which the action buttons are offered again.
FOLLOWUP_HINTS: list[str] = ["algo mas", "es todo", "agregar", "continuar"]


@dataclass(frozen=True)
class PhraseTables:
    commands: dict[str, str] = field(default_factory=lambda: dict(COMMAND_PHRASES))
    navigation_labels: dict[str, str] = field(default_factory=lambda: dict(NAVIGATION_LABELS))
    order_complete: list[str] = field(default_factory=lambda: list(ORDER_COMPLETE_PHRASES))
    affirmatives: list[str] = field(default_factory=lambda: list(AFFIRMATIVE_TOKENS))
    confirmation_context: list[str] = field(default_factory=lambda: list(CONFIRMATION_CONTEXT))
    clarification: list[str] = field(default_factory=lambda: list(CLARIFICATION_FRAGMENTS))
    followup_hints: list[str] = field(default_factory=lambda: list(FOLLOWUP_HINTS))
    # commands that are handed to the assistant instead while it is active
    assistant_passthrough: list[str] = field(default_factory=lambda: ["greeting"])
    max_affirmative_length: int = 8


def load_phrase_tables(path: str | Path | None = None) -> PhraseTables:
    tables = PhraseTables()
    if not path:
        return tables

    with open(path, "r", encoding="utf-8") as f:
        overrides = json.load(f) or {}

    changes = {}
    for table_field in fields(PhraseTables):
        if table_field.name not in overrides:
            continue
        value = overrides[table_field.name]
        current = getattr(tables, table_field.name)
        if table_field.name == "commands":
            changes[table_field.name] = {**current, **{normalize(k): v for k, v in value.items()}}
        elif isinstance(current, dict):
            changes[table_field.name] = {**current, **{k.lower(): v for k, v in value.items()}}
        elif isinstance(current, list):
            changes[table_field.name] = list(value)
        else:
            changes[table_field.name] = value

    unknown = set(overrides) - {table_field.name for table_field in fields(PhraseTables)}
    if unknown:
        logger.warning("unknown phrase tables ignored: %s", ", ".join(sorted(unknown)))
    return replace(tables, **changes)


@lru_cache(maxsize=1)
def get_phrase_tables() -> PhraseTables:
    return load_phrase_tables(PHRASES_PATH or None)
