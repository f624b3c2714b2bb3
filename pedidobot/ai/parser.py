"""Extraction of order operations from the free text returned by the model.

The model is asked for prose followed by one compact ``{"items": [...]}``
block, but nothing here relies on that: replies may carry several blocks,
fenced blocks, trailing chatter or broken JSON. Parsing never raises.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from pedidobot.ai.schema import ExtractedOrderOp, ParseResult, ParseStatus, RawOrderItem
from pedidobot.bot.intents import contains_any
from pedidobot.bot.phrases import PhraseTables, get_phrase_tables

logger = logging.getLogger(__name__)

ITEMS_MARKER = re.compile(r'\{\s*"items"\s*:')
_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_decoder = json.JSONDecoder()


def find_marker(text: str) -> int:
    """Position of the first structured block, or -1."""
    match = ITEMS_MARKER.search(text or "")
    return match.start() if match else -1


def split_response_text(text: str) -> str:
    """Prose shown to the user: everything before the first structured block."""
    if not isinstance(text, str):
        return ""
    position = find_marker(text)
    prose = text if position < 0 else text[:position]
    return _FENCE.sub("", prose).strip()


def _close_brackets(candidate: str) -> str:
    """Append the closers a truncated block is missing, e.g. a dropped final ``}``."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for char in candidate:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack:
            stack.pop()
    return candidate + "".join(reversed(stack))


def _decode_at(text: str, start: int, stop: int) -> tuple[Any, int] | None:
    try:
        return _decoder.raw_decode(text, start)
    except (ValueError, RecursionError):
        pass

    # trailing-garbage trim: cut the block at its last closing bracket
    segment = text[start:stop]
    last_close = max(segment.rfind("}"), segment.rfind("]"))
    if last_close < 0:
        return None
    candidate = segment[: last_close + 1]
    for attempt in (candidate, _close_brackets(candidate)):
        try:
            return json.loads(attempt), start + last_close + 1
        except (ValueError, RecursionError):
            continue
    return None


def _iter_blocks(text: str):
    """Yield ``(payload_or_None)`` for every structured block, in order."""
    starts = [match.start() for match in ITEMS_MARKER.finditer(text)]
    position = 0
    for index, start in enumerate(starts):
        if start < position:
            # marker nested inside a block already consumed
            continue
        stop = starts[index + 1] if index + 1 < len(starts) else len(text)
        decoded = _decode_at(text, start, stop)
        if decoded is None:
            yield None
            position = start + 1
            continue
        payload, end = decoded
        position = end
        yield payload


def _to_op(entry: Any) -> ExtractedOrderOp | None:
    if not isinstance(entry, dict):
        return None
    try:
        raw = RawOrderItem.model_validate(entry)
    except ValidationError as exc:
        logger.warning("order item discarded: %s", exc.errors()[0].get("msg") if exc.errors() else exc)
        return None

    subtotal = raw.subtotal_cents()
    if subtotal is None:
        if raw.operation == "add":
            logger.warning("order item discarded: missing price product_id=%s", raw.product_id)
            return None
        subtotal = 0

    return ExtractedOrderOp(
        product_id=raw.product_id,
        product_name=raw.product_name,
        flavor_id=raw.flavor_id,
        flavor_name=raw.flavor_name,
        quantity=raw.quantity,
        subtotal_cents=subtotal,
        operation=raw.operation,
    )


def parse_order_response(text: str, tables: PhraseTables | None = None) -> ParseResult:
    if not isinstance(text, str) or not text.strip():
        return ParseResult.empty()

    tables = tables or get_phrase_tables()
    if contains_any(text, tables.clarification):
        return ParseResult.clarification()

    if find_marker(text) < 0:
        return ParseResult.empty()

    items: list[ExtractedOrderOp] = []
    skipped_blocks = 0
    skipped_items = 0
    for payload in _iter_blocks(text):
        entries = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            skipped_blocks += 1
            continue
        for entry in entries:
            op = _to_op(entry)
            if op is None:
                skipped_items += 1
                continue
            items.append(op)

    if skipped_blocks:
        logger.warning("structured blocks skipped=%s", skipped_blocks)
    if not items:
        return ParseResult.empty(skipped_blocks=skipped_blocks, skipped_items=skipped_items)
    return ParseResult(ParseStatus.OK, tuple(items), skipped_blocks=skipped_blocks, skipped_items=skipped_items)
