from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from pedidobot.models.chat_turn import INCOMING, OUTGOING, ChatTurn


def save_turn(
    db: Session,
    *,
    user_id: int,
    message: str,
    direction: str,
    raw_payload: dict[str, Any] | None = None,
) -> ChatTurn:
    if direction not in {INCOMING, OUTGOING}:
        raise ValueError(f"invalid direction: {direction}")
    turn = ChatTurn(user_id=user_id, message=message or "", direction=direction, raw_payload=raw_payload or {})
    db.add(turn)
    db.commit()
    return turn


def recent_history(db: Session, user_id: int, limit: int = 10) -> list[ChatTurn]:
    """Return the last ``limit`` turns of a user, oldest first."""
    rows = (
        db.query(ChatTurn)
        .filter(ChatTurn.user_id == user_id)
        .order_by(ChatTurn.created_at.desc(), ChatTurn.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def last_outgoing_text(db: Session, user_id: int) -> str:
    turn = (
        db.query(ChatTurn)
        .filter(ChatTurn.user_id == user_id, ChatTurn.direction == OUTGOING)
        .order_by(ChatTurn.created_at.desc(), ChatTurn.id.desc())
        .first()
    )
    return turn.message if turn else ""


def clear_history(db: Session, user_id: int) -> int:
    deleted = db.query(ChatTurn).filter(ChatTurn.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    return int(deleted or 0)
