from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from pedidobot.models.user import User

logger = logging.getLogger(__name__)


def get_user_by_phone(db: Session, phone: str) -> User | None:
    return db.query(User).filter(User.phone == phone).first()


def find_or_create_user(db: Session, phone: str, name: str | None = None) -> User:
    user = get_user_by_phone(db, phone)
    now = datetime.now(timezone.utc)
    if not user:
        user = User(phone=phone, name=(name or "").strip() or None, metadata_json={}, last_seen_at=now)
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("user created id=%s", user.id, extra={"phone": phone})
        return user

    user.last_seen_at = now
    if name and not user.name:
        user.name = name.strip()
    db.commit()
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def update_metadata(db: Session, user: User, **changes: Any) -> User:
    # reassign so the JSON column is flagged dirty
    metadata = dict(user.metadata_json or {})
    metadata.update(changes)
    user.metadata_json = metadata
    db.commit()
    db.refresh(user)
    return user


def set_blocked(db: Session, user: User, blocked: bool) -> User:
    blocked_at = datetime.now(timezone.utc).isoformat() if blocked else None
    return update_metadata(db, user, blocked=blocked, blockedAt=blocked_at)
