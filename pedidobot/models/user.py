import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from pedidobot.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(30), unique=True, index=True, nullable=False)
    name = Column(String(120), nullable=True)

    # blocked/blockedAt, nextDate/frequency/lastReminderSent
    metadata_json = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=dict)

    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    chat_turns = relationship("ChatTurn", back_populates="user", cascade="all, delete-orphan")
    sales = relationship("Sale", back_populates="user")

    @property
    def is_blocked(self) -> bool:
        return bool((self.metadata_json or {}).get("blocked"))
