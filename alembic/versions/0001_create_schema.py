from __future__ import annotations

from alembic import op

from pedidobot.core.database import Base
import pedidobot.models  # noqa: F401

revision = "0001_create_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # users, chat_history, products/flavors, sales/sale_items, processed_messages, ai_message_logs
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
