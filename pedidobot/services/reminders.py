from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pedidobot.core.config import TIMEZONE
from pedidobot.models.user import User
from pedidobot.services.users import update_metadata
from pedidobot.whatsapp.service import WhatsAppService
from pedidobot.whatsapp.templates import REMINDER_TEMPLATE

logger = logging.getLogger(__name__)

FREQUENCIES = ("semanal", "quincenal", "mensual")


def local_now(tz_name: str = TIMEZONE) -> datetime:
    return datetime.now(ZoneInfo(tz_name))


def local_today(tz_name: str = TIMEZONE) -> date:
    return local_now(tz_name).date()


def parse_date(value) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        return None


def _add_months(current: date, months: int) -> date:
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    day = min(current.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_date(current: date, frequency: str) -> date:
    frequency = (frequency or "").strip().lower()
    if frequency == "semanal":
        return current + timedelta(weeks=1)
    if frequency == "quincenal":
        return current + timedelta(weeks=2)
    if frequency == "mensual":
        return _add_months(current, 1)
    raise ValueError(f"Frecuencia desconocida: {frequency}")


def first_reminder_date(start: date, frequency: str, today: date | None = None) -> date:
    """First reminder on or after today, stepping from ``start`` by ``frequency``."""
    today = today or local_today()
    reminder = start
    while reminder < today:
        reminder = next_date(reminder, frequency)
    return reminder


def is_due(user: User, today: date) -> bool:
    metadata = user.metadata_json or {}
    scheduled = parse_date(metadata.get("nextDate"))
    return scheduled is not None and scheduled == today


def _has_schedule(user: User) -> bool:
    metadata = user.metadata_json or {}
    return bool(metadata.get("nextDate")) and (metadata.get("frequency") or "").lower() in FREQUENCIES


def _send_user_reminder(db: Session, gateway: WhatsAppService, user: User, today: date) -> str:
    """Return ``sent``, ``error`` or ``skipped`` for one user."""
    if user.is_blocked or not _has_schedule(user):
        return "skipped"

    metadata = user.metadata_json or {}
    scheduled = parse_date(metadata["nextDate"])
    if scheduled is None:
        return "skipped"
    if scheduled < today:
        # missed sweeps move the schedule forward without sending
        caught_up = first_reminder_date(scheduled, metadata["frequency"], today)
        logger.info("reminder date moved user_id=%s from=%s to=%s", user.id, scheduled, caught_up)
        update_metadata(db, user, nextDate=caught_up.isoformat())
    if not is_due(user, today):
        return "skipped"

    result = gateway.send_template(
        db,
        to_phone=user.phone,
        template_name=REMINDER_TEMPLATE,
        variables={"userName": user.name or "Cliente"},
        user_id=user.id,
    )
    if not result.ok:
        logger.warning("reminder not sent user_id=%s: %s", user.id, result.error, extra={"phone": user.phone})
        return "error"

    metadata = user.metadata_json or {}
    scheduled = parse_date(metadata["nextDate"])
    update_metadata(
        db,
        user,
        nextDate=next_date(scheduled, metadata["frequency"]).isoformat(),
        lastReminderSent=local_now().isoformat(),
    )
    return "sent"


def run_reminder_sweep(db: Session, gateway: WhatsAppService, today: date | None = None) -> dict[str, int]:
    """Send today's reminder template to every scheduled user whose ``nextDate`` is today.

    Users without a reminder schedule are not part of the sweep and are not counted.
    """
    today = today or local_today()
    counts = {"sent": 0, "errors": 0, "skipped": 0}

    users = [user for user in db.query(User).order_by(User.id).all() if _has_schedule(user)]
    for user in users:
        try:
            outcome = _send_user_reminder(db, gateway, user, today)
        except (SQLAlchemyError, ValueError):
            db.rollback()
            logger.exception("reminder failed user_id=%s", user.id)
            outcome = "error"
        if outcome == "sent":
            counts["sent"] += 1
        elif outcome == "error":
            counts["errors"] += 1
        else:
            counts["skipped"] += 1

    logger.info("reminder sweep done sent=%s errors=%s skipped=%s", counts["sent"], counts["errors"], counts["skipped"])
    return counts


def send_manual_reminder(db: Session, gateway: WhatsAppService, user: User, today: date | None = None) -> dict:
    outcome = _send_user_reminder(db, gateway, user, today or local_today())
    if outcome == "sent":
        return {"success": True, "message": "Recordatorio enviado exitosamente"}
    if outcome == "error":
        return {"success": False, "message": "Error al enviar recordatorio"}
    return {"success": False, "message": "Usuario sin configuración válida"}
