import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from pedidobot.core.database import get_db
from pedidobot.deps import get_whatsapp_service, require_admin_token
from pedidobot.models.user import User
from pedidobot.schemas.admin import BlockUserRequest, ManualReminderRequest, SendMessageRequest, SendReminderTemplateRequest
from pedidobot.services.conversation_store import clear_history
from pedidobot.services.reminders import run_reminder_sweep, send_manual_reminder
from pedidobot.services.users import get_user, set_blocked
from pedidobot.whatsapp.base import WhatsAppSendError
from pedidobot.whatsapp.service import WhatsAppService
from pedidobot.whatsapp.templates import REMINDER_TEMPLATE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])
admin_router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _user_by_phone(db: Session, phone: str) -> User | None:
    return db.query(User).filter(User.phone == phone).first()


@router.get("/health")
def health():
    return {"success": True, "status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@admin_router.post("/send-message")
def send_message(
    body: SendMessageRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppService = Depends(get_whatsapp_service),
):
    user = _user_by_phone(db, body.phone)
    try:
        result = gateway.send_text(db, to_phone=body.phone, text=body.message, user_id=user.id if user else None)
        result.raise_for_status()
    except WhatsAppSendError as exc:
        logger.warning("send-message failed: %s", exc, extra={"phone": body.phone})
        return _error(500, str(exc))
    return {"success": True, "messageId": result.provider_message_id}


@admin_router.post("/send-reminder-template")
def send_reminder_template(
    body: SendReminderTemplateRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppService = Depends(get_whatsapp_service),
):
    user = _user_by_phone(db, body.phone)
    name = (body.name or "").strip() or (user.name if user and user.name else "Cliente")
    try:
        result = gateway.send_template(
            db,
            to_phone=body.phone,
            template_name=REMINDER_TEMPLATE,
            variables={"userName": name},
            user_id=user.id if user else None,
        )
        result.raise_for_status()
    except WhatsAppSendError as exc:
        logger.warning("send-reminder-template failed: %s", exc, extra={"phone": body.phone})
        return _error(500, str(exc))
    return {"success": True, "messageId": result.provider_message_id}


@admin_router.post("/reminders/run")
def run_reminders(db: Session = Depends(get_db), gateway: WhatsAppService = Depends(get_whatsapp_service)):
    result = run_reminder_sweep(db, gateway)
    return {"success": True, "result": result}


@admin_router.post("/reminders/send-manual")
def send_manual(
    body: ManualReminderRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppService = Depends(get_whatsapp_service),
):
    user = get_user(db, body.user_id)
    if not user:
        return _error(404, f"Usuario {body.user_id} no encontrado")
    return send_manual_reminder(db, gateway, user)


@admin_router.delete("/chat/{user_id}/clear")
def clear_chat(user_id: int, db: Session = Depends(get_db)):
    user = get_user(db, user_id)
    if not user:
        return _error(404, f"Usuario {user_id} no encontrado")
    deleted = clear_history(db, user.id)
    logger.info("chat history cleared user_id=%s turns=%s", user.id, deleted)
    return {"success": True, "message": "Historial de chat eliminado", "deleted": deleted}


@admin_router.post("/user/{user_id}/block")
def block_user(user_id: int, body: BlockUserRequest, db: Session = Depends(get_db)):
    user = get_user(db, user_id)
    if not user:
        return _error(404, f"Usuario {user_id} no encontrado")
    user = set_blocked(db, user, body.blocked)
    message = "Usuario bloqueado" if body.blocked else "Usuario desbloqueado"
    return {"success": True, "message": message, "userId": user.id, "blocked": user.is_blocked}
