import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pedidobot.bot.orchestrator import ConversationOrchestrator, TurnResult
from pedidobot.core.config import META_WA_VERIFY_TOKEN
from pedidobot.core.database import get_db
from pedidobot.deps import get_orchestrator
from pedidobot.models.processed_message import ProcessedMessage
from pedidobot.whatsapp.cloud_provider import parse_cloud_webhook

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/webhook")
async def verify_webhook(request: Request):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and META_WA_VERIFY_TOKEN and token == META_WA_VERIFY_TOKEN:
        return PlainTextResponse(challenge or "")

    raise HTTPException(status_code=403, detail="Verify token inválido")


def _claim_message(db: Session, message_id: str) -> bool:
    """Record a provider message id; False when it was already processed."""
    if db.query(ProcessedMessage).filter_by(message_id=message_id).first():
        return False
    try:
        db.add(ProcessedMessage(message_id=message_id))
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def _release_message(db: Session, message_id: str) -> None:
    """Forget a claimed message id so the provider's redelivery runs the turn again."""
    try:
        db.query(ProcessedMessage).filter_by(message_id=message_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("could not release message id=%s", message_id)


@router.post("/webhook")
def whatsapp_webhook(
    payload: dict,
    db: Session = Depends(get_db),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    messages = parse_cloud_webhook(payload)
    if not messages:
        return {"status": "ignored"}

    results = []
    failed = False
    for extracted in messages:
        message_id = extracted["message_id"]
        if not _claim_message(db, message_id):
            logger.info("webhook message already processed id=%s", message_id)
            results.append({"message_id": message_id, "status": "duplicate"})
            continue

        try:
            turn = orchestrator.handle_turn(
                db,
                extracted["from_number"],
                extracted.get("text", ""),
                contact_name=extracted.get("contact_name"),
                message_id=message_id,
                raw=extracted.get("raw"),
            )
        except Exception:
            logger.exception("webhook message failed id=%s", message_id)
            db.rollback()
            turn = TurnResult(dropped=True, reason="error")

        if turn.reason == "error":
            failed = True
            _release_message(db, message_id)
        results.append(
            {
                "message_id": message_id,
                "status": turn.reason if turn.dropped else "ok",
                "intent": turn.intent,
                "replies": len(turn.replies),
            }
        )

    if failed:
        # non-2xx makes the provider redeliver; processed ids come back as duplicates
        return JSONResponse(status_code=500, content={"status": "error", "messages": results})
    return {"status": "ok", "messages": results}
