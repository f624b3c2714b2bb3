from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pedidobot.bot.orchestrator import ConversationOrchestrator
from pedidobot.core.config import ENABLE_SIMULATOR
from pedidobot.core.database import get_db
from pedidobot.deps import get_orchestrator
from pedidobot.schemas.admin import SimulatorMessage

router = APIRouter(prefix="/simulator", tags=["simulator"])


@router.post("/message")
def simulate(
    body: SimulatorMessage,
    db: Session = Depends(get_db),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Run one conversation turn without WhatsApp and return the replies."""
    if not ENABLE_SIMULATOR:
        raise HTTPException(status_code=404, detail="Not Found")

    turn = orchestrator.handle_turn(db, body.phone, body.text, contact_name=body.name)
    return {
        "state": turn.state,
        "intent": turn.intent,
        "command": turn.command,
        "dropped": turn.dropped,
        "reason": turn.reason,
        "replies": [{"text": reply.text, "buttons": list(reply.buttons)} for reply in turn.replies],
    }
