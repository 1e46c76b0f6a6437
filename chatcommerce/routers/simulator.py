from fastapi import APIRouter, Depends, HTTPException

from chatcommerce.core.errors import NotFound
from chatcommerce.deps import get_conversation_service, get_session_store
from chatcommerce.fsm.messages import message_to_dict
from chatcommerce.schemas.events import EventResponse, InboundEvent
from chatcommerce.services.conversation import ConversationService
from chatcommerce.services.session_store import SessionStore

router = APIRouter(prefix="/simulator", tags=["simulator"])


@router.post("/message", response_model=EventResponse)
def simulate_message(event: InboundEvent, service: ConversationService = Depends(get_conversation_service)):
    outcome = service.handle_event(event)
    return {
        "status": outcome.status,
        "step": outcome.step,
        "attempts": outcome.attempts,
        "messages": [message_to_dict(message) for message in outcome.messages],
    }


def _load_or_raise(store: SessionStore, customer_id: str):
    session = store.load(customer_id)
    if session is None:
        raise NotFound(f"no session for customer {customer_id}")
    return session


@router.get("/sessions/{customer_id}")
def get_session(customer_id: str, store: SessionStore = Depends(get_session_store)):
    try:
        session = _load_or_raise(store, customer_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    payload = session.state_dict()
    payload["version"] = session.version
    payload["last_activity_at"] = session.last_activity_at.isoformat() if session.last_activity_at else None
    return payload
