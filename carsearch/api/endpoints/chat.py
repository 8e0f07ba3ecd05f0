from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from carsearch.core.errors import ChatNotFound, SessionAlreadyActive
from carsearch.schemas.criteria import IntentResponse
from carsearch.services.readiness import is_ready, missing_primary_fields
import logging

# Initialize Router and Logger
router = APIRouter()
logger = logging.getLogger(__name__)


class CreateChatRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=255)


class ChatResponse(BaseModel):
    id: UUID
    title: Optional[str] = None


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


# ==============================================================================
# 1. CREATE CHAT (POST)
# ==============================================================================
@router.post("/chats", response_model=ChatResponse, status_code=201)
async def create_chat(request: Request, body: Optional[CreateChatRequest] = None):
    orchestrator = request.app.state.orchestrator
    title = body.title.strip() if body and body.title and body.title.strip() else None
    chat = await orchestrator.store.create_chat(title)
    return ChatResponse(**chat)


# ==============================================================================
# 2. CURRENT INTENT (GET)
# ==============================================================================
@router.get("/chats/{chat_id}/intent", response_model=IntentResponse)
async def get_intent(chat_id: UUID, request: Request):
    orchestrator = request.app.state.orchestrator
    try:
        intent = await orchestrator.store.load_intent(chat_id)
    except ChatNotFound:
        raise HTTPException(status_code=404, detail="Chat not found")

    options = orchestrator.readiness_options
    return IntentResponse(
        chat_id=chat_id,
        version=intent.version,
        criteria=intent.criteria.set_fields(),
        ready=is_ready(intent, options),
        missing_fields=missing_primary_fields(intent, options),
    )


# ==============================================================================
# 3. SEND MESSAGE (POST, Server-Sent Events)
# ==============================================================================
@router.post("/chats/{chat_id}/messages")
async def send_message(chat_id: UUID, body: SendMessageRequest, request: Request):
    """
    Starts a turn and streams its events.
    404 for an unknown chat, 409 while another reply for the same chat is streaming.
    """
    orchestrator = request.app.state.orchestrator
    try:
        stream = await orchestrator.start_turn(chat_id, body.content)
    except ChatNotFound:
        raise HTTPException(status_code=404, detail="Chat not found")
    except SessionAlreadyActive as e:
        logger.info(f"Rejected concurrent turn for chat {chat_id}")
        raise HTTPException(status_code=409, detail={"kind": e.kind.value, "message": e.message})

    async def event_generator():
        try:
            async for event in stream.events():
                yield event.to_sse()
        finally:
            # Normal end is a no-op; a disconnect stops the turn
            stream.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
