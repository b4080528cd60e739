"""Chat streaming, history, deletion and health routes."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ...models import Message, MessageRole
from ..app import get_caller, require_app, verify_api_key
from ..models import ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def _sse(payload) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


@router.post("/api/chat", dependencies=[Depends(verify_api_key)])
async def chat(req: ChatRequest, user_id: str = Depends(get_caller)):
    if not req.message:
        raise HTTPException(400, "Missing message")
    try:
        message = Message.from_dict(req.message)
    except (ValueError, TypeError) as e:
        raise HTTPException(400, f"Invalid message: {e}")
    message.conversation_id = req.conversation_id
    if message.role == MessageRole.USER and message.is_empty:
        raise HTTPException(400, "Missing message")

    app = require_app()
    user = await app.get_profile(user_id)
    if user is None or not user.wallet_public_key:
        raise HTTPException(400, "No wallet found")

    async def event_generator():
        try:
            async for event in app.stream_chat(user, req.conversation_id, message):
                yield _sse({"type": event.type.value, "data": event.data})
        except Exception as e:
            logger.error(f"[Chat] Stream failed for {req.conversation_id}: {e}", exc_info=True)
            yield _sse({"type": "error", "data": {"error": "An error occurred"}})
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
    )


@router.get("/api/chat/{conversation_id}", dependencies=[Depends(verify_api_key)])
async def get_messages(conversation_id: str, user_id: str = Depends(get_caller)):
    app = require_app()
    messages = await app.get_conversation_messages(conversation_id, user_id)
    if messages is None:
        raise HTTPException(404, "Conversation not found")
    return {
        "conversation_id": conversation_id,
        "messages": [m.to_dict() for m in messages],
    }


@router.delete("/api/chat/{conversation_id}", dependencies=[Depends(verify_api_key)])
async def delete_conversation(conversation_id: str, user_id: str = Depends(get_caller)):
    app = require_app()
    if not await app.delete_conversation(conversation_id, user_id):
        raise HTTPException(404, "Conversation not found")
    return {"success": True}


@router.get("/health")
async def health():
    return {"status": "ok"}
