"""
Chat API — regular + streaming endpoints.

POST /v1/chat        — Standard request/response
POST /v1/chat/stream — Server-Sent Events (SSE) streaming
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_chat_model, get_db, require_user
from ..orchestrator.errors import AgentError, ConversationNotFoundError
from ..orchestrator.loop import ChatModel
from ..orchestrator.orchestrator import handle_message, open_stream_turn

logger = logging.getLogger(__name__)

chat_router = APIRouter(tags=["chat"])

MAX_MESSAGE_LENGTH = 10000


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    conversation_id: str = Field(alias="conversationId")


@chat_router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    model: ChatModel = Depends(get_chat_model),
):
    """Send a message and get the assistant's full reply in one response."""
    try:
        result = await handle_message(
            db,
            user.user_id,
            request.message,
            conversation_id=request.conversation_id,
            model=model,
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    except AgentError as e:
        logger.error("Chat turn failed for user=%s: %s", user.user_id, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Une erreur s'est produite")

    return ChatResponse(response=result["content"], conversation_id=result["conversation_id"])


@chat_router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    user: AuthenticatedUser = Depends(require_user),
    model: ChatModel = Depends(get_chat_model),
):
    """
    Stream the assistant's reply via Server-Sent Events (SSE).

    Events:
      data: {"type": "conversationId", "value": "<uuid>"}
      data: {"type": "toolUsed", "value": "add_company"}
      data: {"type": "text", "value": "Hello"}
      data: {"type": "error", "value": "Une erreur s'est produite"}
      data: {"type": "done"}
    """
    try:
        turn = await open_stream_turn(
            user.user_id,
            request.message,
            conversation_id=request.conversation_id,
            model=model,
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    return StreamingResponse(
        turn.events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
