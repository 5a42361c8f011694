"""
Conversations API.

GET    /v1/conversations                   — List user conversations
POST   /v1/conversations                   — Create an empty conversation
GET    /v1/conversations/{conversation_id} — Get conversation with messages
PATCH  /v1/conversations/{conversation_id} — Rename a conversation
DELETE /v1/conversations/{conversation_id} — Delete a conversation
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, require_user
from ..services import conversations as store

logger = logging.getLogger(__name__)

conversations_router = APIRouter(prefix="/conversations", tags=["conversations"])


class ConversationCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, max_length=200)


class ConversationRename(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)


class ConversationSummary(BaseModel):
    id: str
    title: Optional[str] = None
    created_at: str
    updated_at: str


class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    sequence_number: int
    created_at: str


class ConversationDetail(ConversationSummary):
    messages: list[MessageOut] = []


def _summary(convo) -> ConversationSummary:
    return ConversationSummary(
        id=convo.id,
        title=convo.title,
        created_at=convo.created_at.isoformat() if convo.created_at else "",
        updated_at=convo.updated_at.isoformat() if convo.updated_at else "",
    )


@conversations_router.get("", response_model=list[ConversationSummary])
async def list_conversations(
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """List conversations for the current user, most recently active first. All of them unless `limit` is given."""
    convos = await store.list_conversations(db, user.user_id, limit=limit, offset=offset)
    return [_summary(c) for c in convos]


@conversations_router.post("", response_model=ConversationSummary, status_code=201)
async def create_conversation(
    body: ConversationCreate,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    convo = await store.create_conversation(db, user.user_id, title=body.title)
    return _summary(convo)


@conversations_router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a conversation with its messages, oldest first."""
    found = await store.get_conversation_with_messages(db, user.user_id, conversation_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    convo, messages = found
    return ConversationDetail(
        **_summary(convo).model_dump(),
        messages=[
            MessageOut(
                id=m.id,
                role=m.role,
                content=m.content,
                sequence_number=m.sequence_number,
                created_at=m.created_at.isoformat() if m.created_at else "",
            )
            for m in messages
        ],
    )


@conversations_router.patch("/{conversation_id}", response_model=ConversationSummary)
async def rename_conversation(
    conversation_id: str,
    body: ConversationRename,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    convo = await store.rename_conversation(db, user.user_id, conversation_id, body.title)
    if convo is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _summary(convo)


@conversations_router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user: AuthenticatedUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a conversation and all its messages."""
    if not await store.delete_conversation(db, user.user_id, conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"deleted": True, "conversation_id": conversation_id}
