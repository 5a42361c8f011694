"""
Conversation store.

Append-only message log per conversation plus conversation metadata.
No business logic. Every lookup is scoped by user; another user's
conversation reads as "not found" (None), never as a permission error.
Functions flush but never commit — the caller owns the transaction.
"""

import logging
from typing import Optional

from sqlalchemy import select, func, delete as sql_delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.conversation import Conversation, Message, ROLES

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


def title_from_message(message: str) -> str:
    """Conversation title derived from its first user message."""
    text = message.strip()
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text


async def create_conversation(
    db: AsyncSession,
    user_id: str,
    title: Optional[str] = None,
) -> Conversation:
    convo = Conversation(user_id=user_id, title=title or None)
    db.add(convo)
    await db.flush()
    logger.info("Created conversation %s for user=%s", convo.id, user_id)
    return convo


async def list_conversations(
    db: AsyncSession,
    user_id: str,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[Conversation]:
    """All of the user's conversations, most recently updated first. `limit` pages."""
    query = (
        select(Conversation)
        .where(Conversation.user_id == user_id)
        .order_by(Conversation.updated_at.desc())
        .offset(offset)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_conversation(
    db: AsyncSession,
    user_id: str,
    conversation_id: str,
) -> Optional[Conversation]:
    result = await db.execute(
        select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_messages(db: AsyncSession, conversation_id: str) -> list[Message]:
    """All messages of a conversation, oldest first."""
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.sequence_number.asc())
    )
    return list(result.scalars().all())


async def get_conversation_with_messages(
    db: AsyncSession,
    user_id: str,
    conversation_id: str,
) -> Optional[tuple[Conversation, list[Message]]]:
    convo = await get_conversation(db, user_id, conversation_id)
    if convo is None:
        return None
    return convo, await get_messages(db, convo.id)


async def append_message(
    db: AsyncSession,
    convo: Conversation,
    role: str,
    content: str,
) -> Message:
    """
    Append one message. The conversation's updated_at is bumped in the same
    flush as the insert, so both land in the same transaction.
    """
    if role not in ROLES:
        raise ValueError(f"Invalid message role: {role!r}")

    result = await db.execute(
        select(func.max(Message.sequence_number)).where(Message.conversation_id == convo.id)
    )
    last_seq = result.scalar_one_or_none() or 0

    now = utcnow()
    msg = Message(
        conversation_id=convo.id,
        role=role,
        content=content,
        sequence_number=last_seq + 1,
        created_at=now,
        updated_at=now,
    )
    db.add(msg)
    convo.updated_at = now
    await db.flush()
    return msg


async def rename_conversation(
    db: AsyncSession,
    user_id: str,
    conversation_id: str,
    title: str,
) -> Optional[Conversation]:
    convo = await get_conversation(db, user_id, conversation_id)
    if convo is None:
        return None
    convo.title = title
    convo.updated_at = utcnow()
    await db.flush()
    return convo


async def delete_conversation(
    db: AsyncSession,
    user_id: str,
    conversation_id: str,
) -> bool:
    """Delete a conversation and all its messages. False if not found."""
    convo = await get_conversation(db, user_id, conversation_id)
    if convo is None:
        return False

    # Explicit delete so no orphan survives even without FK enforcement
    await db.execute(sql_delete(Message).where(Message.conversation_id == convo.id))
    await db.delete(convo)
    await db.flush()
    logger.info("Deleted conversation %s for user=%s", conversation_id, user_id)
    return True
