"""
Realtime notifications. Thin wrapper around core.redis.
Lets other open views refresh while the assistant is working.
"""

from ..core import redis as _redis


# ── Chat events ──────────────────────────────────────────────────────

async def chat_started(user_id: str, conversation_id: str):
    await _redis.notify_user(user_id, "chat.started", {"conversation_id": conversation_id})


async def chat_completed(user_id: str, conversation_id: str, data: dict = None):
    await _redis.notify_user(
        user_id, "chat.completed", {"conversation_id": conversation_id, **(data or {})}
    )


async def chat_error(user_id: str, conversation_id: str, error: str):
    await _redis.notify_user(
        user_id, "chat.error", {"conversation_id": conversation_id, "error": error}
    )


# ── Tool events ──────────────────────────────────────────────────────

async def tool_used(user_id: str, conversation_id: str, tool_name: str):
    await _redis.notify_user(
        user_id, "tool.used", {"conversation_id": conversation_id, "tool": tool_name}
    )
