"""
Turn orchestration.

Receive message → resolve conversation → save user message → assemble
context → run agent loop → save assistant message → notify.

Two entry points share everything except how the loop is driven:

  handle_message()    single-shot, runs on the request's DB session
  open_stream_turn()  streamed, the loop runs in a background task with
                      its own session so the assistant message is saved
                      even if the client goes away mid-stream
"""

import asyncio
import logging
import time
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_session_factory
from ..models.conversation import ROLE_ASSISTANT, ROLE_USER, Conversation, Message
from ..services import conversations as store
from ..services import realtime
from ..services.llm import get_model
from ..tools.registry import build_toolset
from .context import build_messages
from .errors import ConversationNotFoundError
from .loop import ChatModel, run_agent
from .stream import GENERIC_ERROR, AgentEvent, AgentStream, EventType, encode_sse

logger = logging.getLogger(__name__)

# Strong references to running stream producers; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task] = set()


async def _open_conversation(
    db: AsyncSession,
    user_id: str,
    message: str,
    conversation_id: Optional[str],
) -> tuple[Conversation, list[Message]]:
    """Existing conversation + its history, or a new one titled after `message`."""
    if conversation_id:
        found = await store.get_conversation_with_messages(db, user_id, conversation_id)
        if found is None:
            raise ConversationNotFoundError(conversation_id)
        return found

    convo = await store.create_conversation(db, user_id, title=store.title_from_message(message))
    return convo, []


async def handle_message(
    db: AsyncSession,
    user_id: str,
    message: str,
    conversation_id: Optional[str] = None,
    model: Optional[ChatModel] = None,
) -> dict:
    """
    Main entry point for non-streaming requests.

    Everything is written through `db`; the caller commits. A turn that
    fails (AgentError) leaves nothing behind once the caller rolls back.
    """
    start = time.monotonic()

    # 1. Resolve conversation, history read before the new message lands
    convo, history = await _open_conversation(db, user_id, message, conversation_id)

    # 2. Save user message
    await store.append_message(db, convo, ROLE_USER, message)

    # 3. Notify other open views
    await realtime.chat_started(user_id, convo.id)

    # 4. Assemble context + tools for this turn
    messages = await build_messages(db, user_id, history, message)
    toolset = build_toolset(db, user_id)

    async def on_tool_used(call):
        await realtime.tool_used(user_id, convo.id, call.name)

    # 5. Run the loop
    try:
        result = await run_agent(model or get_model(), toolset, messages, on_tool_used=on_tool_used)
    except Exception as e:
        logger.exception("Turn failed for conversation %s: %s", convo.id, e)
        await realtime.chat_error(user_id, convo.id, str(e))
        raise

    # 6. Save assistant message
    await store.append_message(db, convo, ROLE_ASSISTANT, result.text)

    elapsed = int((time.monotonic() - start) * 1000)
    await realtime.chat_completed(user_id, convo.id, {
        "state": result.state.value,
        "iterations": result.iterations,
        "elapsed_ms": elapsed,
    })
    logger.info(
        "Turn %s: state=%s iterations=%d tools=%s %dms",
        convo.id, result.state.value, result.iterations, result.tools_used, elapsed,
    )

    return {
        "content": result.text,
        "conversation_id": convo.id,
        "state": result.state.value,
        "iterations": result.iterations,
        "tools_used": result.tools_used,
    }


# ── Streaming ────────────────────────────────────────────────────────

_END = object()


class StreamTurn:
    """
    A streamed turn whose producer is already running.

    events() yields SSE frames: conversationId first, then the loop's
    events, then exactly one of done / error. Closing events() early only
    stops delivery; the producer still finishes and persists.
    """

    def __init__(
        self,
        user_id: str,
        conversation_id: str,
        message: str,
        history: list[Message],
        model: ChatModel,
    ):
        self.user_id = user_id
        self.conversation_id = conversation_id
        self._message = message
        self._history = history
        self._model = model
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._produce())
        _background_tasks.add(self._task)
        self._task.add_done_callback(_background_tasks.discard)

    async def wait(self) -> None:
        """Wait for the producer to finish (persistence included)."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _produce(self) -> None:
        try:
            async with get_session_factory()() as db:
                messages = await build_messages(db, self.user_id, self._history, self._message)
                stream = AgentStream(self._model, build_toolset(db, self.user_id), messages)

                async for event in stream.events():
                    if event.type is EventType.TOOL_USED:
                        await realtime.tool_used(self.user_id, self.conversation_id, event.value)
                    await self._queue.put(event)

                convo = await store.get_conversation(db, self.user_id, self.conversation_id)
                if convo is None:
                    raise ConversationNotFoundError(self.conversation_id)
                await store.append_message(db, convo, ROLE_ASSISTANT, stream.text)
                await db.commit()

            logger.info(
                "Stream turn %s: state=%s iterations=%d tools=%s",
                self.conversation_id, stream.state.value, stream.iterations, stream.tools_used,
            )
            await realtime.chat_completed(self.user_id, self.conversation_id, {
                "state": stream.state.value,
                "iterations": stream.iterations,
            })
            await self._queue.put(AgentEvent(EventType.DONE))
        except Exception as e:
            logger.exception("Stream turn failed for conversation %s: %s", self.conversation_id, e)
            await realtime.chat_error(self.user_id, self.conversation_id, str(e))
            await self._queue.put(AgentEvent(EventType.ERROR, GENERIC_ERROR))
        finally:
            await self._queue.put(_END)

    async def events(self) -> AsyncGenerator[str, None]:
        finished = False
        try:
            yield encode_sse(AgentEvent(EventType.CONVERSATION_ID, self.conversation_id))
            while True:
                event = await self._queue.get()
                if event is _END:
                    finished = True
                    return
                yield encode_sse(event)
        finally:
            if not finished:
                logger.info(
                    "Client left conversation %s mid-stream; turn continues in background",
                    self.conversation_id,
                )


async def open_stream_turn(
    user_id: str,
    message: str,
    conversation_id: Optional[str] = None,
    model: Optional[ChatModel] = None,
) -> StreamTurn:
    """
    Resolve the conversation and commit the user message, then start the
    producer. Raises ConversationNotFoundError before anything is written.
    """
    async with get_session_factory()() as db:
        convo, history = await _open_conversation(db, user_id, message, conversation_id)
        await store.append_message(db, convo, ROLE_USER, message)
        await db.commit()

    await realtime.chat_started(user_id, convo.id)

    turn = StreamTurn(user_id, convo.id, message, history, model or get_model())
    turn.start()
    return turn


async def drain_stream_turns(timeout: float = 10.0) -> None:
    """Wait for running stream producers so their replies are saved before shutdown."""
    if not _background_tasks:
        return
    logger.info("Waiting for %d stream turn(s) to finish", len(_background_tasks))
    _, pending = await asyncio.wait(set(_background_tasks), timeout=timeout)
    if pending:
        logger.warning("%d stream turn(s) still running after %.0fs", len(pending), timeout)
