"""
Streaming agent loop + SSE wire format.

Same state machine as loop.run_agent(), but driven by the model's streaming
call so text reaches the client as it is generated:

    text fragment  → {"type": "text", "value": "..."}      (as soon as it arrives)
    before a tool  → {"type": "toolUsed", "value": "<name>"}
    ceiling hit    → {"type": "text", "value": FALLBACK_TEXT}

AgentStream.text is the concatenation of every text event emitted, which
is exactly what gets persisted as the assistant message. That includes
narration the model produced in iterations that also requested tools.
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncGenerator, Optional

from ..tools.registry import ToolSet
from .loop import (
    FALLBACK_TEXT,
    ChatModel,
    LoopState,
    assistant_tool_turn,
    max_iterations_or_default,
    observation_turn,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Une erreur s'est produite"


class EventType(str, Enum):
    CONVERSATION_ID = "conversationId"
    TOOL_USED = "toolUsed"
    TEXT = "text"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class AgentEvent:
    type: EventType
    value: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"type": self.type.value}
        if self.value is not None:
            data["value"] = self.value
        return data


def encode_sse(event: AgentEvent) -> str:
    """One event → one SSE frame: `data: <json>` + blank line."""
    return f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


class AgentStream:
    """
    One streamed run of the agent loop.

    Iterate events() once. Model errors and ToolNotFoundError propagate out
    of the iteration; whatever text was emitted before that stays in .text.
    """

    def __init__(
        self,
        model: ChatModel,
        toolset: ToolSet,
        messages: list[dict],
        max_iterations: Optional[int] = None,
    ):
        self._model = model
        self._toolset = toolset
        self._history = list(messages)
        self._ceiling = max_iterations_or_default(max_iterations)
        self._parts: list[str] = []
        self.state = LoopState.RUNNING
        self.iterations = 0
        self.tools_used: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def _text_event(self, value: str) -> AgentEvent:
        self._parts.append(value)
        return AgentEvent(EventType.TEXT, value)

    async def events(self) -> AsyncGenerator[AgentEvent, None]:
        schemas = self._toolset.schemas()
        start = time.monotonic()

        while self.iterations < self._ceiling:
            self.iterations += 1
            iteration_text: list[str] = []
            tool_calls = []

            async for fragment in self._model.stream(self._history, schemas):
                if fragment.text:
                    iteration_text.append(fragment.text)
                    yield self._text_event(fragment.text)
                if fragment.tool_calls:
                    tool_calls.extend(fragment.tool_calls)

            if not tool_calls:
                self.state = LoopState.DONE
                logger.info(
                    "Agent stream DONE after %d iteration(s) in %dms, %d chars",
                    self.iterations, int((time.monotonic() - start) * 1000), len(self.text),
                )
                return

            self._history.append(assistant_tool_turn("".join(iteration_text), tool_calls))
            for call in tool_calls:
                bound = self._toolset.get(call.name)
                yield AgentEvent(EventType.TOOL_USED, call.name)
                result = await bound.execute(call.args)
                self._history.append(observation_turn(call, result))
                self.tools_used.append(call.name)

        self.state = LoopState.EXHAUSTED
        logger.warning(
            "Agent stream EXHAUSTED after %d iteration(s), tools=%s",
            self.iterations, self.tools_used,
        )
        yield self._text_event(FALLBACK_TEXT)
