"""
Agent loop — the bounded call → act → observe cycle.

    RUNNING ──(reply without tool calls)──────────────► DONE
       │
       └──(ceiling reached, still calling tools)──────► EXHAUSTED (fallback text)

Each iteration is one model call plus the tool calls it asked for, executed
one at a time in the order the model listed them (a later call may depend
on an earlier one having been committed, e.g. create company → create
application for that company). Tool-exchange turns live only in the
in-memory history of this loop; nothing here touches the conversation store.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from ..core.config import get_settings
from ..services.llm import ModelFragment, ModelReply, ToolCallRequest
from ..tools.registry import ToolSet

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "Désolé, je n'ai pas pu traiter ta demande. Essaie de reformuler."


class LoopState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    EXHAUSTED = "exhausted"


class ChatModel(Protocol):
    async def complete(self, messages: list[dict], tools: Optional[list[dict]] = None) -> ModelReply:
        ...

    def stream(self, messages: list[dict], tools: Optional[list[dict]] = None) -> AsyncIterator[ModelFragment]:
        ...


@dataclass
class LoopResult:
    text: str
    state: LoopState
    iterations: int
    tools_used: list[str] = field(default_factory=list)
    elapsed_ms: int = 0


OnToolUsed = Callable[[ToolCallRequest], Awaitable[None]]


def max_iterations_or_default(max_iterations: Optional[int]) -> int:
    return max_iterations if max_iterations is not None else get_settings().agent_max_iterations


def assistant_tool_turn(text: str, tool_calls: list[ToolCallRequest]) -> dict:
    """The model's tool-call-bearing turn, as it goes back into the history."""
    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [call.to_openai() for call in tool_calls],
    }


def observation_turn(call: ToolCallRequest, result: str) -> dict:
    """One tool result, correlated to its request by call id."""
    return {
        "role": "tool",
        "tool_call_id": call.id,
        "name": call.name,
        "content": result,
    }


async def run_tool_calls(
    toolset: ToolSet,
    tool_calls: list[ToolCallRequest],
    on_tool_used: Optional[OnToolUsed] = None,
) -> list[dict]:
    """
    Resolve and execute each call in order. An unknown tool name raises
    ToolNotFoundError and aborts the turn; a failing tool does not.
    """
    observations = []
    for call in tool_calls:
        bound = toolset.get(call.name)
        if on_tool_used is not None:
            await on_tool_used(call)
        result = await bound.execute(call.args)
        observations.append(observation_turn(call, result))
    return observations


async def run_agent(
    model: ChatModel,
    toolset: ToolSet,
    messages: list[dict],
    max_iterations: Optional[int] = None,
    on_tool_used: Optional[OnToolUsed] = None,
) -> LoopResult:
    """
    Single-shot loop. Always returns text once it completes: the reply of
    the first tool-free model call, or FALLBACK_TEXT when the ceiling is hit.
    Model errors propagate and abort the turn.
    """
    ceiling = max_iterations_or_default(max_iterations)
    history = list(messages)
    schemas = toolset.schemas()
    tools_used: list[str] = []
    start = time.monotonic()

    iterations = 0
    while iterations < ceiling:
        iterations += 1
        reply = await model.complete(history, schemas)

        if not reply.tool_calls:
            elapsed = int((time.monotonic() - start) * 1000)
            logger.info("Agent loop DONE after %d iteration(s) in %dms", iterations, elapsed)
            return LoopResult(
                text=reply.text,
                state=LoopState.DONE,
                iterations=iterations,
                tools_used=tools_used,
                elapsed_ms=elapsed,
            )

        history.append(assistant_tool_turn(reply.text, reply.tool_calls))
        history.extend(await run_tool_calls(toolset, reply.tool_calls, on_tool_used))
        tools_used.extend(call.name for call in reply.tool_calls)

    elapsed = int((time.monotonic() - start) * 1000)
    logger.warning("Agent loop EXHAUSTED after %d iteration(s), tools=%s", iterations, tools_used)
    return LoopResult(
        text=FALLBACK_TEXT,
        state=LoopState.EXHAUSTED,
        iterations=iterations,
        tools_used=tools_used,
        elapsed_ms=elapsed,
    )
