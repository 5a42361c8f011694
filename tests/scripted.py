"""Scripted stand-in for the language model, plus helpers to build its script."""

import json

from jobdesk.services.llm import ModelFragment, ModelReply, ToolCallRequest

USER_ID = "dev-user"
OTHER_USER_ID = "someone-else"


def call(name: str, /, call_id: str = None, **args) -> ToolCallRequest:
    """A complete tool-call request as the model client would deliver it."""
    return ToolCallRequest(
        id=call_id or f"call_{name}",
        name=name,
        args=args,
        arguments=json.dumps(args),
    )


def reply(text: str = "", *tool_calls: ToolCallRequest) -> ModelReply:
    return ModelReply(text=text, tool_calls=list(tool_calls))


def fragments(*texts: str, tool_calls: list = None) -> list:
    """One streamed model invocation: text fragments, then tool calls (if any)."""
    frags = [ModelFragment(text=t) for t in texts]
    if tool_calls:
        frags.append(ModelFragment(tool_calls=list(tool_calls)))
    return frags


class ScriptedModel:
    """
    Plays back a fixed script, one entry per model invocation.

    `replies` feeds complete(), `streams` feeds stream(). An Exception in
    the script is raised at that point. Every invocation's messages are
    recorded in `calls`.
    """

    def __init__(self, replies=None, streams=None):
        self.replies = list(replies or [])
        self.streams = list(streams or [])
        self.calls: list[list[dict]] = []
        self.tools_seen: list = []

    def _record(self, messages, tools):
        self.calls.append([dict(m) for m in messages])
        self.tools_seen.append(tools)

    async def complete(self, messages, tools=None):
        self._record(messages, tools)
        step = self.replies.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    async def stream(self, messages, tools=None):
        self._record(messages, tools)
        for fragment in self.streams.pop(0):
            if isinstance(fragment, Exception):
                raise fragment
            yield fragment


def sse_events(body: str) -> list[dict]:
    """Decode an SSE body into its JSON events, in order."""
    events = []
    for frame in body.split("\n\n"):
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: "):]))
    return events
