"""
Turn-fatal agent errors.

Tool failures are NOT here: they are isolated inside the tool wrapper and
reported to the model as {"success": false, ...} observations.
"""


class AgentError(Exception):
    """Base class for failures that abort a whole turn."""


class ToolNotFoundError(AgentError):
    """The model asked for a tool the registry does not declare (schema/registry drift)."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(
            f"Tool not found: {name!r} (declared: {', '.join(available) or 'none'})"
        )


class ModelError(AgentError):
    """The language model call failed or returned something unusable."""


class ConversationNotFoundError(LookupError):
    """The conversation does not exist or belongs to another user."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")
