"""
Tool registry.

Tools are declared once, at import time, with the @tool decorator. Each
declaration carries a pydantic model for its arguments; the JSON schema
sent to the LLM is generated from that model, and the same model
validates/coerces whatever the LLM sends back.

Per turn, build_toolset(db, user_id) binds every declared tool to the
caller's identity and DB session. A bound tool's execute() never raises:
validation failures and persistence errors come back as
{"success": false, "message": ...} so the model can react to them.
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..orchestrator.errors import ToolNotFoundError

logger = logging.getLogger(__name__)


class ToolRisk(str, Enum):
    READ = "read"       # Read-only, no side effects
    WRITE = "write"     # Creates/modifies data


class ToolArgs(BaseModel):
    """Base for tool argument models. Fields are snake_case in Python and
    camelCase for the LLM; blank strings count as "not provided"."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: v for k, v in data.items()
                if v is not None and not (isinstance(v, str) and not v.strip())
            }
        return data


Handler = Callable[..., Awaitable[dict]]


@dataclass
class ToolSpec:
    name: str
    description: str
    args_model: type[ToolArgs]
    handler: Handler
    risk: ToolRisk
    error_prefix: str

    def schema_for_llm(self) -> dict:
        params = self.args_model.model_json_schema(by_alias=True)
        params.pop("title", None)
        params.setdefault("type", "object")
        params.setdefault("properties", {})
        params.setdefault("additionalProperties", False)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": params,
            },
        }


# Declaration order is the order the LLM sees.
_tools: list[ToolSpec] = []


def tool(
    name: str,
    description: str,
    args_model: type[ToolArgs],
    risk: ToolRisk = ToolRisk.READ,
    error_prefix: str = "Erreur",
):
    """
    Decorator to register an async handler as an LLM-callable tool.

    The handler is called as handler(args, db=..., user_id=...) with `args`
    an instance of `args_model`, and returns a dict that must contain
    "success" and "message". `error_prefix` starts the message reported to
    the LLM when the handler raises.
    """

    def decorator(func: Handler):
        if any(t.name == name for t in _tools):
            raise ValueError(f"Tool '{name}' is already registered")
        _tools.append(ToolSpec(
            name=name,
            description=description,
            args_model=args_model,
            handler=func,
            risk=risk,
            error_prefix=error_prefix,
        ))
        logger.debug("Registered tool: %s [%s]", name, risk.value)
        return func

    return decorator


def tool_result(success: bool, message: str, **fields) -> dict:
    """The observation shape every tool returns."""
    return {"success": success, "message": message, **fields}


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class BoundTool:
    """A declared tool bound to one user and one DB session for one turn."""

    def __init__(self, spec: ToolSpec, db: AsyncSession, user_id: str):
        self.spec = spec
        self._db = db
        self._user_id = user_id

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, args: Any) -> str:
        """Validate, run inside a SAVEPOINT, serialise. Never raises on tool failure."""
        start = time.monotonic()
        try:
            parsed = self.spec.args_model.model_validate({} if args is None else args)
        except ValidationError as e:
            result = tool_result(
                False, f"Arguments invalides pour {self.name}: {_describe_validation_error(e)}"
            )
        else:
            try:
                # A failing tool rolls back its own writes and nothing else
                async with self._db.begin_nested():
                    result = await self.spec.handler(parsed, db=self._db, user_id=self._user_id)
            except Exception as e:
                logger.error("Tool '%s' failed: %s: %s", self.name, type(e).__name__, e)
                result = tool_result(False, f"{self.spec.error_prefix}: {e}")

        logger.info(
            "Tool %s(%s) → success=%s in %dms",
            self.name, json.dumps(args, default=str)[:200],
            result.get("success"), int((time.monotonic() - start) * 1000),
        )
        return json.dumps(result, ensure_ascii=False, default=str)


class ToolSet:
    """The fixed, ordered set of tools available to one turn."""

    def __init__(self, tools: list[BoundTool]):
        self._tools = tools
        self._by_name = {t.name: t for t in tools}

    def __iter__(self):
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return [t.name for t in self._tools]

    def get(self, name: str) -> BoundTool:
        """Resolve a tool by name. An unknown name is a registry mismatch, not a tool failure."""
        found = self._by_name.get(name)
        if found is None:
            raise ToolNotFoundError(name, self.names())
        return found

    def schemas(self) -> list[dict]:
        """All tools formatted for OpenAI function calling."""
        return [t.spec.schema_for_llm() for t in self._tools]


def init_tools() -> None:
    """
    Import tool modules to trigger registration. Safe to call repeatedly.
    Order matters: it is the order the LLM sees the tools in.
    """
    from . import contacts      # noqa: F401
    from . import companies     # noqa: F401
    from . import applications  # noqa: F401


def build_toolset(db: AsyncSession, user_id: str) -> ToolSet:
    """Bind every declared tool to `user_id` and `db` for one turn."""
    init_tools()
    return ToolSet([BoundTool(spec, db, user_id) for spec in _tools])


def get_tool_names() -> list[str]:
    init_tools()
    return [t.name for t in _tools]
