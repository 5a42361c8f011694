"""Agent loop tests (single-shot and streamed)."""

import json

import pytest

from jobdesk.orchestrator.errors import ModelError, ToolNotFoundError
from jobdesk.orchestrator.loop import FALLBACK_TEXT, LoopState, run_agent
from jobdesk.orchestrator.stream import AgentEvent, AgentStream, EventType, encode_sse
from jobdesk.services import companies as company_service
from jobdesk.tools.registry import build_toolset

from scripted import USER_ID, ScriptedModel, call, fragments, reply

START = [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]


class TestRunAgent:
    """SUT: run_agent"""

    async def test_plain_reply_is_done_in_one_iteration(self, db):
        model = ScriptedModel(replies=[reply("Bonjour !")])

        result = await run_agent(model, build_toolset(db, USER_ID), START)

        assert result.state is LoopState.DONE
        assert result.text == "Bonjour !"
        assert result.iterations == 1
        assert len(model.tools_seen[0]) == 7

    async def test_tool_observation_fed_back(self, db):
        model = ScriptedModel(replies=[
            reply("", call("add_company", call_id="c1", name="Acme")),
            reply("Acme est ajoutée."),
        ])

        result = await run_agent(model, build_toolset(db, USER_ID), START)

        assert result.state is LoopState.DONE
        assert result.text == "Acme est ajoutée."
        assert result.iterations == 2
        assert result.tools_used == ["add_company"]

        second = model.calls[1]
        assert second[:2] == START
        assert second[2]["role"] == "assistant"
        assert second[2]["tool_calls"][0]["id"] == "c1"
        assert second[3]["role"] == "tool"
        assert second[3]["tool_call_id"] == "c1"
        assert json.loads(second[3]["content"])["success"] is True

    async def test_tool_calls_run_in_order(self, db):
        model = ScriptedModel(replies=[
            reply(
                "",
                call("add_company", call_id="c1", name="Acme"),
                call("add_application", call_id="c2", title="Dev", companyName="Acme"),
            ),
            reply("Fait."),
        ])

        await run_agent(model, build_toolset(db, USER_ID), START)

        observations = [m for m in model.calls[1] if m["role"] == "tool"]
        assert [o["tool_call_id"] for o in observations] == ["c1", "c2"]
        # The second call saw the company the first one created
        assert json.loads(observations[1]["content"])["companyCreated"] is False
        assert len(await company_service.list_companies(db, USER_ID)) == 1

    async def test_failing_tool_does_not_abort(self, db):
        model = ScriptedModel(replies=[
            reply("", call("add_contact", email="nope")),
            reply("L'email semble invalide."),
        ])

        result = await run_agent(model, build_toolset(db, USER_ID), START)

        assert result.state is LoopState.DONE
        observation = model.calls[1][-1]
        assert json.loads(observation["content"])["success"] is False

    async def test_ceiling_returns_fallback(self, db):
        model = ScriptedModel(replies=[reply("", call("list_contacts")) for _ in range(3)])

        result = await run_agent(model, build_toolset(db, USER_ID), START, max_iterations=3)

        assert result.state is LoopState.EXHAUSTED
        assert result.text == FALLBACK_TEXT
        assert result.iterations == 3
        assert len(model.calls) == 3

    async def test_default_ceiling_is_five(self, db):
        model = ScriptedModel(replies=[reply("", call("list_contacts")) for _ in range(5)])

        result = await run_agent(model, build_toolset(db, USER_ID), START)

        assert result.state is LoopState.EXHAUSTED
        assert len(model.calls) == 5

    async def test_unknown_tool_aborts_turn(self, db):
        model = ScriptedModel(replies=[reply("", call("drop_tables"))])

        with pytest.raises(ToolNotFoundError):
            await run_agent(model, build_toolset(db, USER_ID), START)

    async def test_model_error_propagates(self, db):
        model = ScriptedModel(replies=[ModelError("provider down")])

        with pytest.raises(ModelError):
            await run_agent(model, build_toolset(db, USER_ID), START)

    async def test_input_messages_not_mutated(self, db):
        messages = list(START)
        model = ScriptedModel(replies=[reply("", call("list_contacts")), reply("ok")])

        await run_agent(model, build_toolset(db, USER_ID), messages)

        assert messages == START


async def collect(stream: AgentStream) -> list[AgentEvent]:
    return [event async for event in stream.events()]


class TestAgentStream:
    """SUT: AgentStream.events"""

    async def test_text_fragments_forwarded(self, db):
        model = ScriptedModel(streams=[fragments("Bon", "jour", " !")])
        stream = AgentStream(model, build_toolset(db, USER_ID), START)

        events = await collect(stream)

        assert [e.value for e in events] == ["Bon", "jour", " !"]
        assert all(e.type is EventType.TEXT for e in events)
        assert stream.state is LoopState.DONE
        assert stream.text == "Bonjour !"

    async def test_tool_used_before_execution(self, db):
        model = ScriptedModel(streams=[
            fragments("Je regarde. ", tool_calls=[call("list_companies")]),
            fragments("Aucune entreprise."),
        ])
        stream = AgentStream(model, build_toolset(db, USER_ID), START)

        events = await collect(stream)

        assert [(e.type, e.value) for e in events] == [
            (EventType.TEXT, "Je regarde. "),
            (EventType.TOOL_USED, "list_companies"),
            (EventType.TEXT, "Aucune entreprise."),
        ]
        # Persisted text is exactly the emitted text
        assert stream.text == "Je regarde. Aucune entreprise."
        assert model.calls[1][2]["content"] == "Je regarde. "

    async def test_exhausted_emits_fallback(self, db):
        model = ScriptedModel(streams=[
            fragments(tool_calls=[call("list_contacts")]) for _ in range(2)
        ])
        stream = AgentStream(model, build_toolset(db, USER_ID), START, max_iterations=2)

        events = await collect(stream)

        assert events[-1] == AgentEvent(EventType.TEXT, FALLBACK_TEXT)
        assert stream.state is LoopState.EXHAUSTED
        assert stream.text == FALLBACK_TEXT

    async def test_unknown_tool_raises_without_tool_used(self, db):
        model = ScriptedModel(streams=[fragments("Un instant", tool_calls=[call("drop_tables")])])
        stream = AgentStream(model, build_toolset(db, USER_ID), START)
        seen = []

        with pytest.raises(ToolNotFoundError):
            async for event in stream.events():
                seen.append(event)

        assert [e.type for e in seen] == [EventType.TEXT]

    async def test_model_error_mid_stream(self, db):
        model = ScriptedModel(streams=[[*fragments("Par"), ModelError("connection reset")]])
        stream = AgentStream(model, build_toolset(db, USER_ID), START)

        with pytest.raises(ModelError):
            await collect(stream)
        assert stream.text == "Par"


class TestEncodeSse:
    """SUT: encode_sse"""

    def test_frame_shape(self):
        frame = encode_sse(AgentEvent(EventType.TEXT, "Désolé"))
        assert frame == 'data: {"type": "text", "value": "Désolé"}\n\n'

    def test_done_has_no_value(self):
        assert encode_sse(AgentEvent(EventType.DONE)) == 'data: {"type": "done"}\n\n'

    def test_event_type_names(self):
        assert [t.value for t in EventType] == ["conversationId", "toolUsed", "text", "error", "done"]
