import json
from types import SimpleNamespace

import pytest

from agentloop.agent import Agent
from agentloop.messages import Message, ToolCall, Usage, check_tool_results
from agentloop.providers import (
    OllamaProvider,
    OpenAICompatibleProvider,
    StreamEvent,
    assemble_reply,
    create_provider,
)
from agentloop.providers.ollama import messages_to_ollama
from agentloop.providers.openai_compatible import ToolCallAccumulator, messages_to_openai

from conftest import CalcTool


async def events(*items):
    for item in items:
        yield item


def conversation():
    return [
        Message.system("sys"),
        Message.user("2+2 and 3+3?"),
        Message.assistant("", [
            ToolCall(id="a", name="calc", args={"expr": "2+2"}),
            ToolCall(id="b", name="calc", args={"expr": "3+3"}),
        ]),
        Message.tool_result("a", "4"),
        Message.tool_result("b", "6"),
        Message.assistant("4 and 6"),
    ]


class TestAssembleReply:
    async def test_concatenates_text(self):
        reply = await assemble_reply(events(StreamEvent(text="Hel"), StreamEvent(text="lo")))
        assert reply.content == "Hello"
        assert not reply.has_tool_calls
        assert reply.usage is None

    async def test_last_tool_call_list_wins(self):
        first = [ToolCall(id="1", name="x", args={})]
        final = [ToolCall(id="1", name="x", args={"a": 1}), ToolCall(id="2", name="y", args={})]
        reply = await assemble_reply(events(
            StreamEvent(tool_use_started=True),
            StreamEvent(tool_calls=first),
            StreamEvent(tool_calls=final, stop_reason="tool_use"),
        ))
        assert list(reply.tool_calls) == final

    async def test_sums_usage(self):
        reply = await assemble_reply(events(
            StreamEvent(usage=Usage(1, 2)),
            StreamEvent(text="x", usage=Usage(3, 4)),
        ))
        assert reply.usage == Usage(4, 6)


def test_create_provider_unknown():
    with pytest.raises(ValueError, match="Unknown provider 'nope'"):
        create_provider("nope")


def test_create_provider_passes_kwargs():
    provider = create_provider("ollama", model_id="llama3", host="http://example:11434")
    assert isinstance(provider, OllamaProvider)
    assert provider.model_id == "llama3"


def test_messages_to_openai():
    converted = messages_to_openai(conversation())
    assert [m["role"] for m in converted] == [
        "system", "user", "assistant", "tool", "tool", "assistant",
    ]
    calls = converted[2]["tool_calls"]
    assert converted[2]["content"] is None
    assert [c["id"] for c in calls] == ["a", "b"]
    assert json.loads(calls[1]["function"]["arguments"]) == {"expr": "3+3"}
    assert converted[4] == {"role": "tool", "tool_call_id": "b", "content": "6"}


def test_messages_to_ollama():
    converted = messages_to_ollama(conversation())
    assert [m["role"] for m in converted] == [
        "system", "user", "assistant", "tool", "tool", "assistant",
    ]
    assert converted[2]["tool_calls"][0]["function"] == {"name": "calc", "arguments": {"expr": "2+2"}}
    assert converted[3]["tool_name"] == "calc"


class TestToolCallAccumulator:
    def test_merges_fragments_by_index(self):
        acc = ToolCallAccumulator()
        assert acc.add(0, "call_1", "calc", '{"ex') is True
        assert acc.add(1, "call_2", "echo", '{"text": "hi"}') is True
        assert acc.add(0, None, None, 'pr": "2+2"}') is False
        assert acc.build() == [
            ToolCall(id="call_1", name="calc", args={"expr": "2+2"}),
            ToolCall(id="call_2", name="echo", args={"text": "hi"}),
        ]

    def test_invalid_json_becomes_empty_args(self):
        acc = ToolCallAccumulator()
        acc.add(0, "c", "calc", '{"expr": ')
        assert acc.build() == [ToolCall(id="c", name="calc", args={})]

    def test_empty(self):
        acc = ToolCallAccumulator()
        assert not acc
        assert acc.build() == []


def _chunk(content=None, tool_calls=None, finish_reason=None, usage=None, choices=True):
    if not choices:
        return SimpleNamespace(usage=usage, choices=[])
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        usage=usage,
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)],
    )


def _tc_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class FakeCompletions:
    def __init__(self, chunks):
        self.chunks = chunks
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs

        async def stream():
            for chunk in self.chunks:
                yield chunk

        return stream()


def fake_openai(chunks):
    completions = FakeCompletions(chunks)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class TestOpenAICompatibleProvider:
    async def test_streams_text(self):
        client, completions = fake_openai([
            _chunk(content="Hello"),
            _chunk(content=" there", finish_reason="stop"),
            _chunk(choices=False, usage=SimpleNamespace(prompt_tokens=7, completion_tokens=2)),
        ])
        provider = OpenAICompatibleProvider(model_id="m", client=client)

        reply = await provider.complete([Message.user("hi")])

        assert reply.content == "Hello there"
        assert reply.tool_calls == ()
        assert reply.usage == Usage(7, 2)
        assert completions.kwargs["model"] == "m"
        assert "tools" not in completions.kwargs

    async def test_assembles_streamed_tool_calls(self):
        client, completions = fake_openai([
            _chunk(tool_calls=[_tc_delta(0, id="call_1", name="calc", arguments="")]),
            _chunk(tool_calls=[_tc_delta(0, arguments='{"expr"')]),
            _chunk(tool_calls=[_tc_delta(0, arguments=': "2+2"}')]),
            _chunk(finish_reason="tool_calls"),
        ])
        provider = OpenAICompatibleProvider(model_id="m", client=client)

        collected = [e async for e in provider.stream([Message.user("2+2")], [CalcTool()])]

        assert collected[0].tool_use_started
        final = collected[-1]
        assert final.stop_reason == "tool_use"
        assert final.tool_calls == [ToolCall(id="call_1", name="calc", args={"expr": "2+2"})]
        assert completions.kwargs["tools"][0]["function"]["name"] == "calc"


class FakeOllamaClient:
    def __init__(self, chunks):
        self.chunks = chunks
        self.kwargs = None

    async def chat(self, **kwargs):
        self.kwargs = kwargs

        async def stream():
            for chunk in self.chunks:
                yield chunk

        return stream()


class TestOllamaProvider:
    async def test_synthesizes_tool_call_ids(self):
        client = FakeOllamaClient([
            {"message": {"content": "Let me check."}},
            {"message": {"content": "", "tool_calls": [
                {"function": {"name": "calc", "arguments": {"expr": "1+1"}}},
                {"function": {"name": "calc", "arguments": {"expr": "2+2"}}},
            ]}},
            {"message": {"content": ""}, "done": True, "prompt_eval_count": 12, "eval_count": 5},
        ])
        provider = OllamaProvider(model_id="llama3", client=client)

        reply = await provider.complete([Message.user("sums")], [CalcTool()])

        assert reply.content == "Let me check."
        ids = [tc.id for tc in reply.tool_calls]
        assert all(i.startswith("call_") for i in ids)
        assert len(set(ids)) == 2
        assert reply.tool_calls[1].args == {"expr": "2+2"}
        assert reply.usage == Usage(12, 5)
        assert client.kwargs["tools"][0]["function"]["name"] == "calc"

    async def test_no_tools_passes_none(self):
        client = FakeOllamaClient([{"message": {"content": "hi"}, "done": True}])
        provider = OllamaProvider(model_id="llama3", client=client)

        reply = await provider.complete([Message.user("hi")])

        assert reply.content == "hi"
        assert client.kwargs["tools"] is None


class ScriptedOllamaClient:
    """Returns one list of chunks per chat call."""

    def __init__(self, turns):
        self.turns = list(turns)

    async def chat(self, **kwargs):
        chunks = self.turns.pop(0)

        async def stream():
            for chunk in chunks:
                yield chunk

        return stream()


def _ollama_tool_turn(name, args):
    return [
        {"message": {"content": "", "tool_calls": [{"function": {"name": name, "arguments": args}}]}},
        {"message": {"content": ""}, "done": True},
    ]


async def test_ollama_ids_stay_unique_across_turns(echo):
    client = ScriptedOllamaClient([
        _ollama_tool_turn("echo", {"text": "one"}),
        _ollama_tool_turn("echo", {"text": "two"}),
        [{"message": {"content": "done"}, "done": True}],
    ])
    agent = Agent(OllamaProvider(model_id="llama3", client=client), tools=[echo])

    assert await agent.run("echo twice") == "done"

    ids = [m.tool_call_id for m in agent.messages if m.role == "tool_result"]
    assert len(ids) == 2
    assert ids[0] != ids[1]
    assert check_tool_results(agent.messages)


def test_openai_missing_ids_are_synthesized():
    acc = ToolCallAccumulator()
    acc.add(0, None, "calc", '{"expr": "1+1"}')
    acc.add(1, None, "calc", '{"expr": "2+2"}')
    first, second = acc.build()
    assert first.id.startswith("call_")
    assert first.id != second.id
