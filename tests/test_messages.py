from agentloop.messages import Message, Reply, ToolCall, Usage, check_tool_results


def test_constructors():
    assert Message.system("s").role == "system"
    assert Message.user("u").role == "user"
    result = Message.tool_result("id1", "out", is_error=True)
    assert (result.role, result.tool_call_id, result.is_error) == ("tool_result", "id1", True)


def test_assistant_copies_tool_calls():
    calls = [ToolCall(id="a", name="calc", args={})]
    msg = Message.assistant("", calls)
    calls.append(ToolCall(id="b", name="calc", args={}))
    assert len(msg.tool_calls) == 1


def test_dict_round_trip_keeps_tool_fields():
    msg = Message.assistant("checking", [ToolCall(id="a", name="calc", args={"expr": "1+1"})])
    assert Message.from_dict(msg.to_dict()) == msg
    result = Message.tool_result("a", "[error: boom]", is_error=True)
    assert result.to_dict() == {
        "role": "tool_result",
        "content": "[error: boom]",
        "tool_call_id": "a",
        "is_error": True,
    }


def test_from_dict_accepts_null_content():
    msg = Message.from_dict({"role": "assistant", "content": None})
    assert msg.content == ""


def test_reply_has_tool_calls():
    assert not Reply(content="done").has_tool_calls
    assert Reply(tool_calls=(ToolCall(id="a", name="x", args={}),)).has_tool_calls


def test_usage_addition():
    assert Usage(1, 2) + Usage(10, 20) == Usage(11, 22)


class TestCheckToolResults:
    def test_valid(self):
        messages = [
            Message.user("q"),
            Message.assistant("", [ToolCall(id="a", name="x", args={})]),
            Message.tool_result("a", "r"),
        ]
        assert check_tool_results(messages)

    def test_result_without_call(self):
        assert not check_tool_results([Message.user("q"), Message.tool_result("a", "r")])

    def test_result_before_call(self):
        messages = [
            Message.tool_result("a", "r"),
            Message.assistant("", [ToolCall(id="a", name="x", args={})]),
        ]
        assert not check_tool_results(messages)

    def test_duplicate_result(self):
        messages = [
            Message.assistant("", [ToolCall(id="a", name="x", args={})]),
            Message.tool_result("a", "r"),
            Message.tool_result("a", "r again"),
        ]
        assert not check_tool_results(messages)
