from __future__ import annotations

from types import SimpleNamespace

from shengsuanyun.llm.messages import AbstractMessage, extract_content, format_messages, normalize_input
from shengsuanyun.llm.protocol import AIMessage, ToolCall, ToolCallFunction


class _KindMessage:
    """模拟 LangChain 风格的消息对象（通过 `_get_type()` 自报种类）。"""

    def __init__(self, kind: str, content: object, **extra: object) -> None:
        self._kind = kind
        self.content = content
        for k, v in extra.items():
            setattr(self, k, v)

    def _get_type(self) -> str:
        return self._kind


def test_plain_string_becomes_single_user_message() -> None:
    msgs = normalize_input("Hello")
    assert msgs == [AbstractMessage(role="user", content="Hello")]
    assert format_messages(msgs) == [{"role": "user", "content": "Hello"}]


def test_plain_string_content_round_trips_unchanged() -> None:
    text = "多行\n内容 with \"quotes\" and {braces}"
    formatted = format_messages(normalize_input(text))
    assert formatted[0]["content"] == text


def test_message_list_preserves_order_and_duplicates() -> None:
    raw = [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
    ]
    formatted = format_messages(normalize_input(raw))
    assert [m["role"] for m in formatted] == ["system", "user", "user", "assistant"]
    assert [m["content"] for m in formatted] == ["be brief", "hi", "hi", "hello"]


def test_messages_wrapper_mapping_and_object() -> None:
    wrapper = {"messages": [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]}
    assert [m.role for m in normalize_input(wrapper)] == ["user", "assistant"]

    obj = SimpleNamespace(messages=[{"role": "system", "content": "s"}])
    assert normalize_input(obj) == [AbstractMessage(role="system", content="s")]


def test_content_only_object_is_wrapped_as_single_message() -> None:
    msgs = normalize_input({"role": "system", "content": "rules"})
    assert msgs == [AbstractMessage(role="system", content="rules")]

    msgs2 = normalize_input({"content": "no role"})
    assert format_messages(msgs2) == [{"role": "user", "content": "no role"}]


def test_unknown_shape_is_stringified_as_user_message() -> None:
    assert normalize_input(42) == [AbstractMessage(role="user", content="42")]
    assert normalize_input(None) == [AbstractMessage(role="user", content="None")]


def test_kind_capability_maps_to_roles() -> None:
    raw = [
        _KindMessage("system", "s"),
        _KindMessage("human", "h"),
        _KindMessage("ai", "a"),
        _KindMessage("tool", "t", tool_call_id="call_1", name="lookup"),
        _KindMessage("chat", "c"),
    ]
    formatted = format_messages(normalize_input(raw))
    assert [m["role"] for m in formatted] == ["system", "user", "assistant", "tool", "user"]
    assert formatted[3] == {"role": "tool", "content": "t", "tool_call_id": "call_1", "name": "lookup"}


def test_kind_capability_takes_precedence_over_role_field() -> None:
    msg = _KindMessage("ai", "x", role="user")
    assert normalize_input([msg])[0].role == "assistant"


def test_langchain_style_type_attribute_is_recognised() -> None:
    msg = SimpleNamespace(type="human", content="from type attr")
    assert format_messages([msg]) == [{"role": "user", "content": "from type attr"}]


def test_explicit_role_outside_known_kinds_is_preserved() -> None:
    formatted = format_messages(normalize_input([{"role": "developer", "content": "d"}]))
    assert formatted == [{"role": "developer", "content": "d"}]


def test_tool_linkage_fields_only_emitted_when_present() -> None:
    raw = [
        {"role": "user", "content": "q", "name": None, "tool_call_id": ""},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "call_1", "type": "function", "function": {"name": "f", "arguments": "{}"}}],
        },
        {"role": "tool", "content": "42", "tool_call_id": "call_1"},
    ]
    formatted = format_messages(normalize_input(raw))
    assert formatted[0] == {"role": "user", "content": "q"}
    assert formatted[1] == {
        "role": "assistant",
        "content": "",
        "tool_calls": [{"id": "call_1", "type": "function", "function": {"name": "f", "arguments": "{}"}}],
    }
    assert formatted[2] == {"role": "tool", "content": "42", "tool_call_id": "call_1"}


def test_ai_message_output_can_be_fed_back_as_history() -> None:
    ai = AIMessage(
        content="calling",
        tool_calls=[ToolCall(id="c1", function=ToolCallFunction(name="f", arguments='{"a":1}'), index=0)],
    )
    formatted = format_messages(normalize_input([{"role": "user", "content": "q"}, ai]))
    assert formatted[1] == {
        "role": "assistant",
        "content": "calling",
        "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "f", "arguments": '{"a":1}'}}],
    }


def test_extract_content_flattens_structured_values() -> None:
    assert extract_content("x") == "x"
    assert extract_content(None) == ""
    assert extract_content(["a", {"type": "text", "text": "b"}, 3]) == 'a\n{"type":"text","text":"b"}\n3'
    assert extract_content({"k": "中文"}) == '{"k":"中文"}'


def test_role_less_mapping_without_content_is_serialized_whole() -> None:
    formatted = format_messages([{"foo": 1}])
    assert formatted == [{"role": "user", "content": '{"foo":1}'}]


def test_wire_tool_calls_keep_extra_keys_and_encode_structured_arguments() -> None:
    raw = [
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {
                    "id": "c1",
                    "type": "function",
                    "function": {"name": "f", "arguments": {"a": 1, "城市": "上海"}},
                    "x_vendor": {"trace": "t-1"},
                }
            ],
        }
    ]
    call = format_messages(raw)[0]["tool_calls"][0]
    assert call["x_vendor"] == {"trace": "t-1"}
    assert call["function"] == {"name": "f", "arguments": '{"a":1,"城市":"上海"}'}
    assert raw[0]["tool_calls"][0]["function"]["arguments"] == {"a": 1, "城市": "上海"}


def test_langchain_tool_call_shape_is_mapped_to_function_calls() -> None:
    history = SimpleNamespace(
        type="ai",
        content="",
        tool_calls=[{"name": "lookup", "args": {"q": "x"}, "id": "c1", "type": "tool_call"}],
    )
    formatted = format_messages([history])
    assert formatted == [
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "lookup", "arguments": '{"q":"x"}'}}],
        }
    ]


def test_abstract_message_with_tool_call_objects_formats_to_wire() -> None:
    msg = AbstractMessage(
        role="assistant",
        content="",
        tool_calls=[ToolCall(id="c2", function=ToolCallFunction(name="g", arguments="{}"), index=3)],
    )
    assert format_messages([msg])[0]["tool_calls"] == [
        {"id": "c2", "type": "function", "function": {"name": "g", "arguments": "{}"}}
    ]
