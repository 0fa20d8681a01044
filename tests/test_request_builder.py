from __future__ import annotations

import pytest
from pydantic import ValidationError

from shengsuanyun.config.loader import ChatOptions
from shengsuanyun.llm.messages import format_messages, normalize_input
from shengsuanyun.llm.request_builder import build_request_body, coerce_options


def test_default_request_body_for_plain_string() -> None:
    body = build_request_body(model="m", messages=format_messages(normalize_input("Hello")))
    assert body == {
        "model": "m",
        "messages": [{"role": "user", "content": "Hello"}],
        "temperature": 0.7,
        "top_p": 1,
        "presence_penalty": 0,
        "frequency_penalty": 0,
    }


def test_per_call_overrides_beat_configured_defaults() -> None:
    configured = ChatOptions(temperature=0.2, top_p=0.9)
    body = build_request_body(model="m", messages=[], options=configured, overrides={"temperature": 0.5})
    assert body["temperature"] == 0.5
    assert body["top_p"] == 0.9
    assert body["presence_penalty"] == 0


def test_max_tokens_only_when_positive() -> None:
    for value in (0, -1):
        assert "max_tokens" not in build_request_body(model="m", messages=[], overrides={"max_tokens": value})
    assert build_request_body(model="m", messages=[], overrides={"max_tokens": 256})["max_tokens"] == 256


def test_response_format_omitted_for_text_default() -> None:
    assert "response_format" not in build_request_body(model="m", messages=[], options={"response_format": "text"})
    body = build_request_body(model="m", messages=[], options={"response_format": "json_object"})
    assert body["response_format"] == {"type": "json_object"}


def test_stop_and_stream_flags() -> None:
    body = build_request_body(model="m", messages=[], overrides={"stop": "END"}, stream=True)
    assert body["stop"] == ["END"]
    assert body["stream"] is True
    assert "stream" not in build_request_body(model="m", messages=[])


def test_tools_attach_tool_choice_auto() -> None:
    body = build_request_body(model="m", messages=[], tools=[{"name": "f"}])
    assert body["tools"] == [{"type": "function", "function": {"name": "f", "parameters": {}}}]
    assert body["tool_choice"] == "auto"

    no_tools = build_request_body(model="m", messages=[], tools=[])
    assert "tools" not in no_tools
    assert "tool_choice" not in no_tools


def test_unknown_option_is_rejected() -> None:
    with pytest.raises(ValidationError):
        coerce_options({"temprature": 0.1})
