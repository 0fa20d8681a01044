from __future__ import annotations

import asyncio

import pytest

from shengsuanyun.config.loader import LlmConfig
from shengsuanyun.core.errors import ResponseShapeError
from shengsuanyun.llm.fake import FakeHttpCall, FakeTransport
from shengsuanyun.models import ModelOption, _per_million, describe_model, list_models, model_options

_PRICE = "Price: $500000/1M tokens (prompt), $1250000/1M tokens (completion)"


def test_price_per_million_formatting() -> None:
    assert _per_million("0.5") == "500000"
    assert _per_million(0.25) == "250000"
    assert _per_million("abc") == "NaN"
    assert _per_million(None) == "NaN"


def test_description_half_plus_price_when_it_fits() -> None:
    original = "x" * 400
    out = describe_model({"description": original, "pricing": {"prompt": "0.5", "completion": "1.25"}})
    assert out == "x" * 200 + " " + _PRICE


def test_description_truncated_to_original_length() -> None:
    original = "y" * 100
    out = describe_model({"description": original, "pricing": {"prompt": "0.5", "completion": "1.25"}})
    assert len(out) == 100
    assert out.startswith("y" * 50 + " Price: $500000")
    assert out.endswith("...")


def test_model_options_filter_and_sort() -> None:
    payload = {
        "data": [
            {"id": "z/zeta", "name": "zeta", "description": "d" * 300, "pricing": {"prompt": "0", "completion": "0"}},
            {"id": "a/alpha", "name": "Alpha", "description": "d" * 300, "pricing": {"prompt": "0", "completion": "0"}},
            {"id": "", "name": "no id"},
            {"id": "no-name"},
            "garbage",
        ]
    }
    opts = model_options(payload)
    assert [(o.name, o.value) for o in opts] == [("Alpha", "a/alpha"), ("zeta", "z/zeta")]
    assert opts[0].to_dict()["value"] == "a/alpha"


def test_model_options_shape_errors() -> None:
    with pytest.raises(ResponseShapeError, match="Invalid response format"):
        model_options({"models": []})
    with pytest.raises(ResponseShapeError, match="No models found"):
        model_options({"data": [{"id": "x"}]})


def test_list_models_uses_identification_headers_only() -> None:
    payload = {"data": [{"id": "m", "name": "M", "description": "d" * 300, "pricing": {"prompt": "0", "completion": "0"}}]}
    transport = FakeTransport([FakeHttpCall(json=payload)])
    opts = asyncio.run(list_models(LlmConfig(), base_url="https://api.example.invalid/v1/", transport=transport))

    assert opts == [ModelOption(name="M", value="m", description=opts[0].description)]
    req = transport.requests[0]
    assert (req.method, req.url) == ("GET", "https://api.example.invalid/v1/models")
    assert "Authorization" not in req.headers
    assert req.headers["X-Title"] == "n8n ShengSuanYun Node"
