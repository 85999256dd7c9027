import json

import pytest

from livecode.errors import StreamError
from livecode.generation.stream import decode_record, iter_content_deltas
from livecode.sse import is_done, strip_data_prefix


async def _lines(*lines):
    for line in lines:
        yield line


async def _collect(*lines):
    return [delta async for delta in iter_content_deltas(_lines(*lines))]


def _record(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]})


def test_strip_data_prefix():
    assert strip_data_prefix("data: {}") == "{}"
    assert strip_data_prefix("data:{}") == "{}"
    assert strip_data_prefix("{}") == "{}"


def test_is_done():
    assert is_done("data: [DONE]")
    assert is_done("  data: [DONE]  ")
    assert not is_done("data: {}")


def test_decode_record_content_and_empty_deltas():
    assert decode_record(_record("abc")) == "abc"
    assert decode_record('data: {"choices": [{"delta": {"role": "assistant"}}]}') is None
    assert decode_record('data: {"choices": []}') is None
    assert decode_record('data: {"id": "gen-1"}') is None


def test_decode_record_rejects_non_objects():
    with pytest.raises(ValueError):
        decode_record("data: [1, 2]")
    with pytest.raises(ValueError):
        decode_record("data: {not json")


def test_decode_record_raises_on_error_record():
    with pytest.raises(StreamError, match="rate limited"):
        decode_record('data: {"error": {"message": "rate limited", "code": 429}}')


@pytest.mark.asyncio
async def test_deltas_in_order_and_stop_at_done():
    deltas = await _collect(
        _record("def "),
        "",
        _record("init_game():"),
        "data: [DONE]",
        _record("ignored"),
    )
    assert deltas == ["def ", "init_game():"]


@pytest.mark.asyncio
async def test_comments_and_blank_lines_are_skipped():
    deltas = await _collect(": OPENROUTER PROCESSING", "   ", _record("x = 1"), "data: [DONE]")
    assert deltas == ["x = 1"]


@pytest.mark.asyncio
async def test_malformed_lines_are_skipped(caplog):
    with caplog.at_level("WARNING", logger="livecode.generation.stream"):
        deltas = await _collect(_record("a"), "data: {broken", _record("b"), "data: [DONE]")
    assert deltas == ["a", "b"]
    assert "Failed to parse line" in caplog.text


@pytest.mark.asyncio
async def test_error_record_ends_the_sequence():
    with pytest.raises(StreamError):
        await _collect(_record("a"), 'data: {"error": "upstream overloaded"}', _record("b"))


@pytest.mark.asyncio
async def test_lines_ending_before_done_raise():
    seen = []
    with pytest.raises(StreamError, match=r"without \[DONE\]"):
        async for delta in iter_content_deltas(_lines(_record("def init_game():"), _record("\n    pass\n"))):
            seen.append(delta)
    assert seen == ["def init_game():", "\n    pass\n"]
