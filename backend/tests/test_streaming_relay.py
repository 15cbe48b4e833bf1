import asyncio
import json
import threading
import time

import pytest

from conftest import ScriptedLLM
from core.errors import TransportError
from models.generation import PlotDesign
from services.streaming import (
    DONE_MARKER,
    iter_segments,
    relay,
    sse_frame,
    stream_call,
    stream_completion,
)


def _parse_frames(frames):
    parsed = []
    for frame in frames:
        assert frame.endswith("\n\n")
        lines = frame.strip("\n").split("\n")
        event = lines[0][len("event: "):]
        data = "\n".join(line[len("data: "):] for line in lines[1:])
        parsed.append((event, data))
    return parsed


async def _collect(frames):
    return [frame async for frame in frames]


def test_sse_frame_splits_multiline_data():
    assert sse_frame("error", "line one\nline two") == "event: error\ndata: line one\ndata: line two\n\n"
    assert sse_frame("message", {"content": "héllo"}) == 'event: message\ndata: {"content": "héllo"}\n\n'


@pytest.mark.asyncio
async def test_three_segments_then_done():
    llm = ScriptedLLM([["A", "B", "C"]])
    frames = _parse_frames(await _collect(relay(stream_completion(llm, [{"role": "user", "content": "go"}]))))
    assert frames == [
        ("message", '{"content": "A"}'),
        ("message", '{"content": "B"}'),
        ("message", '{"content": "C"}'),
        ("done", DONE_MARKER),
    ]


@pytest.mark.asyncio
async def test_failure_mid_stream_yields_message_then_single_error():
    llm = ScriptedLLM([["A", TransportError("provider stream failed: reset")]])
    frames = _parse_frames(await _collect(relay(stream_completion(llm, []))))
    assert frames == [
        ("message", '{"content": "A"}'),
        ("error", "provider stream failed: reset"),
    ]


@pytest.mark.asyncio
async def test_failure_before_first_segment_yields_only_error():
    llm = ScriptedLLM([TransportError("connection refused")])
    frames = _parse_frames(await _collect(relay(stream_completion(llm, []))))
    assert frames == [("error", "connection refused")]


@pytest.mark.asyncio
async def test_unconfigured_client_fails_as_error_frame():
    llm = ScriptedLLM(configured=False)
    frames = _parse_frames(await _collect(relay(stream_completion(llm, []))))
    assert frames == [("error", "AI features are not configured")]


@pytest.mark.asyncio
async def test_structured_call_sends_result_before_done():
    payload = {"title": "Ambush", "content": "They wait at the ford.", "summary": "An ambush."}
    llm = ScriptedLLM([json.dumps(payload)])

    def run(emit):
        return PlotDesign.model_validate(json.loads(llm.complete_streaming([], None, emit)))

    segments, result = stream_call(run)
    frames = _parse_frames(await _collect(relay(segments, result)))
    events = [event for event, _ in frames]
    assert events[-2:] == ["result", "done"]
    assert set(events[:-2]) == {"message"}
    streamed = "".join(json.loads(data)["content"] for event, data in frames if event == "message")
    assert json.loads(streamed) == payload
    assert json.loads(frames[-2][1])["title"] == "Ambush"


@pytest.mark.asyncio
async def test_segments_keep_provider_order():
    parts = [str(i) for i in range(200)]
    received = [segment async for segment in iter_segments(lambda: iter(parts))]
    assert received == parts


@pytest.mark.asyncio
async def test_closing_consumer_stops_the_worker():
    pulled = []
    finished = threading.Event()

    def producer():
        try:
            for i in range(1000):
                pulled.append(i)
                time.sleep(0.005)
                yield str(i)
        finally:
            finished.set()

    segments = iter_segments(producer)
    first = await segments.__anext__()
    assert first == "0"
    await segments.aclose()

    assert await asyncio.to_thread(finished.wait, 2.0)
    assert len(pulled) < 1000


@pytest.mark.asyncio
async def test_stream_does_not_block_event_loop():
    def producer():
        for chunk in ("a", "b", "c"):
            time.sleep(0.08)
            yield chunk

    start = time.perf_counter()
    task = asyncio.create_task(_collect(iter_segments(producer)))
    await asyncio.sleep(0.05)
    assert time.perf_counter() - start < 0.15
    assert await task == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_trickling_stream_hits_deadline_with_single_error():
    pulled = []
    finished = threading.Event()

    def producer():
        try:
            for i in range(1000):
                pulled.append(i)
                time.sleep(0.02)
                yield str(i)
        finally:
            finished.set()

    frames = _parse_frames(await _collect(relay(iter_segments(producer, timeout=0.2))))

    events = [event for event, _ in frames]
    assert events[-1] == "error"
    assert events.count("error") == 1
    assert "done" not in events
    assert set(events[:-1]) <= {"message"}
    assert "timed out after 0.2s" in frames[-1][1]
    assert await asyncio.to_thread(finished.wait, 2.0)
    assert len(pulled) < 1000


@pytest.mark.asyncio
async def test_deadline_does_not_cut_a_stream_that_finishes_in_time():
    def run(emit):
        for chunk in "abc":
            emit(chunk)
        return "ok"

    segments, result = stream_call(run, timeout=5)
    frames = _parse_frames(await _collect(relay(segments, result)))
    assert [event for event, _ in frames] == ["message", "message", "message", "result", "done"]
