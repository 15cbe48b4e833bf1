"""
Streaming relay: moves provider segments from a blocking worker thread onto the
event loop and frames them as server-sent events.

Frame order on the wire is ``message*`` followed by exactly one ``done`` or
exactly one ``error``. Calls that also produce a structured result send a single
``result`` frame right before ``done``.
"""

import asyncio
import json
import logging
import threading
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple

from fastapi import Request
from fastapi.responses import StreamingResponse

from core.errors import GenerationError, GenerationTimeout
from core.llm_client import CompletionOptions, LLMClient

logger = logging.getLogger("storyloom.stream")

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Transfer-Encoding": "chunked",
    "X-Accel-Buffering": "no",
}

DONE_MARKER = "[DONE]"

_END = object()

Emit = Callable[[str], None]


class StreamClosed(Exception):
    """Raised inside the worker thread once the consumer has gone away."""


def sse_frame(event: str, data: Any) -> str:
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False)
    # one data field per line
    body = "\ndata: ".join(data.splitlines() or [""])
    return f"event: {event}\ndata: {body}\n\n"


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, GenerationError):
        return exc.message
    return str(exc) or exc.__class__.__name__


async def pump(target: Callable[[Emit], Any], timeout: Optional[float] = None) -> AsyncIterator[str]:
    """Run ``target(emit)`` on a worker thread and yield what it emits, in order.

    Closing the returned generator makes the next ``emit`` raise ``StreamClosed``
    in the worker so it stops pulling from the provider. Worker errors are
    re-raised after the segments emitted before them. When ``timeout`` seconds
    pass before the worker finishes, the worker is told to stop and
    ``GenerationTimeout`` is raised.
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    queue: asyncio.Queue = asyncio.Queue()
    stop = threading.Event()
    worker_errors: List[BaseException] = []

    def emit(segment: str):
        if stop.is_set():
            raise StreamClosed()
        if segment:
            loop.call_soon_threadsafe(queue.put_nowait, segment)

    def stream_worker():
        try:
            target(emit)
        except StreamClosed:
            logger.info("stream worker stopped after consumer closed")
        except Exception as exc:
            worker_errors.append(exc)
        finally:
            loop.call_soon_threadsafe(queue.put_nowait, _END)

    worker = threading.Thread(target=stream_worker, daemon=True)
    worker.start()
    try:
        while True:
            if deadline is None:
                segment = await queue.get()
            else:
                try:
                    segment = await asyncio.wait_for(queue.get(), max(deadline - loop.time(), 0))
                except asyncio.TimeoutError as exc:
                    logger.warning("stream timed out timeout=%s", timeout)
                    raise GenerationTimeout(f"stream timed out after {timeout:g}s") from exc
            if segment is _END:
                break
            yield segment
    finally:
        stop.set()
        await asyncio.to_thread(worker.join, 0.2)

    if worker_errors:
        raise worker_errors[0]


def iter_segments(
    producer: Callable[[], Iterable[str]], timeout: Optional[float] = None
) -> AsyncIterator[str]:
    def target(emit: Emit):
        for segment in producer():
            emit(segment)

    return pump(target, timeout)


def stream_completion(
    llm_client: LLMClient,
    messages: List[Dict[str, str]],
    options: Optional[CompletionOptions] = None,
    timeout: Optional[float] = None,
) -> AsyncIterator[str]:
    return iter_segments(lambda: llm_client.stream(messages, options), timeout)


def stream_call(
    run: Callable[[Emit], Any], timeout: Optional[float] = None
) -> Tuple[AsyncIterator[str], Callable[[], Any]]:
    """Stream a generator call that reports segments through a callback.

    Returns the segment sequence and a getter for the call's return value, which
    is available once the sequence is exhausted.
    """
    holder: List[Any] = []

    def target(emit: Emit):
        holder.append(run(emit))

    return pump(target, timeout), lambda: holder[0]


def _result_payload(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    return value


async def relay(
    segments: AsyncIterator[str],
    result: Optional[Callable[[], Any]] = None,
) -> AsyncIterator[str]:
    """Frame a segment sequence as SSE ``message`` / ``done`` / ``error`` events."""
    count = 0
    try:
        async with aclosing(segments) as source:
            async for segment in source:
                count += 1
                yield sse_frame("message", {"content": segment})
    except Exception as exc:
        logger.warning("stream failed segments=%d error=%s", count, exc)
        yield sse_frame("error", describe_error(exc))
        return
    logger.info("stream done segments=%d", count)
    if result is not None:
        yield sse_frame("result", _result_payload(result()))
    yield sse_frame("done", DONE_MARKER)


def sse_response(frames: AsyncIterator[str], request: Optional[Request] = None) -> StreamingResponse:
    async def event_stream():
        async with aclosing(frames) as source:
            async for frame in source:
                if request is not None and await request.is_disconnected():
                    logger.info("stream client disconnected path=%s", request.url.path)
                    break
                yield frame

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
