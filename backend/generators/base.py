import json
import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar
from uuid import uuid4

from pydantic import ValidationError

from core.errors import GenerationError, ParseError
from core.llm_client import CompletionOptions, LLMClient
from utils.response_cleaner import parse_json_object, strip_fences

logger = logging.getLogger("storyloom.generators")

T = TypeVar("T")


class GenerationState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PARSING = "parsing"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    GenerationState.IDLE: {GenerationState.REQUESTING, GenerationState.FAILED},
    GenerationState.REQUESTING: {GenerationState.PARSING, GenerationState.FAILED},
    GenerationState.PARSING: {GenerationState.VALIDATING, GenerationState.FAILED},
    GenerationState.VALIDATING: {GenerationState.DONE, GenerationState.FAILED},
    GenerationState.DONE: set(),
    GenerationState.FAILED: set(),
}


class GenerationCall:
    """State of a single generation request. Never shared between calls."""

    def __init__(self, generator: str, operation: str):
        self.id = str(uuid4())
        self.generator = generator
        self.operation = operation
        self.state = GenerationState.IDLE
        self.history: List[GenerationState] = [GenerationState.IDLE]
        self.started_at = datetime.now()
        self.raw_chars = 0

    def advance(self, state: GenerationState):
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"illegal generation transition {self.state.value} -> {state.value}"
            )
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return self.state in (GenerationState.DONE, GenerationState.FAILED)


@dataclass
class GenerationConfig:
    model: Optional[str] = None
    temperature: float = 0.7


class BaseGenerator:
    """Shared request / parse / validate cycle for all generators.

    Each generator owns one system prompt and receives its client and config at
    construction. No retries happen here.
    """

    name = "base"
    system_prompt = ""

    def __init__(self, llm_client: LLMClient, config: Optional[GenerationConfig] = None):
        self.llm_client = llm_client
        self.config = config or GenerationConfig()

    def _messages(self, prompt: str, system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
        messages = []
        system = self.system_prompt if system_prompt is None else system_prompt
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _options(self, temperature: Optional[float] = None, max_tokens: Optional[int] = None) -> CompletionOptions:
        return CompletionOptions(
            model=self.config.model,
            temperature=self.config.temperature if temperature is None else temperature,
            max_tokens=max_tokens,
        )

    @contextmanager
    def _call(self, operation: str) -> Iterator[GenerationCall]:
        call = GenerationCall(self.name, operation)
        started = time.perf_counter()
        try:
            yield call
        except Exception as exc:
            if not call.finished:
                call.advance(GenerationState.FAILED)
            if isinstance(exc, GenerationError):
                exc.call = call
            logger.warning(
                "generation failed generator=%s operation=%s call_id=%s states=%s error=%s",
                self.name,
                operation,
                call.id,
                ",".join(s.value for s in call.history),
                exc,
            )
            raise
        logger.info(
            "generation done generator=%s operation=%s call_id=%s latency_ms=%.2f raw_chars=%d",
            self.name,
            operation,
            call.id,
            (time.perf_counter() - started) * 1000,
            call.raw_chars,
        )

    def _request(
        self,
        call: GenerationCall,
        prompt: str,
        options: CompletionOptions,
        on_segment: Optional[Callable[[str], None]] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        call.advance(GenerationState.REQUESTING)
        messages = self._messages(prompt, system_prompt)
        if on_segment is None:
            raw = self.llm_client.complete(messages, options)
        else:
            raw = self.llm_client.complete_streaming(messages, options, on_segment)
        call.raw_chars = len(raw)
        return raw

    def request_text(
        self,
        operation: str,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        with self._call(operation) as call:
            raw = self._request(
                call, prompt, self._options(temperature, max_tokens), system_prompt=system_prompt
            )
            call.advance(GenerationState.PARSING)
            text = strip_fences(raw)
            call.advance(GenerationState.VALIDATING)
            call.advance(GenerationState.DONE)
            return text

    def request_object(
        self,
        operation: str,
        prompt: str,
        build: Callable[[Dict[str, Any]], T],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        on_segment: Optional[Callable[[str], None]] = None,
    ) -> T:
        with self._call(operation) as call:
            raw = self._request(call, prompt, self._options(temperature, max_tokens), on_segment)
            call.advance(GenerationState.PARSING)
            payload = parse_json_object(raw)
            call.advance(GenerationState.VALIDATING)
            try:
                result = build(payload)
            except ValidationError as exc:
                raise ParseError(
                    f"model response failed validation: {exc.error_count()} error(s)",
                    raw=json.dumps(payload, ensure_ascii=False),
                ) from exc
            call.advance(GenerationState.DONE)
            return result
