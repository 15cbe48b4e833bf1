import json
import time
import logging
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Callable, Iterator, Tuple
from enum import Enum

import openai
import requests

from core.errors import ConfigurationError, GenerationTimeout, TransportError


Message = Dict[str, str]


class LLMProvider(str, Enum):
    OPENAI = "openai"
    OLLAMA = "ollama"


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama2"


class LLMConfig:
    def __init__(
        self,
        provider: LLMProvider = LLMProvider.OPENAI,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        chat_max_tokens: Optional[int] = None,
        chat_temperature: Optional[float] = None,
        request_timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.api_key = (api_key or "").strip() or None

        if provider == LLMProvider.OLLAMA:
            self.base_url = (base_url or DEFAULT_OLLAMA_BASE_URL).rstrip("/")
            self.model = model or DEFAULT_OLLAMA_MODEL
        else:
            self.base_url = (base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/")
            self.model = model or DEFAULT_OPENAI_MODEL

        self.chat_max_tokens = _safe_positive_int(chat_max_tokens, 4000)
        self.chat_temperature = _safe_temperature(chat_temperature, 0.7)
        self.request_timeout = float(_safe_positive_int(request_timeout, 120))

    @property
    def is_configured(self) -> bool:
        if self.provider == LLMProvider.OLLAMA:
            return True
        return bool(self.api_key)


@dataclass
class CompletionOptions:
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


def _safe_positive_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(value)
        if parsed > 0:
            return parsed
    except (TypeError, ValueError):
        pass
    return fallback


def _safe_temperature(value: Any, fallback: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if parsed < 0:
        return 0.0
    if parsed > 2:
        return 2.0
    return parsed


class LLMClient:
    """Provider adapter with one batch and one streaming entry point.

    No retries happen here. Transport failures surface as ``TransportError``
    (``GenerationTimeout`` for timeouts) with the provider exception chained.
    """

    def __init__(self, config: LLMConfig):
        self.config = config
        self._client = None
        self._logger = logging.getLogger("storyloom.llm")

    def ensure_configured(self) -> None:
        if not self.config.is_configured:
            raise ConfigurationError()

    def _get_client(self):
        if self._client is not None:
            return self._client

        self._client = openai.OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            timeout=self.config.request_timeout,
            max_retries=0,
        )
        return self._client

    def _resolve(self, options: Optional[CompletionOptions]) -> Tuple[str, float, int]:
        options = options or CompletionOptions()
        model = options.model or self.config.model
        temperature = _safe_temperature(options.temperature, self.config.chat_temperature)
        max_tokens = _safe_positive_int(options.max_tokens, self.config.chat_max_tokens)
        return model, temperature, max_tokens

    def complete(
        self,
        messages: List[Message],
        options: Optional[CompletionOptions] = None,
    ) -> str:
        self.ensure_configured()
        model, temperature, max_tokens = self._resolve(options)
        started = time.perf_counter()
        if self.config.provider == LLMProvider.OLLAMA:
            content = self._ollama_complete(messages, model, temperature, max_tokens)
        else:
            content = self._openai_complete(messages, model, temperature, max_tokens)
        self._logger.info(
            "llm complete success provider=%s model=%s latency_ms=%.2f chars=%d",
            self.config.provider.value,
            model,
            (time.perf_counter() - started) * 1000,
            len(content),
        )
        return content

    def stream(
        self,
        messages: List[Message],
        options: Optional[CompletionOptions] = None,
    ) -> Iterator[str]:
        self.ensure_configured()
        model, temperature, max_tokens = self._resolve(options)
        started = time.perf_counter()
        emitted_chars = 0
        if self.config.provider == LLMProvider.OLLAMA:
            segments = self._ollama_stream(messages, model, temperature, max_tokens)
        else:
            segments = self._openai_stream(messages, model, temperature, max_tokens)
        for text in segments:
            if not text:
                continue
            emitted_chars += len(text)
            yield text
        self._logger.info(
            "llm stream done provider=%s model=%s latency_ms=%.2f chars=%d",
            self.config.provider.value,
            model,
            (time.perf_counter() - started) * 1000,
            emitted_chars,
        )

    def complete_streaming(
        self,
        messages: List[Message],
        options: Optional[CompletionOptions],
        on_segment: Callable[[str], None],
    ) -> str:
        parts: List[str] = []
        for text in self.stream(messages, options):
            parts.append(text)
            on_segment(text)
        return "".join(parts)

    def _openai_complete(self, messages, model, temperature, max_tokens) -> str:
        try:
            response = self._get_client().chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise GenerationTimeout(f"provider request timed out: {exc}") from exc
        except openai.OpenAIError as exc:
            self._log_failure(model, exc)
            raise TransportError(f"provider request failed: {exc}") from exc
        if not response.choices:
            raise TransportError("provider returned no choices")
        return response.choices[0].message.content or ""

    def _openai_stream(self, messages, model, temperature, max_tokens) -> Iterator[str]:
        try:
            response = self._get_client().chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            for chunk in response:
                yield self._extract_stream_delta_text(chunk)
        except openai.APITimeoutError as exc:
            raise GenerationTimeout(f"provider stream timed out: {exc}") from exc
        except openai.OpenAIError as exc:
            self._log_failure(model, exc)
            raise TransportError(f"provider stream failed: {exc}") from exc

    def _ollama_payload(self, messages, model, temperature, max_tokens, stream: bool) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": messages,
            "stream": stream,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }

    def _ollama_complete(self, messages, model, temperature, max_tokens) -> str:
        url = f"{self.config.base_url}/api/chat"
        payload = self._ollama_payload(messages, model, temperature, max_tokens, stream=False)
        try:
            response = requests.post(url, json=payload, timeout=self.config.request_timeout)
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as exc:
            raise GenerationTimeout(f"provider request timed out: {exc}") from exc
        except (requests.RequestException, ValueError) as exc:
            self._log_failure(model, exc)
            raise TransportError(f"provider request failed: {exc}") from exc
        message = data.get("message") or {}
        return str(message.get("content") or data.get("response") or "")

    def _ollama_stream(self, messages, model, temperature, max_tokens) -> Iterator[str]:
        url = f"{self.config.base_url}/api/chat"
        payload = self._ollama_payload(messages, model, temperature, max_tokens, stream=True)
        try:
            with requests.post(
                url, json=payload, stream=True, timeout=self.config.request_timeout
            ) as response:
                response.raise_for_status()
                for line in response.iter_lines(decode_unicode=True):
                    if not line:
                        continue
                    data = json.loads(line)
                    if data.get("error"):
                        raise TransportError(f"provider stream failed: {data['error']}")
                    message = data.get("message") or {}
                    yield str(message.get("content") or "")
                    if data.get("done"):
                        break
        except requests.Timeout as exc:
            raise GenerationTimeout(f"provider stream timed out: {exc}") from exc
        except (requests.RequestException, ValueError) as exc:
            self._log_failure(model, exc)
            raise TransportError(f"provider stream failed: {exc}") from exc

    def _log_failure(self, model: str, exc: Exception) -> None:
        self._logger.warning(
            "llm request failed provider=%s model=%s error=%s",
            self.config.provider.value,
            model,
            exc,
        )

    def _extract_stream_delta_text(self, chunk: Any) -> str:
        choices = getattr(chunk, "choices", None)
        if not choices:
            return ""
        delta = getattr(choices[0], "delta", None)
        if delta is None:
            return ""
        content = getattr(delta, "content", None)
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: List[str] = []
            for item in content:
                text = getattr(item, "text", None)
                if isinstance(text, str):
                    parts.append(text)
            return "".join(parts)
        return ""


def normalize_provider(provider: Optional[str]) -> LLMProvider:
    candidate = (provider or "openai").strip().lower()
    try:
        return LLMProvider(candidate)
    except ValueError:
        logging.getLogger("storyloom.llm").warning(
            "unknown llm provider=%s fallback=openai",
            candidate,
        )
        return LLMProvider.OPENAI


def create_llm_client(
    provider: str = "openai",
    **kwargs
) -> LLMClient:
    config = LLMConfig(provider=normalize_provider(provider), **kwargs)
    return LLMClient(config)
