import json
from types import SimpleNamespace

import httpx
import openai
import pytest
import requests

from core.errors import ConfigurationError, GenerationTimeout, TransportError
from core.llm_client import (
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    CompletionOptions,
    LLMClient,
    LLMConfig,
    LLMProvider,
    create_llm_client,
)


class FakeCompletions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.result


def _openai_client(completions):
    client = LLMClient(LLMConfig(api_key="sk-test"))
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeOllamaResponse:
    def __init__(self, payload=None, lines=None):
        self.payload = payload
        self.lines = lines or []

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload

    def iter_lines(self, decode_unicode=False):
        return iter(self.lines)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class TestConfig:
    def test_defaults_per_provider(self):
        openai_config = LLMConfig()
        assert openai_config.model == DEFAULT_OPENAI_MODEL
        assert not openai_config.is_configured

        ollama_config = LLMConfig(provider=LLMProvider.OLLAMA)
        assert ollama_config.base_url == DEFAULT_OLLAMA_BASE_URL
        assert ollama_config.is_configured

    def test_bad_numbers_fall_back(self):
        config = LLMConfig(api_key="  ", chat_max_tokens=-5, chat_temperature="hot", request_timeout=0)
        assert config.api_key is None
        assert (config.chat_max_tokens, config.chat_temperature, config.request_timeout) == (4000, 0.7, 120.0)

    def test_unknown_provider_falls_back_to_openai(self):
        client = create_llm_client("carrier-pigeon", api_key="k")
        assert client.config.provider == LLMProvider.OPENAI

    def test_missing_key_fails_before_any_call(self):
        client = LLMClient(LLMConfig())
        with pytest.raises(ConfigurationError) as info:
            client.complete([{"role": "user", "content": "hi"}])
        assert info.value.status_code == 503


class TestOpenAI:
    def test_complete_passes_resolved_options(self):
        result = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="hello"))])
        completions = FakeCompletions(result=result)
        client = _openai_client(completions)
        text = client.complete([{"role": "user", "content": "hi"}], CompletionOptions(temperature=5, max_tokens=50))
        assert text == "hello"
        assert completions.kwargs["temperature"] == 2.0
        assert completions.kwargs["max_tokens"] == 50
        assert completions.kwargs["model"] == DEFAULT_OPENAI_MODEL

    def test_no_choices_is_transport_error(self):
        client = _openai_client(FakeCompletions(result=SimpleNamespace(choices=[])))
        with pytest.raises(TransportError):
            client.complete([])

    def test_timeout_maps_to_generation_timeout(self):
        error = openai.APITimeoutError(request=httpx.Request("POST", "https://api.example.test/v1"))
        client = _openai_client(FakeCompletions(error=error))
        with pytest.raises(GenerationTimeout) as info:
            client.complete([])
        assert info.value.status_code == 504
        assert info.value.__cause__ is error

    def test_stream_skips_empty_deltas(self):
        completions = FakeCompletions(result=iter([_chunk("A"), _chunk(None), _chunk(""), _chunk("B")]))
        client = _openai_client(completions)
        assert list(client.stream([])) == ["A", "B"]
        assert completions.kwargs["stream"] is True


class TestOllama:
    def _client(self):
        return LLMClient(LLMConfig(provider=LLMProvider.OLLAMA, model="llama3"))

    def test_complete_posts_chat_payload(self, monkeypatch):
        seen = {}

        def fake_post(url, json=None, timeout=None, stream=False):
            seen.update(url=url, json=json, stream=stream)
            return FakeOllamaResponse(payload={"message": {"content": "hi there"}})

        monkeypatch.setattr(requests, "post", fake_post)
        text = self._client().complete([{"role": "user", "content": "hi"}], CompletionOptions(max_tokens=64))
        assert text == "hi there"
        assert seen["url"] == f"{DEFAULT_OLLAMA_BASE_URL}/api/chat"
        assert seen["json"]["stream"] is False
        assert seen["json"]["options"]["num_predict"] == 64

    def test_stream_reads_ndjson_until_done(self, monkeypatch):
        lines = [
            json.dumps({"message": {"content": "A"}}),
            "",
            json.dumps({"message": {"content": "B"}}),
            json.dumps({"message": {"content": ""}, "done": True}),
            json.dumps({"message": {"content": "never"}}),
        ]
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeOllamaResponse(lines=lines))
        assert list(self._client().stream([])) == ["A", "B"]

    def test_stream_error_line(self, monkeypatch):
        lines = [json.dumps({"message": {"content": "A"}}), json.dumps({"error": "model not found"})]
        monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeOllamaResponse(lines=lines))
        with pytest.raises(TransportError, match="model not found"):
            list(self._client().stream([]))

    def test_connection_failure_is_transport_error(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(requests, "post", refuse)
        with pytest.raises(TransportError) as info:
            self._client().complete([])
        assert isinstance(info.value.__cause__, requests.ConnectionError)

    def test_timeout(self, monkeypatch):
        def slow(*args, **kwargs):
            raise requests.Timeout("read timed out")

        monkeypatch.setattr(requests, "post", slow)
        with pytest.raises(GenerationTimeout):
            self._client().complete([])
