import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure backend root is on sys.path so bare imports work (e.g. `from storage import NovelStore`)
_backend_root = str(Path(__file__).resolve().parent.parent)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from core.llm_client import LLMClient, LLMConfig  # noqa: E402
from storage import NovelStore  # noqa: E402


class ScriptedLLM(LLMClient):
    """LLM client that answers from a script instead of a provider.

    Each reply is consumed by one call. A string is returned whole (batch) or
    split into small segments (stream). A list is a ready-made segment
    sequence; an exception instance inside it is raised when reached. An
    exception instance as a reply fails the call outright.
    """

    def __init__(self, replies: Optional[List[Any]] = None, configured: bool = True):
        super().__init__(LLMConfig(api_key="test-key" if configured else None, model="scripted-model"))
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def script(self, *replies: Any) -> "ScriptedLLM":
        self.replies.extend(replies)
        return self

    def _next(self, messages, model, temperature, max_tokens):
        self.calls.append(
            {"messages": messages, "model": model, "temperature": temperature, "max_tokens": max_tokens}
        )
        if not self.replies:
            raise AssertionError("no scripted reply left")
        return self.replies.pop(0)

    def _openai_complete(self, messages, model, temperature, max_tokens) -> str:
        reply = self._next(messages, model, temperature, max_tokens)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, list):
            return "".join(reply)
        return reply

    def _openai_stream(self, messages, model, temperature, max_tokens):
        reply = self._next(messages, model, temperature, max_tokens)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            reply = [reply[i : i + 16] for i in range(0, len(reply), 16)]
        for item in reply:
            if isinstance(item, Exception):
                raise item
            yield item


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def store(tmp_path) -> NovelStore:
    return NovelStore(str(tmp_path / "storyloom-test.db"))
