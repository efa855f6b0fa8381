import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coaching_assistant.config import ConfigSnapshot  # noqa: E402
from coaching_assistant.errors import ModelRequestError  # noqa: E402
from coaching_assistant.models import ModelQuery  # noqa: E402
from coaching_assistant.providers import ModelProvider  # noqa: E402


class FakeProvider(ModelProvider):
    """Scripted provider: streams ``chunks`` and answers single shots with ``reply``."""

    name = "fake"

    def __init__(
        self,
        chunks: Optional[List[str]] = None,
        reply: str = "",
        fail_after: Optional[int] = None,
        fail_single_shot: bool = False,
        chunk_delay: float = 0.0,
    ):
        super().__init__(model="fake-model")
        self.chunks = list(chunks or [])
        self.reply = reply
        self.fail_after = fail_after
        self.fail_single_shot = fail_single_shot
        self.chunk_delay = chunk_delay
        self.queries: List[ModelQuery] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = 0

    async def _stream(self, query):
        self.queries.append(query)
        try:
            if self.gate is not None:
                await self.gate.wait()
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i >= self.fail_after:
                    raise ModelRequestError("connection reset by peer", provider=self.name)
                if self.chunk_delay:
                    await asyncio.sleep(self.chunk_delay)
                yield chunk
            if self.fail_after is not None and self.fail_after >= len(self.chunks):
                raise ModelRequestError("connection reset by peer", provider=self.name)
        finally:
            self.closed += 1

    async def _complete(self, query):
        self.queries.append(query)
        if self.fail_single_shot:
            raise RuntimeError("429 rate limit")
        return self.reply


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


@pytest.fixture
def settings() -> ConfigSnapshot:
    return ConfigSnapshot(
        model="claude-3-5-sonnet-20241022",
        anthropic_api_key="test-key",
        silence_threshold=0.3,
        publish_interval=0.05,
        dialogue_listen_duration=30,
        auto_suggest=False,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(chunks=["Hello", ", ", "world"], reply="1. What matters most to you here?")
