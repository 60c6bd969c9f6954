"""Integration-test fixtures for deterministic provider behavior."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from deepdraft.llm.openai_client import OpenAIChatClient


@pytest.fixture(autouse=True)
def _mock_openai_chat_calls(
    monkeypatch: pytest.MonkeyPatch,
    default_reply: Callable[[str], str],
) -> None:
    """Mock OpenAI chat calls in integration tests to avoid network/key requirements."""

    def _mock_chat_completion(self, **kwargs: object) -> str:
        """Answer the final user prompt with the deterministic default reply."""

        _ = self
        messages = kwargs["messages"]
        return default_reply(messages[-1]["content"])  # type: ignore[index]

    monkeypatch.setattr(OpenAIChatClient, "chat_completion_text", _mock_chat_completion)
