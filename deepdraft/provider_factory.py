"""Provider factory helpers for generation clients.

Responsibilities:
- Resolve provider identifiers to concrete generation client implementations.
- Keep the engine independent from concrete provider class construction.

Notes:
- Only `openai` is implemented at the moment.
"""

from __future__ import annotations

from .io.storage import DocumentStore
from .llm.generation import GenerationClient, OpenAIGenerationClient
from .llm.openai_client import OpenAIChatClient
from .llm.rate_limiter import RateLimiter


class ProviderFactory:
    """Factory for provider-backed clients used by the phase runners."""

    @staticmethod
    def create_generation_client(
        provider_id: str,
        model: str,
        document_store: DocumentStore,
        api_key: str | None = None,
        timeout_seconds: float = 120.0,
    ) -> GenerationClient:
        """Create a generation client for a configured provider identifier."""

        if provider_id == "openai":
            client = OpenAIChatClient(
                api_key=api_key,
                timeout_seconds=timeout_seconds,
                rate_limiter=RateLimiter(),
            )
            return OpenAIGenerationClient(
                client=client,
                document_store=document_store,
                model=model,
                provider_id=provider_id,
            )
        raise ValueError(f"Unsupported generation provider `{provider_id}`.")
