"""LLM-facing abstractions for drafting and finalization.

This package defines the generation protocol, the OpenAI provider adapter,
prompt templates, request pacing, and the delimited front-matter contract.
"""

from .front_matter import (
    FrontMatter,
    FrontMatterContractError,
    fallback_front_matter,
    parse_front_matter,
    render_document,
)
from .generation import GenerationClient, OpenAIGenerationClient
from .openai_client import GenerationProviderError, OpenAIChatClient
from .prompts import PromptLibrary
from .rate_limiter import RateLimiter

__all__ = [
    "FrontMatter",
    "FrontMatterContractError",
    "GenerationClient",
    "GenerationProviderError",
    "OpenAIChatClient",
    "OpenAIGenerationClient",
    "PromptLibrary",
    "RateLimiter",
    "fallback_front_matter",
    "parse_front_matter",
    "render_document",
]
