"""AI provider capability: embeddings, chat, retry, response parsing."""

from coderecall.providers.base import ChatMessage, ChatProvider, ChatResponse, EmbeddingProvider
from coderecall.providers.factory import create_provider
from coderecall.providers.fastembed_provider import FastEmbedProvider
from coderecall.providers.openai import OpenAIProvider
from coderecall.providers.response import (
    FallbackText,
    ParsedResponse,
    StructuredResult,
    expect_object,
    parse_structured_response,
)
from coderecall.providers.retry import RetryPolicy, call_with_retry

__all__ = [
    "ChatMessage",
    "ChatProvider",
    "ChatResponse",
    "EmbeddingProvider",
    "FallbackText",
    "FastEmbedProvider",
    "OpenAIProvider",
    "ParsedResponse",
    "RetryPolicy",
    "StructuredResult",
    "call_with_retry",
    "create_provider",
    "expect_object",
    "parse_structured_response",
]
