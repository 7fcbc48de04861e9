"""Token-budgeted context assembly."""

from coderecall.context.builder import (
    TRUNCATION_MARKER,
    ContextBuilder,
    ContextOptions,
    ConversationTurn,
    RetrievalContext,
)
from coderecall.context.tokens import TokenEstimator

__all__ = [
    "TRUNCATION_MARKER",
    "ContextBuilder",
    "ContextOptions",
    "ConversationTurn",
    "RetrievalContext",
    "TokenEstimator",
]
