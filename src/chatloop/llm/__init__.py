"""Provider dialects and HTTP transport for chatloop."""

from chatloop.llm.gemini import GeminiProvider
from chatloop.llm.openai import OpenAIProvider
from chatloop.llm.providers import Provider, get_provider
from chatloop.llm.transport import BACKOFF_SCHEDULE, RetryingTransport, backoff_delay

__all__ = [
    "BACKOFF_SCHEDULE",
    "GeminiProvider",
    "OpenAIProvider",
    "Provider",
    "RetryingTransport",
    "backoff_delay",
    "get_provider",
]
