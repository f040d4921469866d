"""chatloop: multi-turn LLM chat with automatic function calling."""

from chatloop.client import ChatClient
from chatloop.config import ClientConfig, ProviderProfile, load_config
from chatloop.core import Orchestrator, StreamReconstructor, prepare_messages
from chatloop.errors import ChatLoopError, RecursionLimitError, TransportError
from chatloop.options import CompletionOptions
from chatloop.tools import (
    ChatFunction,
    FunctionContext,
    FunctionParameter,
    FunctionRegistry,
    Param,
)
from chatloop.types import (
    ChatMessage,
    ChatRole,
    Conversation,
    FunctionCall,
    FunctionResult,
    LLMResponse,
    PinLocation,
    StreamDelta,
    TokenUsageTracker,
)

__version__ = "0.1.0"

__all__ = [
    "ChatClient",
    "ChatFunction",
    "ChatLoopError",
    "ChatMessage",
    "ChatRole",
    "ClientConfig",
    "CompletionOptions",
    "Conversation",
    "FunctionCall",
    "FunctionContext",
    "FunctionParameter",
    "FunctionRegistry",
    "FunctionResult",
    "LLMResponse",
    "Orchestrator",
    "Param",
    "PinLocation",
    "ProviderProfile",
    "RecursionLimitError",
    "StreamDelta",
    "StreamReconstructor",
    "TokenUsageTracker",
    "TransportError",
    "__version__",
    "load_config",
    "prepare_messages",
]
