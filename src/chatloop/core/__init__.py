"""Message preparation, stream reassembly and the completion loop."""

from chatloop.core.orchestrator import Orchestrator
from chatloop.core.pipeline import prepare_messages
from chatloop.core.streaming import StreamReconstructor

__all__ = [
    "Orchestrator",
    "StreamReconstructor",
    "prepare_messages",
]
