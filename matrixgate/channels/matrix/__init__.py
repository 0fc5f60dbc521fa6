"""Matrix channel: transport session and admission filter."""

from matrixgate.channels.matrix.monitor import MatrixMonitor, build_mention_pattern
from matrixgate.channels.matrix.types import MatrixEventSource, MatrixMessage, MessageHandler

__all__ = [
    "MatrixMonitor",
    "MatrixEventSource",
    "MatrixMessage",
    "MessageHandler",
    "build_mention_pattern",
]
