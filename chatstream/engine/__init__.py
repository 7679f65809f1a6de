from chatstream.engine.engine import StreamingEngine, Transport
from chatstream.engine.finalizer import MessagePersister, build_final_message
from chatstream.engine.normalizer import extract_delta, merge_info, normalize_event, parse_info
from chatstream.engine.scheduler import Chunk, ChunkScheduler, chunk_text
from chatstream.engine.session import SessionStatus, StreamSession
from chatstream.engine.thinking import ThinkingClock
from chatstream.engine.tool_calls import ToolCallTracker
from chatstream.engine.watchdog import InactivityWatchdog

__all__ = [
    "StreamingEngine",
    "Transport",
    "MessagePersister",
    "build_final_message",
    "extract_delta",
    "merge_info",
    "normalize_event",
    "parse_info",
    "Chunk",
    "ChunkScheduler",
    "chunk_text",
    "SessionStatus",
    "StreamSession",
    "ThinkingClock",
    "ToolCallTracker",
    "InactivityWatchdog",
]
