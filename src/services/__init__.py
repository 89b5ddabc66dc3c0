from .head_event_stream import HeadEventStreamService, StreamState
from .head_tracker import HeadTrackerService

__all__ = [
    "HeadEventStreamService",
    "HeadTrackerService",
    "StreamState",
]
