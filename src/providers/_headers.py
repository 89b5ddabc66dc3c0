from enum import Enum


class ContentType(Enum):
    JSON = "application/json"
    EVENT_STREAM = "text/event-stream"
