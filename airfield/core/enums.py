# airfield/core/enums.py
import enum


class Severity(enum.IntEnum):
    """Display priority; lower value = more urgent."""
    CRITICAL = 0
    HIGH = 1
    MEDIUM = 2
    INFO = 3


class Source(str, enum.Enum):
    FEED = "FEED"
    FALLBACK = "FALLBACK"


class NavaidState(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"


class FeedState(str, enum.Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    BOUND = "BOUND"
