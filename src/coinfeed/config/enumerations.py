from enum import Enum


class SupervisorState(Enum):
    """Lifecycle states of the subscription supervisor."""

    IDLE = "idle"
    ACTIVE = "active"
    PENDING_RESTART = "pending_restart"


class TerminationReason(Enum):
    """Why a streaming connection ended."""

    ERROR = "error"
    COMPLETE = "complete"
    ROTATION = "rotation"


class FrameType(Enum):
    TRADE = "trade"
    ERROR = "error"
    UNKNOWN = "unknown"


class ConnectionState(Enum):
    """Lifecycle of a single streaming connection."""

    UNCONNECTED = "unconnected"
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED = "closed"
