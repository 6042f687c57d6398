from finchat.session.controller import CONNECTION_ERROR_MESSAGE, SessionController
from finchat.session.state import SessionState
from finchat.session.types import Event, EventType, Role, SessionSnapshot, SessionStatus, Turn

__all__ = [
    "CONNECTION_ERROR_MESSAGE",
    "Event",
    "EventType",
    "Role",
    "SessionController",
    "SessionSnapshot",
    "SessionState",
    "SessionStatus",
    "Turn",
]
