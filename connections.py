"""Per-connection session state for socket clients."""

import enum
import threading
from dataclasses import dataclass
from typing import Dict, Optional


class ConnectionState(enum.Enum):
    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATED = 'authenticated'
    IN_ROOM = 'in_room'


@dataclass
class ConnectionContext:
    sid: str
    username: Optional[str] = None
    current_room_id: Optional[int] = None

    @property
    def state(self) -> ConnectionState:
        if not self.username:
            return ConnectionState.UNAUTHENTICATED
        if self.current_room_id is None:
            return ConnectionState.AUTHENTICATED
        return ConnectionState.IN_ROOM


def current_user(ctx: Optional[ConnectionContext]) -> Optional[str]:
    """Username bound to the connection; not re-checked against the store."""
    if ctx is None:
        return None
    return ctx.username or None


class ConnectionRegistry:
    """Live connection contexts keyed by socket id."""

    def __init__(self):
        self._contexts: Dict[str, ConnectionContext] = {}
        self._lock = threading.Lock()

    def open(self, sid: str, username: Optional[str] = None) -> ConnectionContext:
        ctx = ConnectionContext(sid=sid, username=username or None)
        with self._lock:
            self._contexts[sid] = ctx
        return ctx

    def get(self, sid: str) -> ConnectionContext:
        with self._lock:
            ctx = self._contexts.get(sid)
            if ctx is None:
                # Handler ran before (or without) connect
                ctx = self._contexts[sid] = ConnectionContext(sid=sid)
            return ctx

    def close(self, sid: str) -> Optional[ConnectionContext]:
        with self._lock:
            return self._contexts.pop(sid, None)

    def __len__(self):
        with self._lock:
            return len(self._contexts)
