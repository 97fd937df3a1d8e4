import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from bingo.models import Connection, ROLE_ADMIN, ROLE_PLAYER

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Live connections keyed by identity.

    One lock serializes every mutation. Readers get list snapshots, so a
    broadcast walking the result never sees an entry vanish mid-loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._connections: Dict[str, Connection] = {}

    def now(self) -> float:
        return self._clock()

    def register(self, connection: Connection) -> Optional[Connection]:
        """Add a connection, returning the one it replaced (same identity), if any."""
        with self._lock:
            previous = self._connections.get(connection.id)
            self._connections[connection.id] = connection
        if previous is not None:
            logger.info(f"[registry-replace] id={connection.id} old_sid={previous.sid} new_sid={connection.sid}")
        return previous

    def unregister(self, connection_id: str, sid: Optional[str] = None) -> Optional[Connection]:
        """Remove a connection.

        With `sid`, only remove it while it still belongs to that socket; a
        newer socket that reused the identity is left alone.
        """
        with self._lock:
            current = self._connections.get(connection_id)
            if current is None:
                return None
            if sid is not None and current.sid != sid:
                return None
            return self._connections.pop(connection_id)

    def get(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(connection_id)

    def get_by_sid(self, sid: str) -> Optional[Connection]:
        with self._lock:
            for conn in self._connections.values():
                if conn.sid == sid:
                    return conn
        return None

    def touch(self, connection_id: str) -> bool:
        with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                return False
            conn.last_active = self._clock()
            return True

    def all(self) -> List[Connection]:
        with self._lock:
            return list(self._connections.values())

    def filter(self, predicate: Callable[[Connection], bool]) -> List[Connection]:
        return [c for c in self.all() if predicate(c)]

    def players(self) -> List[Connection]:
        return self.filter(lambda c: c.role == ROLE_PLAYER)

    def admins(self) -> List[Connection]:
        return self.filter(lambda c: c.role == ROLE_ADMIN)

    def stale(self, max_idle_sec: float) -> List[Connection]:
        cutoff = self._clock() - max_idle_sec
        return self.filter(lambda c: c.last_active < cutoff)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id) -> bool:
        with self._lock:
            return connection_id in self._connections
