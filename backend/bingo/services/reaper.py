import logging
import threading
from typing import Callable, List

from bingo.models import Connection, GameState
from bingo.services.broadcast import Broadcaster
from bingo.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class LivenessReaper:
    """Evicts connections that have been silent for too long."""

    def __init__(self, state: GameState, registry: ConnectionRegistry, broadcaster: Broadcaster,
                 spawn: Callable, sleep: Callable[[float], None],
                 interval_sec: float = 60, max_idle_sec: float = 300):
        self.state = state
        self.registry = registry
        self.broadcaster = broadcaster
        self.interval_sec = interval_sec
        self.max_idle_sec = max_idle_sec
        self._spawn = spawn
        self._sleep = sleep
        self._lock = threading.Lock()
        self._running = False

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._running = True
        logger.info(f"[reaper-start] every={self.interval_sec}s max_idle={self.max_idle_sec}s")
        self._spawn(self._run)
        return True

    def stop(self) -> None:
        with self._lock:
            self._running = False

    def _run(self) -> None:
        while True:
            self._sleep(self.interval_sec)
            with self._lock:
                if not self._running:
                    return
            try:
                self.sweep()
            except Exception as exc:
                logger.error(f"[reaper-error] {exc}", exc_info=True)

    def sweep(self) -> List[Connection]:
        """Remove idle connections, then republish to whoever is left."""
        evicted: List[Connection] = []
        with self.state.lock:
            for conn in self.registry.stale(self.max_idle_sec):
                if self.registry.unregister(conn.id, sid=conn.sid) is None:
                    continue
                idle = self.registry.now() - conn.last_active
                logger.info(f"[reap] id={conn.id} name={conn.name} idle={idle:.0f}s")
                self.broadcaster.close(conn.sid)
                evicted.append(conn)
            if evicted:
                self.broadcaster.publish_players()
            if len(self.registry):
                self.broadcaster.publish_state()
        return evicted
