import logging
import threading
from typing import Callable

from bingo.errors import ExhaustedPool
from bingo.models import GameState
from bingo.services.broadcast import Broadcaster

logger = logging.getLogger(__name__)


class AutoCallScheduler:
    """Calls numbers on a fixed interval while the game allows it.

    - A single loop at a time: every start() bumps the generation, and a
      loop whose generation is stale exits at its next wake-up
    - stop() is idempotent
    - The loop ends itself once the game is inactive, auto-call is off or
      the pool is exhausted
    - `spawn` and `sleep` come from the async runtime (Socket.IO in the app)
    """

    def __init__(self, state: GameState, broadcaster: Broadcaster,
                 spawn: Callable, sleep: Callable[[float], None]):
        self.state = state
        self.broadcaster = broadcaster
        self._spawn = spawn
        self._sleep = sleep
        self._lock = threading.Lock()
        self._generation = 0
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> int:
        with self._lock:
            self._generation += 1
            self._running = True
            generation = self._generation
        logger.info(f"[auto-call-start] generation={generation} interval={self.state.call_interval_ms}ms")
        self._spawn(self._run, generation)
        return generation

    def stop(self) -> bool:
        with self._lock:
            if not self._running:
                return False
            self._generation += 1
            self._running = False
            generation = self._generation
        logger.info(f"[auto-call-stop] generation={generation}")
        return True

    def rearm(self) -> bool:
        """Restart with the current interval, only if already running."""
        if not self.running:
            return False
        self.start()
        return True

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return self._running and generation == self._generation

    def _finish(self, generation: int) -> None:
        with self._lock:
            if generation == self._generation:
                self._running = False

    def _run(self, generation: int) -> None:
        while self._is_current(generation):
            self._sleep(self.state.call_interval_ms / 1000.0)
            if not self._is_current(generation):
                return
            try:
                keep_going = self.tick()
            except Exception as exc:
                logger.error(f"[auto-call-error] generation={generation}: {exc}", exc_info=True)
                keep_going = False
            if not keep_going:
                self._finish(generation)
                logger.info(f"[auto-call-end] generation={generation}")
                return

    def tick(self) -> bool:
        """Call and announce one number. Returns False when the loop should end."""
        with self.state.lock:
            if not (self.state.active and self.state.auto_call_enabled):
                return False
            try:
                number = self.state.call_number()
            except ExhaustedPool:
                logger.info("[auto-call-exhausted] all numbers called")
                return False
            logger.info(f"[auto-call] number={number} total={len(self.state.called_numbers)}")
            self.broadcaster.announce_number(number)
        return True
