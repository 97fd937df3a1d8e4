import random
import string
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from bingo.errors import ExhaustedPool, OutOfRange, TooShort
from bingo.services.numbers import POOL_SIZE, draw, draw_next

ROLE_PLAYER = 'player'
ROLE_ADMIN = 'admin'

BOARD_CELLS = 25
FREE_CELL = 12
MIN_CALL_INTERVAL_MS = 1000
MAX_CALL_INTERVAL_MS = 30000
MIN_SECRET_LENGTH = 4


def generate_game_id(length=6, rng=None):
    """Generate a short opaque label for the current session."""
    rng = rng or random
    return ''.join(rng.choices(string.ascii_uppercase + string.digits, k=length))


class Board:
    """A player's 5x5 card. The centre cell is free and always marked."""

    def __init__(self, cells: List[Optional[int]]):
        if len(cells) != BOARD_CELLS or cells[FREE_CELL] is not None:
            raise ValueError('board needs 25 cells with a free centre')
        self._cells = tuple(cells)

    @classmethod
    def generate(cls, rng=None) -> 'Board':
        numbers = list(draw(BOARD_CELLS - 1, rng=rng))
        (rng or random).shuffle(numbers)
        numbers.insert(FREE_CELL, None)
        return cls(numbers)

    @property
    def cells(self):
        return self._cells

    def numbers(self) -> List[int]:
        return [n for n in self._cells if n is not None]

    def is_marked(self, index: int, called: Iterable[int]) -> bool:
        if index == FREE_CELL:
            return True
        return self._cells[index] in set(called)

    def to_list(self) -> List[Optional[int]]:
        return list(self._cells)


class Connection:
    """One live socket. Admin connections carry no board."""

    def __init__(self, id: str, sid: str, name: str, role: str = ROLE_PLAYER,
                 board_id: int = 0, board: Optional[Board] = None, now: Optional[float] = None):
        self.id = id
        self.sid = sid
        self.name = name
        self.role = role
        self.board_id = board_id
        self.board = board
        self.created_at = now if now is not None else time.time()
        self.last_active = self.created_at

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'boardId': self.board_id,
            'isAdmin': self.is_admin,
            'joinedAt': self.created_at,
            'lastActive': self.last_active,
        }

    def __repr__(self):
        return f'<Connection {self.id} role={self.role} sid={self.sid}>'


class GameState:
    """The shared game record every broadcast is derived from.

    All transitions take ``lock`` (re-entrant), so a caller that needs
    several steps to happen together can hold it around them.
    """

    def __init__(self, admin_secret: str, call_interval_ms: int = 7000, auto_call_enabled: bool = False,
                 clock: Callable[[], float] = time.time, rng=None):
        self.lock = threading.RLock()
        self._clock = clock
        self._rng = rng
        self.active = False
        self.called_numbers: List[int] = []
        self.started_at: Optional[float] = None
        self.last_called: Optional[int] = None
        self.game_id = generate_game_id(rng=rng)
        self.auto_call_enabled = bool(auto_call_enabled)
        self.call_interval_ms = MAX_CALL_INTERVAL_MS
        self._admin_secret_hash = ''
        self.set_call_interval(call_interval_ms)
        self.set_admin_secret(admin_secret)

    # ---- Phase ----
    def start_game(self) -> float:
        with self.lock:
            self.active = True
            self.started_at = self._clock()
            return self.started_at

    def stop_game(self) -> None:
        with self.lock:
            self.active = False

    def reset_game(self) -> None:
        with self.lock:
            self.active = False
            self.called_numbers = []
            self.started_at = None
            self.last_called = None

    def clear_numbers(self) -> None:
        with self.lock:
            self.called_numbers = []
            self.last_called = None

    # ---- Calls ----
    @property
    def exhausted(self) -> bool:
        return len(self.called_numbers) >= POOL_SIZE

    def call_number(self) -> int:
        with self.lock:
            if self.exhausted:
                raise ExhaustedPool('all numbers have been called')
            number = draw_next(self.called_numbers, rng=self._rng)
            self.called_numbers.append(number)
            self.last_called = number
            return number

    # ---- Settings ----
    def regenerate_game_id(self) -> str:
        with self.lock:
            self.game_id = generate_game_id(rng=self._rng)
            return self.game_id

    def set_call_interval(self, ms: int) -> None:
        if isinstance(ms, bool) or not isinstance(ms, int):
            raise OutOfRange(f'interval must be an integer number of ms, got {ms!r}')
        if not MIN_CALL_INTERVAL_MS <= ms <= MAX_CALL_INTERVAL_MS:
            raise OutOfRange(f'interval must be between {MIN_CALL_INTERVAL_MS} and {MAX_CALL_INTERVAL_MS} ms')
        with self.lock:
            self.call_interval_ms = ms

    def set_admin_secret(self, secret: str) -> None:
        if not isinstance(secret, str) or len(secret) < MIN_SECRET_LENGTH:
            raise TooShort(f'admin secret must be at least {MIN_SECRET_LENGTH} characters')
        with self.lock:
            self._admin_secret_hash = generate_password_hash(secret)

    def check_admin_secret(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return check_password_hash(self._admin_secret_hash, token)

    def toggle_auto_call(self) -> bool:
        with self.lock:
            self.auto_call_enabled = not self.auto_call_enabled
            return self.auto_call_enabled

    # ---- Serialization ----
    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                'gameActive': self.active,
                'calledNumbers': list(self.called_numbers),
                'totalCalled': len(self.called_numbers),
                'lastCalled': self.last_called,
                'gameId': self.game_id,
                'gameStartedAt': self.started_at,
            }

    def admin_snapshot(self) -> Dict[str, Any]:
        with self.lock:
            payload = self.snapshot()
            payload['autoCallEnabled'] = self.auto_call_enabled
            payload['callInterval'] = self.call_interval_ms
            return payload
