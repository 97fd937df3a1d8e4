import json
import logging
import random
import uuid
from typing import Any, Dict, Iterable, Mapping, Optional

from bingo.errors import (
    AuthFailure,
    ExhaustedPool,
    MalformedMessage,
    UnknownCommand,
    ValidationFailure,
)
from bingo.models import Board, Connection, GameState, FREE_CELL, ROLE_ADMIN, ROLE_PLAYER
from bingo.services.broadcast import Broadcaster
from bingo.services.numbers import POOL_SIZE
from bingo.services.registry import ConnectionRegistry
from bingo.services.scheduler import AutoCallScheduler

logger = logging.getLogger(__name__)

MIN_CLAIM_NUMBERS = 5
MAX_NAME_LENGTH = 40
BASE_PRIZE = 1000


def parse_envelope(raw: Any) -> Dict[str, Any]:
    """Turn an inbound frame into a message dict with a string `type`."""
    if isinstance(raw, dict):
        data = raw
    else:
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode('utf-8')
            except UnicodeDecodeError:
                raise MalformedMessage('Invalid message format')
        if not isinstance(raw, str):
            raise MalformedMessage('Invalid message format')
        try:
            data = json.loads(raw)
        except ValueError:
            raise MalformedMessage('Invalid message format')
    if not isinstance(data, dict) or not isinstance(data.get('type'), str):
        raise MalformedMessage('Message must be an object with a string "type"')
    return data


def validate_claim(claimed: Iterable[Any], called: Iterable[int]) -> bool:
    """Accept a claim when at least five numbers were claimed and all were called.

    Entries are counted as sent, repeats included. The numbers are not
    checked against the claimant's board and do not have to form a line
    or any other pattern.
    """
    claimed = list(claimed)
    if any(isinstance(n, bool) or not isinstance(n, int) for n in claimed):
        return False
    return len(claimed) >= MIN_CLAIM_NUMBERS and set(claimed) <= set(called)


def calculate_prize(player_count: int, called_count: int) -> int:
    player_multiplier = max(1, player_count / 10)
    return int(BASE_PRIZE * player_multiplier * (called_count / POOL_SIZE))


def _truthy(value) -> bool:
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _coerce_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    return None


class CommandDispatcher:
    """Applies handshakes and inbound messages to the shared game.

    Every entry point runs under the game-state lock, so commands, auto-call
    ticks and reaper sweeps never interleave.
    """

    def __init__(self, state: GameState, registry: ConnectionRegistry, broadcaster: Broadcaster,
                 scheduler: AutoCallScheduler, rng: Optional[random.Random] = None):
        self.state = state
        self.registry = registry
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self._rng = rng or random.Random()
        self._message_handlers = {
            'ADMIN_COMMAND': self._handle_admin_command,
            'BINGO_CLAIM': self._handle_bingo_claim,
            'PING': self._handle_ping,
        }
        self._admin_commands = {
            'startGame': self._start_game,
            'stopGame': self._stop_game,
            'resetGame': self._reset_game,
            'callNumber': self._call_number,
            'toggleAutoCall': self._toggle_auto_call,
            'updateCallInterval': self._update_call_interval,
            'clearNumbers': self._clear_numbers,
            'regenerateGameId': self._regenerate_game_id,
            'updateAdminSecret': self._update_admin_secret,
        }

    # ---- Connection lifecycle ----
    def connect(self, sid: str, params: Mapping[str, Any]) -> Connection:
        """Register a new socket from its handshake parameters.

        Raises AuthFailure (after sending AUTH_RESULT) for a bad admin token;
        the caller must close the socket.
        """
        with self.state.lock:
            if _truthy(params.get('admin', '')):
                return self._admit_admin(sid, params)
            return self._join_player(sid, params)

    def _join_player(self, sid: str, params: Mapping[str, Any]) -> Connection:
        player_id = str(params.get('playerId') or '').strip() or f"player_{uuid.uuid4().hex[:12]}"
        name = str(params.get('name') or '').strip()[:MAX_NAME_LENGTH] or 'Player'
        board_id = _coerce_int(params.get('boardId'))
        if board_id is None or board_id <= 0:
            board_id = self._rng.randint(1, 100)
        conn = Connection(
            id=player_id,
            sid=sid,
            name=name,
            role=ROLE_PLAYER,
            board_id=board_id,
            board=Board.generate(rng=self._rng),
            now=self.registry.now(),
        )
        previous = self.registry.register(conn)
        if previous is not None and previous.sid != sid:
            self.broadcaster.close(previous.sid)

        welcome = self.state.snapshot()
        welcome['playerCount'] = len(self.registry)
        self.broadcaster.to_one(conn.id, {
            'type': 'WELCOME',
            'role': ROLE_PLAYER,
            'playerId': conn.id,
            'name': conn.name,
            'boardId': conn.board_id,
            'board': conn.board.to_list(),
            'freeCell': FREE_CELL,
            'gameState': welcome,
        })
        self.broadcaster.to_players({
            'type': 'PLAYER_JOINED',
            'playerId': conn.id,
            'playerName': conn.name,
            'playerCount': len(self.registry),
        }, exclude_id=conn.id)
        self.broadcaster.publish_players()
        self.broadcaster.publish_state()
        logger.info(f"[join] id={conn.id} name={conn.name} board={conn.board_id} sid={sid}")
        return conn

    def _admit_admin(self, sid: str, params: Mapping[str, Any]) -> Connection:
        if not self.state.check_admin_secret(params.get('token')):
            logger.warning(f"[auth-fail] sid={sid}")
            self.broadcaster.to_sid(sid, {
                'type': 'AUTH_RESULT',
                'success': False,
                'message': 'Invalid admin token',
            })
            raise AuthFailure('Invalid admin token')

        conn = Connection(
            id=f"admin_{uuid.uuid4().hex[:12]}",
            sid=sid,
            name=str(params.get('name') or '').strip()[:MAX_NAME_LENGTH] or 'Admin',
            role=ROLE_ADMIN,
            now=self.registry.now(),
        )
        self.registry.register(conn)
        self.broadcaster.to_one(conn.id, {
            'type': 'AUTH_RESULT',
            'success': True,
            'message': 'Authenticated as admin',
        })
        welcome = self.state.admin_snapshot()
        welcome['playerCount'] = len(self.registry)
        welcome['players'] = self.broadcaster.player_list()
        self.broadcaster.to_one(conn.id, {
            'type': 'WELCOME',
            'role': ROLE_ADMIN,
            'playerId': conn.id,
            'gameState': welcome,
        })
        self.broadcaster.publish_players()
        self.broadcaster.publish_state()
        logger.info(f"[admin-join] id={conn.id} sid={sid}")
        return conn

    def disconnect(self, sid: str) -> Optional[Connection]:
        with self.state.lock:
            conn = self.registry.get_by_sid(sid)
            if conn is None:
                return None
            if self.registry.unregister(conn.id, sid=sid) is None:
                return None
            if not conn.is_admin:
                self.broadcaster.to_players({
                    'type': 'PLAYER_LEFT',
                    'playerId': conn.id,
                    'playerName': conn.name,
                    'playerCount': len(self.registry),
                })
            self.broadcaster.publish_players()
            self.broadcaster.publish_state()
            logger.info(f"[leave] id={conn.id} sid={sid}")
            return conn

    # ---- Messages ----
    def handle_message(self, sid: str, raw: Any) -> None:
        try:
            envelope = parse_envelope(raw)
        except MalformedMessage as exc:
            logger.info(f"[malformed] sid={sid}: {exc.message}")
            self.broadcaster.to_sid(sid, {'type': 'ERROR', 'message': exc.message})
            return

        with self.state.lock:
            conn = self.registry.get_by_sid(sid)
            if conn is None:
                logger.debug(f"[ignore] sid={sid} not registered type={envelope['type']}")
                return
            self.registry.touch(conn.id)
            handler = self._message_handlers.get(envelope['type'])
            if handler is None:
                logger.debug(f"[ignore] id={conn.id} unknown type={envelope['type']}")
                return
            try:
                handler(conn, envelope)
            except MalformedMessage as exc:
                logger.info(f"[malformed] id={conn.id}: {exc.message}")
                self.broadcaster.to_sid(sid, {'type': 'ERROR', 'message': exc.message})
            except ValidationFailure as exc:
                logger.info(f"[rejected] id={conn.id}: {exc.message}")
            except UnknownCommand as exc:
                logger.debug(f"[ignore] id={conn.id}: {exc.message}")

    def _handle_ping(self, conn: Connection, envelope: Dict[str, Any]) -> None:
        self.broadcaster.to_one(conn.id, {'type': 'PONG', 'timestamp': self.registry.now()})

    # ---- Player commands ----
    def _handle_bingo_claim(self, conn: Connection, envelope: Dict[str, Any]) -> None:
        if conn.is_admin:
            logger.debug(f"[ignore] admin {conn.id} sent BINGO_CLAIM")
            return
        claimed = envelope.get('claimedNumbers')
        if not isinstance(claimed, list):
            raise MalformedMessage('claimedNumbers must be a list')
        pattern = envelope.get('pattern')
        if not isinstance(pattern, str) or not pattern:
            pattern = 'Bingo'

        if not validate_claim(claimed, self.state.called_numbers):
            logger.info(f"[claim-rejected] id={conn.id} claimed={claimed}")
            self.broadcaster.to_one(conn.id, {
                'type': 'BINGO_VERIFIED',
                'success': False,
                'message': 'Claim rejected: numbers not called or fewer than five',
            })
            return
        self._declare_winner(conn, pattern)

    def _declare_winner(self, conn: Connection, pattern: str) -> None:
        prize = calculate_prize(len(self.registry.players()), len(self.state.called_numbers))
        announcement = {
            'type': 'BINGO_WINNER',
            'winnerName': conn.name,
            'winnerId': conn.id,
            'pattern': pattern,
            'timestamp': self.registry.now(),
            'prize': prize,
        }
        self.broadcaster.to_players(announcement, exclude_id=conn.id)
        self.broadcaster.to_admins(announcement)
        self.broadcaster.to_one(conn.id, {
            'type': 'BINGO_VERIFIED',
            'success': True,
            'message': 'Bingo! Your claim was verified',
            'pattern': pattern,
            'prize': prize,
        })
        self.state.stop_game()
        self.scheduler.stop()
        self.broadcaster.to_everyone({'type': 'GAME_STOPPED', 'winnerId': conn.id})
        self.broadcaster.publish_state()
        logger.info(f"[winner] id={conn.id} name={conn.name} pattern={pattern} prize={prize}")

    # ---- Admin commands ----
    def _handle_admin_command(self, conn: Connection, envelope: Dict[str, Any]) -> None:
        if not conn.is_admin:
            logger.debug(f"[ignore] non-admin {conn.id} sent ADMIN_COMMAND")
            return
        command = envelope.get('command')
        handler = self._admin_commands.get(command) if isinstance(command, str) else None
        if handler is None:
            raise UnknownCommand(f'unknown admin command {command!r}')
        logger.info(f"[admin] id={conn.id} command={command}")
        handler(conn, envelope)

    def _start_game(self, conn, envelope):
        started_at = self.state.start_game()
        if self.state.auto_call_enabled:
            self.scheduler.start()
        self.broadcaster.to_everyone({'type': 'GAME_STARTED', 'startedAt': started_at, 'gameId': self.state.game_id})
        self.broadcaster.publish_state()

    def _stop_game(self, conn, envelope):
        self.state.stop_game()
        self.scheduler.stop()
        self.broadcaster.to_everyone({'type': 'GAME_STOPPED'})
        self.broadcaster.publish_state()

    def _reset_game(self, conn, envelope):
        self.state.reset_game()
        self.scheduler.stop()
        self.broadcaster.to_everyone({'type': 'GAME_RESET', 'gameId': self.state.game_id})
        self.broadcaster.publish_state()

    def _call_number(self, conn, envelope):
        if not self.state.active:
            logger.info("[call-skip] game not active")
            return
        try:
            number = self.state.call_number()
        except ExhaustedPool:
            logger.info("[call-skip] all numbers called")
            return
        logger.info(f"[call] number={number} total={len(self.state.called_numbers)}")
        self.broadcaster.announce_number(number)

    def _toggle_auto_call(self, conn, envelope):
        enabled = self.state.toggle_auto_call()
        if enabled and self.state.active:
            self.scheduler.start()
        elif not enabled:
            self.scheduler.stop()
        self.broadcaster.to_everyone({'type': 'AUTO_CALL_TOGGLED', 'enabled': enabled})
        self.broadcaster.publish_state()

    def _update_call_interval(self, conn, envelope):
        interval = _coerce_int(envelope.get('interval'))
        self.state.set_call_interval(interval)
        self.scheduler.rearm()
        self.broadcaster.to_admins({'type': 'CALL_INTERVAL_UPDATED', 'interval': self.state.call_interval_ms})
        self.broadcaster.publish_state()

    def _clear_numbers(self, conn, envelope):
        self.state.clear_numbers()
        # An exhausted pool ends the auto-call loop; a refilled one resumes it
        if self.state.active and self.state.auto_call_enabled and not self.scheduler.running:
            self.scheduler.start()
        self.broadcaster.to_everyone({'type': 'NUMBERS_CLEARED'})
        self.broadcaster.publish_state()

    def _regenerate_game_id(self, conn, envelope):
        game_id = self.state.regenerate_game_id()
        self.broadcaster.to_everyone({'type': 'NEW_GAME_ID', 'gameId': game_id})
        self.broadcaster.publish_state()

    def _update_admin_secret(self, conn, envelope):
        self.state.set_admin_secret(envelope.get('secret'))
        self.broadcaster.to_one(conn.id, {
            'type': 'ADMIN_SECRET_UPDATED',
            'success': True,
            'message': 'Admin secret updated',
        })
