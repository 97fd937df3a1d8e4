import json
import logging
from typing import Any, Dict, Iterable, Optional

from bingo.models import Connection, GameState
from bingo.services.numbers import bingo_letter
from bingo.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


class SocketIOTransport:
    """Sends raw JSON text to single Socket.IO sessions on one namespace."""

    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def is_open(self, sid: str) -> bool:
        return self.socketio.server.manager.is_connected(sid, self.namespace)

    def send(self, sid: str, text: str) -> None:
        self.socketio.send(text, to=sid, namespace=self.namespace)

    def close(self, sid: str) -> None:
        self.socketio.server.disconnect(sid, namespace=self.namespace)


class Broadcaster:
    """Role-scoped fan-out over live connections.

    Each message is serialized once. Delivery is best effort: a recipient
    whose socket is gone or whose send raises is logged and skipped.
    """

    def __init__(self, registry: ConnectionRegistry, state: GameState, transport):
        self.registry = registry
        self.state = state
        self.transport = transport

    # ---- Fan-out ----
    def to_players(self, message: Message, exclude_id: Optional[str] = None) -> int:
        return self._deliver(self.registry.players(), message, exclude_id=exclude_id)

    def to_admins(self, message: Message) -> int:
        return self._deliver(self.registry.admins(), message)

    def to_everyone(self, message: Message, exclude_id: Optional[str] = None) -> int:
        return self._deliver(self.registry.all(), message, exclude_id=exclude_id)

    def to_one(self, connection_id: str, message: Message) -> int:
        conn = self.registry.get(connection_id)
        if conn is None:
            logger.debug(f"[send-skip] id={connection_id} not registered type={message.get('type')}")
            return 0
        return self._deliver([conn], message)

    def to_sid(self, sid: str, message: Message) -> bool:
        """Reply on a socket that may not be registered yet (handshake, parse errors)."""
        try:
            self.transport.send(sid, json.dumps(message))
            return True
        except Exception as exc:
            logger.warning(f"[send-fail] sid={sid} type={message.get('type')}: {exc}")
            return False

    def close(self, sid: str) -> None:
        try:
            self.transport.close(sid)
        except Exception as exc:
            logger.warning(f"[close-fail] sid={sid}: {exc}")

    def _deliver(self, recipients: Iterable[Connection], message: Message, exclude_id: Optional[str] = None) -> int:
        text = json.dumps(message)
        delivered = 0
        for conn in recipients:
            if exclude_id is not None and conn.id == exclude_id:
                continue
            try:
                if not self.transport.is_open(conn.sid):
                    logger.debug(f"[send-skip] id={conn.id} sid={conn.sid} socket closed")
                    continue
                self.transport.send(conn.sid, text)
                delivered += 1
            except Exception as exc:
                logger.warning(f"[send-fail] id={conn.id} sid={conn.sid} type={message.get('type')}: {exc}")
        return delivered

    # ---- State publication ----
    def player_list(self):
        return [c.to_dict() for c in self.registry.all()]

    def publish_state(self) -> None:
        """Send GAME_STATE to players and the detailed variant to admins."""
        with self.state.lock:
            public = self.state.snapshot()
            detailed = self.state.admin_snapshot()
        count = len(self.registry)
        public.update({'type': 'GAME_STATE', 'playerCount': count})
        detailed.update({'type': 'GAME_STATE', 'playerCount': count, 'players': self.player_list()})
        self.to_players(public)
        self.to_admins(detailed)

    def announce_number(self, number: int) -> None:
        """NUMBER_CALLED goes to players and admins identically, then fresh state."""
        with self.state.lock:
            called = list(self.state.called_numbers)
        message = {
            'type': 'NUMBER_CALLED',
            'number': number,
            'letter': bingo_letter(number),
            'calledNumbers': called,
            'totalCalled': len(called),
        }
        self.to_players(message)
        self.to_admins(message)
        self.publish_state()

    def publish_players(self) -> None:
        count = len(self.registry)
        self.to_players({'type': 'PLAYER_UPDATE', 'playerCount': count})
        self.to_admins({'type': 'PLAYER_UPDATE', 'playerCount': count, 'players': self.player_list()})
