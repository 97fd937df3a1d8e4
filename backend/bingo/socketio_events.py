from flask import current_app, request
from flask_socketio import ConnectionRefusedError
from bingo import socketio
from bingo.errors import AuthFailure

NAMESPACE = '/ws'


def _dispatcher():
    return current_app.extensions['bingo'].dispatcher


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect(auth=None):
    # Role and identity come from the handshake query string; a Socket.IO
    # auth payload, when sent, overrides matching keys
    params = request.args.to_dict()
    if isinstance(auth, dict):
        params.update(auth)
    try:
        _dispatcher().connect(_get_sid(), params)
    except AuthFailure as exc:
        raise ConnectionRefusedError({'type': 'AUTH_RESULT', 'success': False, 'message': exc.message})


def handle_disconnect(reason=None):
    _dispatcher().disconnect(_get_sid())


def handle_message(data):
    _dispatcher().handle_message(_get_sid(), data)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace.

    Clients speak JSON text over the plain `message` event; every other
    event name is left unhandled.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('message', handle_message, namespace=NAMESPACE)
