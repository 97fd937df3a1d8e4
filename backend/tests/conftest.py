import json
import os
import random
import sys
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `bingo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bingo import create_app, socketio
from bingo.hub import BingoHub
from bingo.models import GameState
from bingo.services.broadcast import Broadcaster
from bingo.services.dispatcher import CommandDispatcher
from bingo.services.reaper import LivenessReaper
from bingo.services.registry import ConnectionRegistry
from bingo.services.scheduler import AutoCallScheduler

ADMIN_TOKEN = 'letmein'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    ADMIN_SECRET = ADMIN_TOKEN
    CALL_INTERVAL_MS = 1000
    AUTO_CALL_ENABLED = False
    REAPER_INTERVAL_SEC = 60
    INACTIVITY_TIMEOUT_SEC = 300
    LOG_LEVEL = 'DEBUG'


class FakeClock:
    """Virtual epoch seconds; `sleep` just moves time forward."""

    def __init__(self, start=1_000_000.0):
        self.start = start
        self.now = start

    def __call__(self):
        return self.now

    @property
    def elapsed(self):
        return self.now - self.start

    def advance(self, seconds):
        self.now += seconds

    def sleep(self, seconds):
        self.advance(seconds)


class FakeTransport:
    """Records decoded messages per sid instead of touching sockets."""

    def __init__(self):
        self.sent = defaultdict(list)
        self.closed = []
        self.dead = set()
        self.failing = set()

    def is_open(self, sid):
        return sid not in self.dead and sid not in self.closed

    def send(self, sid, text):
        if sid in self.failing:
            raise OSError('broken pipe')
        self.sent[sid].append(json.loads(text))

    def close(self, sid):
        self.closed.append(sid)

    def types(self, sid):
        return [m['type'] for m in self.sent[sid]]

    def of_type(self, sid, message_type):
        return [m for m in self.sent[sid] if m['type'] == message_type]

    def clear(self):
        self.sent.clear()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def hub(clock, transport):
    """A fully wired hub on fakes: no sockets, no threads, virtual time."""
    state = GameState(admin_secret=ADMIN_TOKEN, call_interval_ms=1000, clock=clock, rng=random.Random(7))
    registry = ConnectionRegistry(clock=clock)
    broadcaster = Broadcaster(registry, state, transport)
    spawned = []

    def spawn(target, *args):
        spawned.append((target, args))

    scheduler = AutoCallScheduler(state, broadcaster, spawn=spawn, sleep=clock.sleep)
    reaper = LivenessReaper(state, registry, broadcaster, spawn=spawn, sleep=clock.sleep,
                            interval_sec=60, max_idle_sec=300)
    dispatcher = CommandDispatcher(state, registry, broadcaster, scheduler, rng=random.Random(11))
    built = BingoHub(state, registry, broadcaster, scheduler, reaper, dispatcher)
    built.spawned = spawned
    return built


def send(hub, sid, message):
    hub.dispatcher.handle_message(sid, json.dumps(message))


def admin_command(hub, sid, command, **params):
    send(hub, sid, dict(type='ADMIN_COMMAND', command=command, **params))


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_connect(flask_app):
    """Factory for Socket.IO test clients on /ws; all are disconnected at teardown."""
    clients = []

    def _connect(query_string=None):
        test_client = socketio.test_client(
            flask_app,
            namespace='/ws',
            query_string=query_string,
            flask_test_client=flask_app.test_client(),
        )
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')


def received_messages(test_client):
    """Decode the JSON envelopes a test client has received on /ws."""
    messages = []
    for pkt in test_client.get_received('/ws'):
        if pkt['name'] != 'message':
            continue
        args = pkt['args']
        if isinstance(args, list):
            args = args[0]
        messages.append(json.loads(args) if isinstance(args, str) else args)
    return messages
