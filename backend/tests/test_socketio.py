import json

from bingo import socketio
from conftest import ADMIN_TOKEN, received_messages


def _send(test_client, message):
    payload = message if isinstance(message, str) else json.dumps(message)
    test_client.send(payload, namespace='/ws')


def _types(messages):
    return [m['type'] for m in messages]


def test_player_connect_receives_welcome(flask_app, sio_connect):
    player = sio_connect('playerId=p1&name=Alice&boardId=12')
    assert player.is_connected('/ws')

    messages = received_messages(player)
    welcome = messages[0]
    assert welcome['type'] == 'WELCOME'
    assert welcome['playerId'] == 'p1'
    assert welcome['boardId'] == 12
    assert len(welcome['board']) == 25
    assert welcome['gameState']['gameActive'] is False
    assert 'PLAYER_UPDATE' in _types(messages)
    assert 'p1' in flask_app.extensions['bingo'].registry


def test_admin_with_valid_token_is_authenticated(flask_app, sio_connect):
    admin = sio_connect(f'admin=true&token={ADMIN_TOKEN}')
    assert admin.is_connected('/ws')

    messages = received_messages(admin)
    assert messages[0]['type'] == 'AUTH_RESULT'
    assert messages[0]['success'] is True
    assert messages[1]['type'] == 'WELCOME'
    assert messages[1]['role'] == 'admin'
    assert len(flask_app.extensions['bingo'].registry.admins()) == 1


def test_admin_with_bad_token_is_refused(flask_app, sio_connect):
    rejected = sio_connect('admin=true&token=nope')
    # The server dropped the namespace session right after the handshake
    assert socketio.server.manager.sid_from_eio_sid(rejected.eio_sid, '/ws') is None
    assert flask_app.extensions['bingo'].registry.admins() == []


def test_admin_drives_game_and_players_see_numbers(flask_app, sio_connect):
    player = sio_connect('playerId=p1&name=Alice')
    admin = sio_connect(f'admin=true&token={ADMIN_TOKEN}')
    received_messages(player)
    received_messages(admin)

    _send(admin, {'type': 'ADMIN_COMMAND', 'command': 'startGame'})
    _send(admin, {'type': 'ADMIN_COMMAND', 'command': 'callNumber'})

    player_messages = received_messages(player)
    assert 'GAME_STARTED' in _types(player_messages)
    called = [m for m in player_messages if m['type'] == 'NUMBER_CALLED']
    assert len(called) == 1
    assert called[0]['totalCalled'] == 1
    assert called[0]['number'] == flask_app.extensions['bingo'].state.called_numbers[0]
    assert any(m['type'] == 'NUMBER_CALLED' for m in received_messages(admin))


def test_player_cannot_issue_admin_commands(flask_app, sio_connect):
    player = sio_connect('playerId=p1')
    received_messages(player)
    _send(player, {'type': 'ADMIN_COMMAND', 'command': 'startGame'})

    assert flask_app.extensions['bingo'].state.active is False
    assert received_messages(player) == []


def test_malformed_text_gets_an_error_reply(sio_connect):
    player = sio_connect('playerId=p1')
    received_messages(player)
    _send(player, 'not json at all')

    messages = received_messages(player)
    assert messages == [{'type': 'ERROR', 'message': 'Invalid message format'}]
    assert player.is_connected('/ws')


def test_ping_is_answered_with_pong(sio_connect):
    player = sio_connect('playerId=p1')
    received_messages(player)
    _send(player, {'type': 'PING'})
    assert _types(received_messages(player)) == ['PONG']


def test_winning_claim_stops_the_game(flask_app, sio_connect):
    hub = flask_app.extensions['bingo']
    winner = sio_connect('playerId=p1&name=Alice')
    other = sio_connect('playerId=p2&name=Bob')
    admin = sio_connect(f'admin=true&token={ADMIN_TOKEN}')
    _send(admin, {'type': 'ADMIN_COMMAND', 'command': 'startGame'})
    for _ in range(5):
        _send(admin, {'type': 'ADMIN_COMMAND', 'command': 'callNumber'})
    for test_client in (winner, other, admin):
        received_messages(test_client)

    claimed = list(hub.state.called_numbers)
    _send(winner, {'type': 'BINGO_CLAIM', 'claimedNumbers': claimed, 'pattern': 'Row'})

    winner_messages = received_messages(winner)
    verified = [m for m in winner_messages if m['type'] == 'BINGO_VERIFIED']
    assert verified and verified[0]['success'] is True
    assert 'BINGO_WINNER' not in _types(winner_messages)

    announcement = [m for m in received_messages(other) if m['type'] == 'BINGO_WINNER'][0]
    assert announcement['winnerId'] == 'p1'
    assert announcement['winnerName'] == 'Alice'
    assert announcement['pattern'] == 'Row'
    assert 'BINGO_WINNER' in _types(received_messages(admin))
    assert hub.state.active is False


def test_invalid_claim_only_answers_the_claimant(flask_app, sio_connect):
    claimant = sio_connect('playerId=p1')
    other = sio_connect('playerId=p2')
    admin = sio_connect(f'admin=true&token={ADMIN_TOKEN}')
    _send(admin, {'type': 'ADMIN_COMMAND', 'command': 'startGame'})
    for test_client in (claimant, other, admin):
        received_messages(test_client)

    _send(claimant, {'type': 'BINGO_CLAIM', 'claimedNumbers': [1, 2, 3, 4, 5]})

    assert [m['success'] for m in received_messages(claimant) if m['type'] == 'BINGO_VERIFIED'] == [False]
    assert received_messages(other) == []
    assert received_messages(admin) == []
    assert flask_app.extensions['bingo'].state.active is True


def test_disconnect_removes_player_and_notifies_others(flask_app, sio_connect):
    hub = flask_app.extensions['bingo']
    leaving = sio_connect('playerId=p1&name=Alice')
    staying = sio_connect('playerId=p2&name=Bob')
    received_messages(staying)

    leaving.disconnect(namespace='/ws')

    assert 'p1' not in hub.registry
    messages = received_messages(staying)
    left = [m for m in messages if m['type'] == 'PLAYER_LEFT']
    assert left and left[0]['playerId'] == 'p1'
    assert [m['playerCount'] for m in messages if m['type'] == 'PLAYER_UPDATE'] == [1]
