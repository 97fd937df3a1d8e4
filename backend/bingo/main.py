from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


def _hub():
    return current_app.extensions['bingo']


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the bingo server!', 'websocket': '/ws'})


@main.route('/health')
def health():
    hub = _hub()
    return jsonify({
        'status': 'healthy',
        'connections': len(hub.registry),
        'autoCallRunning': hub.scheduler.running,
    })


@main.route('/api/state')
def get_state():
    # Public view only: never exposes the admin secret or the player list
    hub = _hub()
    payload = hub.state.snapshot()
    payload['playerCount'] = len(hub.registry.players())
    payload['autoCallEnabled'] = hub.state.auto_call_enabled
    payload['callInterval'] = hub.state.call_interval_ms
    return jsonify(payload)
