from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

# always_connect: the handshake completes before the connect handler runs,
# so a rejected admin still receives AUTH_RESULT before the close
socketio = SocketIO(async_mode=None, always_connect=True)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    origins = flask_app.config.get('CORS_ORIGINS') or Config.CORS_ORIGINS
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    # One game per process: build it here and hang it off the app
    from bingo.hub import build_hub
    hub = build_hub(flask_app, socketio)
    flask_app.extensions['bingo'] = hub

    from bingo.main import main
    flask_app.register_blueprint(main)

    # Register Socket.IO event handlers
    from bingo.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    hub.reaper.start()
    return flask_app
