from bingo.models import GameState
from bingo.services.broadcast import Broadcaster, SocketIOTransport
from bingo.services.dispatcher import CommandDispatcher
from bingo.services.reaper import LivenessReaper
from bingo.services.registry import ConnectionRegistry
from bingo.services.scheduler import AutoCallScheduler
from bingo.socketio_events import NAMESPACE


class BingoHub:
    """The game state and every service that shares it, for one app."""

    def __init__(self, state, registry, broadcaster, scheduler, reaper, dispatcher):
        self.state = state
        self.registry = registry
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.reaper = reaper
        self.dispatcher = dispatcher


def build_hub(app, socketio) -> BingoHub:
    """Wire a fresh hub from the app config.

    Background loops (auto-call, reaper) never spawn in TESTING mode
    unless ENABLE_SCHEDULER_IN_TESTS is set; tests drive them by hand.
    """
    cfg = app.config
    run_background = not cfg.get('TESTING') or cfg.get('ENABLE_SCHEDULER_IN_TESTS')

    def spawn(target, *args):
        if not run_background:
            app.logger.debug(f"[spawn-skip] {getattr(target, '__qualname__', target)} (testing)")
            return None
        return socketio.start_background_task(target, *args)

    state = GameState(
        admin_secret=cfg.get('ADMIN_SECRET', 'change-me'),
        call_interval_ms=int(cfg.get('CALL_INTERVAL_MS', 7000)),
        auto_call_enabled=bool(cfg.get('AUTO_CALL_ENABLED', False)),
    )
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry, state, SocketIOTransport(socketio, namespace=NAMESPACE))
    scheduler = AutoCallScheduler(state, broadcaster, spawn=spawn, sleep=socketio.sleep)
    reaper = LivenessReaper(
        state,
        registry,
        broadcaster,
        spawn=spawn,
        sleep=socketio.sleep,
        interval_sec=int(cfg.get('REAPER_INTERVAL_SEC', 60)),
        max_idle_sec=int(cfg.get('INACTIVITY_TIMEOUT_SEC', 300)),
    )
    dispatcher = CommandDispatcher(state, registry, broadcaster, scheduler)
    app.logger.info(f"[hub] game={state.game_id} interval={state.call_interval_ms}ms auto_call={state.auto_call_enabled}")
    return BingoHub(state, registry, broadcaster, scheduler, reaper, dispatcher)
