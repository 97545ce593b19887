from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
import json
from config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    CORS(flask_app, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from letterclash.services.games.lexicon import LexiconIndex
    from letterclash.services.games.registry import RoomRegistry
    from letterclash.services.games.scheduler import DeadlineScheduler
    from letterclash.services.games.scoring import STRATEGIES, make_scoring
    from letterclash.socketio_events import ConnectionGateway, broadcast_room, register_socketio_handlers

    cfg = flask_app.config
    round_seconds = int(cfg.get('ROUND_TIME_SECONDS', 60))
    lexicon = cfg.get('LEXICON') or LexiconIndex.from_directory(cfg.get('LEXICON_DATA_DIR'))
    strategies = {name: make_scoring(name, lexicon, round_seconds) for name in STRATEGIES}
    strategy_name = cfg.get('SCORING_STRATEGY', 'commonness')
    # Unknown names raise ValueError
    scoring = make_scoring(strategy_name, lexicon, round_seconds)

    # Deadline timers are inert in tests unless explicitly enabled
    scheduler = cfg.get('SCHEDULER') or DeadlineScheduler(
        socketio.start_background_task,
        socketio.sleep,
        enabled=not cfg.get('TESTING') or cfg.get('ENABLE_TIMERS_IN_TESTS', False),
        heartbeat=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)),
    )
    registry_kwargs = {}
    if cfg.get('CLOCK'):
        registry_kwargs['clock'] = cfg['CLOCK']
    registry = RoomRegistry(
        scoring,
        scheduler,
        round_seconds=round_seconds,
        timer_grace=int(cfg.get('TIMER_GRACE_MS', 30)) / 1000.0,
        default_rounds=int(cfg.get('DEFAULT_ROUNDS_PER_PLAYER', 5)),
        listener=broadcast_room,
        **registry_kwargs,
    )
    flask_app.extensions['letterclash'] = {
        'lexicon': lexicon,
        'strategies': strategies,
        'scoring': scoring,
        'registry': registry,
        'gateway': ConnectionGateway(registry),
    }
    flask_app.logger.info(f"[startup] scoring={strategy_name} round_seconds={round_seconds} lexicon={lexicon.stats()}")

    # Import and register blueprints here
    from letterclash.main import main
    flask_app.register_blueprint(main)

    from letterclash.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api')

    # Register Socket.IO event handlers on the shared socketio instance
    register_socketio_handlers()

    @click.command('lexicon-stats')
    def lexicon_stats_command():
        """Prints how many entries each lexicon source loaded."""
        for source, count in lexicon.stats().items():
            click.echo(f"{source}: {count}")

    @click.command('evaluate')
    @click.argument('letter')
    @click.argument('name')
    @click.argument('place')
    @click.argument('animal')
    @click.argument('thing')
    @click.option('--elapsed', default=0, type=int, help='Seconds taken to answer.')
    @click.option('--streak', default=0, type=int, help='Full clears before this turn.')
    @click.option('--strategy', default=strategy_name, type=click.Choice(sorted(strategies)))
    def evaluate_command(letter, name, place, animal, thing, elapsed, streak, strategy):
        """Scores one turn offline and prints the evaluation as JSON."""
        from letterclash.services.games.inputs import sanitize_letter
        chosen = sanitize_letter(letter)
        if chosen is None:
            raise click.BadParameter('letter must be A-Z', param_hint='LETTER')
        answers = {'name': name, 'place': place, 'animal': animal, 'thing': thing}
        elapsed = max(0, min(round_seconds, elapsed))
        result = strategies[strategy].evaluate(chosen, answers, elapsed, max(0, streak))
        click.echo(json.dumps(result.to_dict(), indent=2))

    flask_app.cli.add_command(lexicon_stats_command)
    flask_app.cli.add_command(evaluate_command)

    return flask_app
