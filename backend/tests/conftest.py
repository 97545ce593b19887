import os
import sys
import pytest

# Ensure the backend root (containing the `letterclash` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from letterclash import create_app, socketio
from letterclash.services.games.lexicon import LexiconIndex
from letterclash.services.games.rooms import Room
from letterclash.services.games.scoring import CommonnessScoring


# Six ranked words: rank r has commonness 1 - r / 5
POPULAR = ['the', 'book', 'ball', 'cat', 'bear', 'bob']


def build_test_lexicon():
    return LexiconIndex(
        names=['Bob', 'Alice', 'Bella', 'Carl', 'Ben'],
        animals=['bear', 'bee', 'wolf', 'mouse', 'goose', 'cat', 'bat', 'polar bear'],
        words=['book', 'ball', 'bag', 'box', 'apple', 'bottle', 'blue', 'bear', 'bell',
               'brick', 'teddy', 'cat', 'bat', 'water'],
        popular_words=POPULAR,
        cities=[
            {'name': 'Boston', 'population': 650000},
            {'name': 'Berlin', 'population': 3600000},
            {'name': 'Bath', 'population': 90000},
        ],
        countries=[
            {'name': 'Brazil', 'population': 212000000, 'altSpellings': ['Brasil']},
            {'name': 'Belgium', 'population': 11500000},
            {'name': 'France', 'population': 67000000},
        ],
    )


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualTimer:
    def __init__(self, delay, callback, label):
        self.delay = delay
        self.callback = callback
        self.label = label
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Collects deadlines instead of sleeping; tests fire them explicitly."""

    def __init__(self):
        self.timers = []

    def schedule(self, delay, callback, label=''):
        timer = ManualTimer(delay, callback, label)
        self.timers.append(timer)
        return timer

    @property
    def live(self):
        return [t for t in self.timers if not t.cancelled]

    def fire_all(self):
        for timer in self.live:
            timer.callback()


@pytest.fixture()
def lexicon():
    return build_test_lexicon()


@pytest.fixture()
def scoring(lexicon):
    return CommonnessScoring(lexicon)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def make_room(scoring, scheduler, clock):
    """Build a room with ``count`` joined players; the first one hosts."""

    def _make(count=2, rounds=2, listener=None):
        room = Room('ROOM1', scoring=scoring, scheduler=scheduler, clock=clock,
                    rounds_per_player=rounds, listener=listener)
        players = [room.join(f'sid-{i}', f'Player {i}') for i in range(count)]
        return room, players

    return _make


@pytest.fixture()
def flask_app(scheduler, clock):
    class TestConfig:
        TESTING = True
        SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
        ROUND_TIME_SECONDS = 60
        TIMER_GRACE_MS = 30
        DEFAULT_ROUNDS_PER_PLAYER = 5
        SCORING_STRATEGY = 'commonness'
        CORS_ORIGINS = ['http://localhost:5173']
        LEXICON = build_test_lexicon()
        SCHEDULER = scheduler
        CLOCK = clock

    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _connect():
        test_client = socketio.test_client(flask_app, namespace='/ws')
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass
