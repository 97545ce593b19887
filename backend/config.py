import os


def _env_list(name, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(',') if item.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Answer window for a turn (seconds) and the slack added to its deadline timer
    ROUND_TIME_SECONDS = int(os.environ.get('ROUND_TIME_SECONDS', '60'))
    TIMER_GRACE_MS = int(os.environ.get('TIMER_GRACE_MS', '30'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
    DEFAULT_ROUNDS_PER_PLAYER = int(os.environ.get('DEFAULT_ROUNDS_PER_PLAYER', '5'))
    # 'commonness' (lexicon weighted) or 'letter' (fixed points, offline)
    SCORING_STRATEGY = os.environ.get('SCORING_STRATEGY', 'commonness')
    # Directory holding the lexicon data files; None uses the bundled set
    LEXICON_DATA_DIR = os.environ.get('LEXICON_DATA_DIR') or None
    CORS_ORIGINS = _env_list('CORS_ORIGINS', [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ])
    ENABLE_TIMERS_IN_TESTS = False
