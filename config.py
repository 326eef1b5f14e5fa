import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///crossplay.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Room lobby
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '8'))
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '6'))
    # Seconds a room spends in 'starting' before play begins. 0 starts immediately.
    START_COUNTDOWN_SEC = int(os.environ.get('START_COUNTDOWN_SEC', '3'))
    # How long an ended room keeps its shared grid for reconnecting players (seconds)
    RECONNECT_GRACE_SEC = int(os.environ.get('RECONNECT_GRACE_SEC', '120'))
    # History writes are fire-and-forget; retry this many times before dropping
    COMPLETION_RETRY_ATTEMPTS = int(os.environ.get('COMPLETION_RETRY_ATTEMPTS', '3'))
    # Upper bound on concurrently open solo sessions kept in memory
    SOLO_SESSION_LIMIT = int(os.environ.get('SOLO_SESSION_LIMIT', '500'))
