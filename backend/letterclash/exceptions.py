"""Errors raised by the room layer.

Every command rejection is one of these; the socket gateway turns them into
``{'ok': False, 'error': message}`` acknowledgements, so the message is what a
player sees.
"""


class GameError(Exception):
    """Base class for all rejected game commands."""

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class RoomNotFound(GameError):
    def __init__(self, room_id=None):
        self.room_id = room_id
        super().__init__("Room not found.")


class IllegalAction(GameError):
    """Wrong phase, wrong actor, or an invalid target (letter, opponent)."""
    pass
