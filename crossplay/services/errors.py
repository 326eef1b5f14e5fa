"""Error taxonomy shared by the grid, session, room and collaborator layers."""


class CrossplayError(Exception):
    """Base class for every error raised by crossplay services."""

    message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.message)

    def to_dict(self):
        return {'error': str(self), 'kind': type(self).__name__}


class MalformedGridError(CrossplayError):
    """The puzzle grid cannot be played. Fatal for the puzzle."""

    message = 'Malformed puzzle grid'


# ---- Room errors: recoverable, carried in RoomResult ----

class RoomError(CrossplayError):
    message = 'Room error'


class RoomNotFoundError(RoomError):
    message = 'Room not found'


class RoomFullError(RoomError):
    message = 'Room is full'


class RoomClosedError(RoomError):
    message = 'Room is not accepting players'


class PlayerNotInRoomError(RoomError):
    message = 'Player is not in this room'


class NotHostError(RoomError):
    message = 'Only the host may do that'


# ---- Collaborator errors ----

class NotFoundError(CrossplayError):
    message = 'Not found'


class NetworkError(CrossplayError):
    """A collaborator could not be reached. Callers may retry."""

    message = 'Service temporarily unavailable'
