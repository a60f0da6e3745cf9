"""Errors raised by room actions.

Every one of these is reported back to the connection that triggered it as an
``error`` event and never reaches the rest of the room.
"""


class GameError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(GameError):
    pass


class Unauthorized(GameError):
    pass


class InvalidState(GameError):
    pass


class GameInProgress(InvalidState):
    def __init__(self, message: str = "Game already in progress"):
        super().__init__(message)


class Full(GameError):
    def __init__(self, message: str = "Room is full"):
        super().__init__(message)


class UpstreamFailure(GameError):
    def __init__(self, message: str = "Failed to generate questions"):
        super().__init__(message)


class InvalidPayload(GameError):
    pass
