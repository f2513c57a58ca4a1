"""Typed outcomes raised by the session engine.

The HTTP layer maps each family to a status code (see ``main.py``);
engine callers branch on the class rather than on message text.
"""


class GameError(Exception):
    """Base class for all expected, recoverable engine outcomes."""


class NotFoundError(GameError):
    """Unknown session id, join code, player token, stage or question."""


class UnauthorizedError(GameError):
    """The caller does not own the session it tried to administer."""


class ConflictError(GameError):
    """The request is well formed but the session state forbids it."""


class InvalidInputError(GameError):
    """Malformed input: bad code length, out-of-range values, etc."""


class PersistenceError(GameError):
    """Durable snapshot could not be read or written."""


class InvalidCode(NotFoundError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Invalid game code '{code}'")


class GameFull(ConflictError):
    def __init__(self, max_players: int) -> None:
        super().__init__(f"Game is full (maximum {max_players} players)")


class GameCompleted(ConflictError):
    def __init__(self) -> None:
        super().__init__("This game has already ended")


class GameInProgress(ConflictError):
    def __init__(self) -> None:
        super().__init__("Game has already started")
