"""Error kinds raised by game operations.

Every error carries a short message that is safe to show to the actor.
"""


class GameError(Exception):
    """Base class for errors surfaced to the actor."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GameError):
    """Caller input violates a precondition. Nothing was written."""


class ConflictError(GameError):
    """The operation was already done; treated as a benign terminal state."""


class AlreadyVotedError(ConflictError):
    def __init__(self, message: str = "Your response for this round has already been recorded."):
        super().__init__(message)


class NotFoundError(GameError):
    """A referenced game, round or player does not exist."""


class NotHostError(NotFoundError):
    """The actor is not the host of the game. Nothing was written."""

    def __init__(self, message: str = "Only the host can manage this game."):
        super().__init__(message)


class StoreError(GameError):
    """The persistence layer failed. Earlier writes of the operation are kept."""

    def __init__(self, message: str = "Something went wrong, please try again."):
        super().__init__(message)
