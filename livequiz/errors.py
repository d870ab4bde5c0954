class GameSessionError(Exception):
    """Base class for every failure surfaced by the live quiz session core."""

    status_code = 400

    @property
    def kind(self) -> str:
        return type(self).__name__


class BadRequest(GameSessionError):
    """Raised when a request payload is malformed or misses required fields."""


class SessionNotFound(GameSessionError):
    """Raised when no session matches the given id or join code."""

    status_code = 404


class SessionAlreadyStarted(GameSessionError):
    """Raised when joining a session that has left the lobby."""

    status_code = 409


class InvalidDisplayName(GameSessionError):
    """Raised when a display name is empty or too long."""


class NotHost(GameSessionError):
    """Raised when a host-only operation is attempted by someone else."""

    status_code = 403


class InvalidTransition(GameSessionError):
    """Raised when an operation is not allowed from the session's current status."""

    status_code = 409


class InvalidMode(GameSessionError):
    """Raised for an unknown mode, a bad team size, or team assignment in single mode."""


class EmptyRoster(GameSessionError):
    """Raised when starting a session nobody has joined."""

    status_code = 409


class PersistenceFailure(GameSessionError):
    """Raised when the database rejects or times out a read or write. Safe to retry."""

    status_code = 503


class DeckNotFound(GameSessionError):
    status_code = 404


class EmptyDeck(GameSessionError):
    """Raised when creating a session over a deck without cards."""


class ParticipantNotFound(GameSessionError):
    status_code = 404


class DuplicateResponse(GameSessionError):
    """Raised when a participant answers the same card twice."""

    status_code = 409
