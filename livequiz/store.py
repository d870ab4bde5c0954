"""Session lookup and per-session row locking on top of the Django ORM."""

import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from django.db import DatabaseError, transaction

from .errors import PersistenceFailure, SessionNotFound
from .models import GameSession


def normalize_code(code: str) -> str:
    return str(code).strip().upper()


def _as_uuid(key) -> Optional[uuid.UUID]:
    if isinstance(key, uuid.UUID):
        return key
    try:
        return uuid.UUID(str(key))
    except ValueError:
        return None


def _lookup(key, for_update: bool = False) -> GameSession:
    queryset = GameSession.objects.all()
    if for_update:
        queryset = queryset.select_for_update()

    session_id = _as_uuid(key)
    if session_id is not None:
        session = queryset.filter(pk=session_id).first()
    else:
        # Codes are only unique among sessions that have not completed.
        code = normalize_code(key)
        session = (
            queryset.filter(code=code).exclude(status=GameSession.Status.COMPLETED).first()
            or queryset.filter(code=code).order_by("-created_at").first()
        )
    if session is None:
        raise SessionNotFound("Session does not exist. Please verify the session code.")
    return session


@contextmanager
def persistence_errors() -> Iterator[None]:
    """Surface database failures as retryable PersistenceFailure errors."""
    try:
        yield
    except DatabaseError as exc:
        raise PersistenceFailure(f"Database access error: {exc}") from exc


def get_session(key) -> GameSession:
    """Fetch a session by UUID or join code without locking it."""
    with persistence_errors():
        return _lookup(key)


@contextmanager
def locked_session(key) -> Iterator[GameSession]:
    """Open a transaction holding the session row lock for the duration of the block.

    Everything done inside commits together or not at all; concurrent callers
    on the same session wait for the lock and then see the committed state.
    """
    with persistence_errors():
        with transaction.atomic():
            yield _lookup(key, for_update=True)
