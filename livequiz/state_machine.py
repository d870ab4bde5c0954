"""Lifecycle and card-pointer transitions of a live quiz session.

Statuses only move forward: waiting -> in_progress -> completed. Every
mutation locks the session row, checks host then status, writes, and queues a
notification for after the commit.
"""

import logging
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from decks.models import FlashcardSet

from .codes import code_in_use, generate_code
from .errors import (
    BadRequest,
    DeckNotFound,
    EmptyDeck,
    EmptyRoster,
    InvalidMode,
    InvalidTransition,
    NotHost,
    PersistenceFailure,
)
from .models import GameSession
from .notifications import notify_session_changed
from .store import locked_session, normalize_code, persistence_errors

logger = logging.getLogger(__name__)

DEFAULT_TEAM_SIZE = getattr(settings, "LIVEQUIZ_DEFAULT_TEAM_SIZE", 4)
CODE_IN_USE = "Join code is already used by an active session."

Status = GameSession.Status


def require_host(session: GameSession, actor_id) -> None:
    if actor_id is None or str(actor_id) != session.host_id:
        raise NotHost("Only the host can do that.")


def _require_status(session: GameSession, status: str, message: str) -> None:
    if session.status != status:
        raise InvalidTransition(f"{message} (status is {session.status}).")


def _validate_team_size(team_size) -> int:
    if isinstance(team_size, bool) or not isinstance(team_size, int) or team_size < 1:
        raise InvalidMode("team_size must be a positive integer.")
    return team_size


def create_session(host_id, deck_id, code: Optional[str] = None) -> GameSession:
    if host_id is None or not str(host_id).strip():
        raise BadRequest("host_id is required.")
    try:
        deck_pk = int(deck_id)
    except (TypeError, ValueError):
        raise DeckNotFound("Deck does not exist.")

    with persistence_errors():
        deck = FlashcardSet.objects.filter(pk=deck_pk).first()
        if deck is None:
            raise DeckNotFound("Deck does not exist.")
        if not deck.cards.exists():
            raise EmptyDeck("Cannot host a game over a deck without cards.")

        supplied = bool(code)
        if supplied:
            code = normalize_code(code)
            if code_in_use(code):
                raise BadRequest(CODE_IN_USE)
        else:
            code = generate_code()

        try:
            with transaction.atomic():
                session = GameSession.objects.create(
                    host_id=str(host_id),
                    deck=deck,
                    code=code,
                    team_size=DEFAULT_TEAM_SIZE,
                )
        except IntegrityError as exc:
            # Another session claimed the code between the check and the insert.
            if supplied:
                raise BadRequest(CODE_IN_USE) from exc
            raise PersistenceFailure("Join code collided with a new session. Please try again.") from exc
        notify_session_changed(session, "session_created")

    logger.info("Session %s created by %s over deck %s", session.code, session.host_id, deck.pk)
    return session


def set_mode(session_id, actor_id, mode: str, team_size: Optional[int] = None) -> GameSession:
    with locked_session(session_id) as session:
        require_host(session, actor_id)
        _require_status(session, Status.WAITING, "Mode can only change in the lobby")
        if mode not in GameSession.Mode.values:
            raise InvalidMode(f"mode must be one of: {', '.join(GameSession.Mode.values)}.")

        session.mode = mode
        update_fields = ["mode"]
        if team_size is not None:
            session.team_size = _validate_team_size(team_size)
            update_fields.append("team_size")
        session.save(update_fields=update_fields)
        notify_session_changed(session, "mode_changed")

    logger.info("Session %s mode set to %s (team_size=%s)", session.code, session.mode, session.team_size)
    return session


def start(session_id, actor_id) -> GameSession:
    with locked_session(session_id) as session:
        require_host(session, actor_id)
        _require_status(session, Status.WAITING, "Game has already started")
        if not session.participants.exists():
            raise EmptyRoster("Need at least one participant to start.")

        session.status = Status.IN_PROGRESS
        session.current_card_index = 0
        session.started_at = timezone.now()
        session.save(update_fields=["status", "current_card_index", "started_at"])
        notify_session_changed(session, "session_started")

    logger.info("Session %s started", session.code)
    return session


def advance(session_id, actor_id) -> GameSession:
    """Move to the next card, or complete the session after the last one."""
    with locked_session(session_id) as session:
        require_host(session, actor_id)
        _require_status(session, Status.IN_PROGRESS, "Cards can only advance during a game")

        deck_length = session.deck.cards.count()
        if session.current_card_index + 1 < deck_length:
            session.current_card_index += 1
            session.save(update_fields=["current_card_index"])
            notify_session_changed(session, "card_advanced")
        else:
            session.status = Status.COMPLETED
            session.completed_reason = GameSession.CompletedReason.EXHAUSTED
            session.completed_at = timezone.now()
            session.save(update_fields=["status", "completed_reason", "completed_at"])
            notify_session_changed(session, "session_completed")

    logger.info(
        "Session %s advanced: status=%s index=%s",
        session.code,
        session.status,
        session.current_card_index,
    )
    return session


def abort(session_id, actor_id) -> GameSession:
    """End the game early from the lobby or mid-game."""
    with locked_session(session_id) as session:
        require_host(session, actor_id)
        if session.status == Status.COMPLETED:
            raise InvalidTransition("Game has already ended.")

        session.status = Status.COMPLETED
        session.completed_reason = GameSession.CompletedReason.ABORTED
        session.completed_at = timezone.now()
        session.save(update_fields=["status", "completed_reason", "completed_at"])
        notify_session_changed(session, "session_completed")

    logger.info("Session %s aborted by host", session.code)
    return session
