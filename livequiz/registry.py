import logging
from typing import List, Optional

from django.conf import settings

from .errors import InvalidDisplayName, SessionAlreadyStarted
from .models import GameSession, Participant
from .notifications import notify_session_changed
from .store import get_session, locked_session, persistence_errors

logger = logging.getLogger(__name__)

MAX_DISPLAY_NAME = getattr(settings, "LIVEQUIZ_MAX_DISPLAY_NAME", 30)


def clean_display_name(display_name) -> str:
    if not isinstance(display_name, str) or not display_name.strip():
        raise InvalidDisplayName("Display name must not be empty.")
    name = display_name.strip()
    if len(name) > MAX_DISPLAY_NAME:
        raise InvalidDisplayName(f"Display name must be at most {MAX_DISPLAY_NAME} characters.")
    return name


def join(session_key, display_name, user_id: Optional[str] = None) -> Participant:
    """Add a participant to a session that is still in the lobby.

    `session_key` is either the session UUID or its join code (any case).
    Display names are not required to be unique.
    """
    with locked_session(session_key) as session:
        if session.status != GameSession.Status.WAITING:
            raise SessionAlreadyStarted("This game has already started; new players cannot join.")
        name = clean_display_name(display_name)

        participant = Participant.objects.create(
            session=session,
            display_name=name,
            user_id=str(user_id) if user_id else None,
        )
        notify_session_changed(session, "participant_joined")

    logger.info("%s joined session %s", name, session.code)
    return participant


def list_participants(session_key) -> List[Participant]:
    session = get_session(session_key)
    with persistence_errors():
        return list(session.participants.order_by("joined_at", "id"))
