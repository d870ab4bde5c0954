import logging
from typing import Any, Dict, Optional

from django.db.models import Count, F, Q

from .errors import BadRequest, DuplicateResponse, InvalidTransition, ParticipantNotFound
from .models import GameResponse, GameSession, Participant
from .notifications import notify_session_changed
from .store import get_session, locked_session, persistence_errors

logger = logging.getLogger(__name__)


def record_response(
    session_id,
    participant_id,
    is_correct: bool,
    response_time_ms: Optional[int] = None,
) -> GameResponse:
    """Record a participant's answer to the card currently on screen."""

    if not isinstance(is_correct, bool):
        raise BadRequest("is_correct must be a boolean.")
    if response_time_ms is not None and (
        isinstance(response_time_ms, bool) or not isinstance(response_time_ms, int) or response_time_ms < 0
    ):
        raise BadRequest("response_time_ms must be a non-negative integer.")

    with locked_session(session_id) as session:
        if session.status != GameSession.Status.IN_PROGRESS:
            raise InvalidTransition("Answers are only accepted while the game is running.")
        try:
            participant = session.participants.get(pk=int(participant_id))
        except (Participant.DoesNotExist, TypeError, ValueError):
            raise ParticipantNotFound("Participant does not belong to this session.")

        index = session.current_card_index
        if participant.responses.filter(card_index=index).exists():
            raise DuplicateResponse("This card has already been answered.")

        flashcard = session.deck.cards.order_by("position", "id")[index]
        response = GameResponse.objects.create(
            session=session,
            participant=participant,
            flashcard=flashcard,
            card_index=index,
            is_correct=is_correct,
            response_time_ms=response_time_ms,
        )
        if is_correct:
            Participant.objects.filter(pk=participant.pk).update(score=F("score") + 1)
        notify_session_changed(session, "response_recorded")

    logger.debug(
        "Session %s: participant %s answered card %s (correct=%s)",
        session.code,
        participant.pk,
        index,
        is_correct,
    )
    return response


def results(session_key) -> Dict[str, Any]:
    """Leaderboard for a session, best score first, ties in join order."""

    session = get_session(session_key)
    with persistence_errors():
        participants = list(
            session.participants.annotate(
                answered=Count("responses"),
                correct=Count("responses", filter=Q(responses__is_correct=True)),
            ).order_by("-score", "joined_at", "id")
        )

    leaderboard = [
        {
            "rank": rank,
            "participant_id": p.id,
            "display_name": p.display_name,
            "team_number": p.team_number,
            "score": p.score,
            "answered": p.answered,
            "correct": p.correct,
        }
        for rank, p in enumerate(participants, start=1)
    ]

    teams = None
    if session.mode == GameSession.Mode.TEAMS:
        totals: Dict[int, Dict[str, Any]] = {}
        for p in participants:
            if not p.team_number:
                continue
            entry = totals.setdefault(p.team_number, {"team_number": p.team_number, "score": 0, "members": 0})
            entry["score"] += p.score
            entry["members"] += 1
        teams = sorted(totals.values(), key=lambda t: (-t["score"], t["team_number"]))

    return {
        "session_id": str(session.id),
        "code": session.code,
        "status": session.status,
        "completed_reason": session.completed_reason,
        "leaderboard": leaderboard,
        "teams": teams,
    }
