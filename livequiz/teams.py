import logging
from typing import Dict, Sequence

from .errors import InvalidMode, InvalidTransition
from .models import GameSession, Participant
from .notifications import notify_session_changed
from .state_machine import require_host
from .store import locked_session

logger = logging.getLogger(__name__)


def partition(participants: Sequence[Participant], team_size: int) -> Dict[int, int]:
    """Map participant ids to 1-based team numbers, filling teams in join order."""
    ordered = sorted(participants, key=lambda p: (p.joined_at, p.id))
    return {p.id: index // team_size + 1 for index, p in enumerate(ordered)}


def assign_teams(session_id, actor_id) -> Dict[int, int]:
    """Recompute every participant's team from scratch.

    Running it again after more players joined may move earlier players to a
    different team.
    """
    with locked_session(session_id) as session:
        require_host(session, actor_id)
        if session.status != GameSession.Status.WAITING:
            raise InvalidTransition("Teams can only be assigned in the lobby.")
        if session.mode != GameSession.Mode.TEAMS:
            raise InvalidMode("Switch the game to team mode before assigning teams.")

        participants = list(session.participants.all())
        assignment = partition(participants, session.team_size)

        changed = []
        for participant in participants:
            team_number = assignment[participant.id]
            if participant.team_number != team_number:
                participant.team_number = team_number
                changed.append(participant)
        if changed:
            Participant.objects.bulk_update(changed, ["team_number"])
        notify_session_changed(session, "teams_assigned")

    logger.info(
        "Session %s: %s participant(s) in %s team(s)",
        session.code,
        len(assignment),
        len(set(assignment.values())),
    )
    return assignment
