from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from decks.models import Flashcard

from .models import GameSession, Participant


@dataclass(slots=True)
class SessionView:
    """What one viewer should see for a session at a given moment."""

    session_id: str
    code: str
    status: str
    mode: str
    is_host: bool
    current_card: Optional[Flashcard]
    card_number: int
    card_count: int
    progress_percent: int
    participants: list[Participant]
    team_groups: Optional[dict[int, list[Participant]]] = None
    completed_reason: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "session_id": self.session_id,
            "code": self.code,
            "status": self.status,
            "mode": self.mode,
            "is_host": self.is_host,
            "current_card": self.current_card.to_payload() if self.current_card else None,
            "card_number": self.card_number,
            "card_count": self.card_count,
            "progress_percent": self.progress_percent,
            "participants": [p.to_payload() for p in self.participants],
            "team_groups": None,
            "completed_reason": self.completed_reason,
        }
        if self.team_groups is not None:
            payload["team_groups"] = [
                {"team_number": number, "members": [p.to_payload() for p in members]}
                for number, members in sorted(self.team_groups.items())
            ]
        return payload


def group_by_team(participants: Sequence[Participant]) -> dict[int, list[Participant]]:
    groups: dict[int, list[Participant]] = {}
    for participant in participants:
        if participant.team_number:
            groups.setdefault(participant.team_number, []).append(participant)
    return groups


def project(
    session: GameSession,
    participants: Sequence[Participant],
    viewer_id: Optional[str],
    cards: Sequence[Flashcard],
) -> SessionView:
    """Derive a viewer's SessionView. Pure: reads its arguments only."""

    index = session.current_card_index
    has_card = session.status != GameSession.Status.WAITING and index is not None
    deck_length = len(cards)

    current_card = cards[index] if has_card and 0 <= index < deck_length else None
    progress = round(100 * (index + 1) / deck_length) if has_card and deck_length else 0

    roster = sorted(participants, key=lambda p: (p.joined_at, p.id))
    team_groups = group_by_team(roster) if session.mode == GameSession.Mode.TEAMS else None

    return SessionView(
        session_id=str(session.id),
        code=session.code,
        status=session.status,
        mode=session.mode,
        is_host=viewer_id is not None and str(viewer_id) == session.host_id,
        current_card=current_card,
        card_number=index + 1 if has_card else 0,
        card_count=deck_length,
        progress_percent=progress,
        participants=roster,
        team_groups=team_groups,
        completed_reason=session.completed_reason,
    )
