"""Database models for live quiz sessions."""

import uuid

from django.db import models
from django.utils import timezone

from decks.models import Flashcard, FlashcardSet


class GameSession(models.Model):
    """A host-driven quiz over one flashcard set."""

    class Status(models.TextChoices):
        WAITING = "waiting", "Waiting"
        IN_PROGRESS = "in_progress", "In progress"
        COMPLETED = "completed", "Completed"

    class Mode(models.TextChoices):
        SINGLE = "single", "Single"
        TEAMS = "teams", "Teams"

    class CompletedReason(models.TextChoices):
        EXHAUSTED = "exhausted", "Deck exhausted"
        ABORTED = "aborted", "Ended by host"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=16, db_index=True)
    deck = models.ForeignKey(FlashcardSet, on_delete=models.PROTECT, related_name="game_sessions")
    host_id = models.CharField(max_length=64)
    mode = models.CharField(max_length=16, choices=Mode.choices, default=Mode.SINGLE)
    team_size = models.PositiveIntegerField(default=4)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.WAITING,
        db_index=True,
    )
    current_card_index = models.PositiveIntegerField(null=True, blank=True)
    completed_reason = models.CharField(
        max_length=16,
        choices=CompletedReason.choices,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Game Session"
        verbose_name_plural = "Game Sessions"
        constraints = [
            models.UniqueConstraint(
                fields=["code"],
                condition=~models.Q(status="completed"),
                name="livequiz_active_code_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.status})"

    def to_payload(self) -> dict:
        return {
            "id": str(self.id),
            "code": self.code,
            "deck_id": self.deck_id,
            "host_id": self.host_id,
            "mode": self.mode,
            "team_size": self.team_size,
            "status": self.status,
            "current_card_index": self.current_card_index,
            "completed_reason": self.completed_reason,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class Participant(models.Model):
    """A player who joined a session from the lobby."""

    session = models.ForeignKey(GameSession, on_delete=models.CASCADE, related_name="participants")
    display_name = models.CharField(max_length=128)
    user_id = models.CharField(max_length=64, null=True, blank=True)
    team_number = models.PositiveIntegerField(null=True, blank=True)
    score = models.PositiveIntegerField(default=0)
    joined_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        ordering = ["joined_at", "id"]

    def __str__(self) -> str:
        return self.display_name

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "user_id": self.user_id,
            "team_number": self.team_number,
            "score": self.score,
            "joined_at": self.joined_at.isoformat(),
        }


class GameResponse(models.Model):
    """One participant's answer to the card shown at `card_index`."""

    session = models.ForeignKey(GameSession, on_delete=models.CASCADE, related_name="responses")
    participant = models.ForeignKey(Participant, on_delete=models.CASCADE, related_name="responses")
    flashcard = models.ForeignKey(Flashcard, on_delete=models.CASCADE, related_name="game_responses")
    card_index = models.PositiveIntegerField()
    is_correct = models.BooleanField()
    response_time_ms = models.PositiveIntegerField(null=True, blank=True)
    answered_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["answered_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["participant", "card_index"],
                name="livequiz_one_response_per_card",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return f"{self.participant_id}@{self.card_index}: {self.is_correct}"
