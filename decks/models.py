from django.db import models


class FlashcardSet(models.Model):
    """A named deck of flashcards owned by a single user."""

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    owner_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Identifier of the user who created the set.",
    )
    is_public = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at", "-id"]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return self.title

    def ordered_cards(self) -> list["Flashcard"]:
        return list(self.cards.order_by("position", "id"))

    def to_payload(self, include_cards: bool = False) -> dict:
        payload = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "owner_id": self.owner_id,
            "is_public": self.is_public,
        }
        if include_cards:
            payload["cards"] = [card.to_payload() for card in self.ordered_cards()]
        return payload


class Flashcard(models.Model):
    """A single term/definition pair inside a flashcard set."""

    set = models.ForeignKey(FlashcardSet, on_delete=models.CASCADE, related_name="cards")
    term = models.TextField()
    definition = models.TextField()
    position = models.PositiveIntegerField(
        default=0,
        help_text="Zero-based ordering of the card within its set.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["set", "position", "id"]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return self.term

    def to_payload(self) -> dict[str, int | str]:
        return {
            "id": self.id,
            "term": self.term,
            "definition": self.definition,
            "position": self.position,
        }


class StudyProgress(models.Model):
    """How well one user knows one card, updated after every review."""

    user_id = models.CharField(max_length=64, db_index=True)
    flashcard = models.ForeignKey(Flashcard, on_delete=models.CASCADE, related_name="study_progress")
    mastery_level = models.PositiveSmallIntegerField(
        default=0,
        help_text="0 (new) to 5; a card counts as mastered from level 4.",
    )
    times_reviewed = models.PositiveIntegerField(default=0)
    times_correct = models.PositiveIntegerField(default=0)
    is_starred = models.BooleanField(default=False)
    last_studied_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["last_studied_at", "id"]
        verbose_name_plural = "Study progress"
        constraints = [
            models.UniqueConstraint(
                fields=["user_id", "flashcard"],
                name="decks_one_progress_per_user_card",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial representation
        return f"{self.user_id}: {self.flashcard_id} @ {self.mastery_level}"

    def to_payload(self) -> dict:
        return {
            "card_id": self.flashcard_id,
            "set_id": self.flashcard.set_id,
            "term": self.flashcard.term,
            "mastery_level": self.mastery_level,
            "times_reviewed": self.times_reviewed,
            "times_correct": self.times_correct,
            "is_starred": self.is_starred,
            "last_studied_at": self.last_studied_at.isoformat() if self.last_studied_at else None,
        }
