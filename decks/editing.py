"""Owner-only creation and editing of flashcard sets and their cards.

Card positions inside a set are always renumbered 0..n-1 after a change.
Cards are frozen while a live game over the set is in progress.
"""

from __future__ import annotations

from typing import Iterable, Optional

from django.db import transaction
from django.db.models import Max, ProtectedError

from .models import Flashcard, FlashcardSet


class DeckEditError(Exception):
    """Raised when an edit request is malformed."""

    status_code = 400


class DeckNotFoundError(DeckEditError):
    status_code = 404


class CardNotFoundError(DeckEditError):
    status_code = 404


class NotOwnerError(DeckEditError):
    status_code = 403


class DeckInUseError(DeckEditError):
    """Raised when live games depend on the set being left as it is."""

    status_code = 409


def _clean_text(value, field: str, required: bool = True) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise DeckEditError(f"{field} must be a string.")
    value = value.strip()
    if required and not value:
        raise DeckEditError(f"{field} is required.")
    return value


def _clean_flag(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise DeckEditError(f"{field} must be true or false.")
    return value


def clean_cards(raw) -> list[tuple[str, str]]:
    """Keep the complete term/definition pairs; at least one is required."""

    if not isinstance(raw, list):
        raise DeckEditError("cards must be a list.")
    cards = []
    for item in raw:
        if not isinstance(item, dict):
            raise DeckEditError("Each card must be an object with term and definition.")
        term = _clean_text(item.get("term"), "term", required=False)
        definition = _clean_text(item.get("definition"), "definition", required=False)
        if term and definition:
            cards.append((term, definition))
    if not cards:
        raise DeckEditError("Please add at least one complete flashcard.")
    return cards


def require_owner(deck: FlashcardSet, actor_id) -> None:
    if actor_id is None or str(actor_id) != deck.owner_id:
        raise NotOwnerError("Only the owner can change this set.")


def _require_no_running_game(deck: FlashcardSet) -> None:
    if deck.game_sessions.filter(status="in_progress").exists():
        raise DeckInUseError("Cards cannot change while a game over this set is running.")


def _locked_deck(deck_id) -> FlashcardSet:
    deck = FlashcardSet.objects.select_for_update().filter(pk=deck_id).first()
    if deck is None:
        raise DeckNotFoundError("deck not found")
    return deck


def _locked_card(card_id) -> Flashcard:
    card = Flashcard.objects.select_for_update().select_related("set").filter(pk=card_id).first()
    if card is None:
        raise CardNotFoundError("card not found")
    return card


def _renumber(deck: FlashcardSet) -> None:
    cards = deck.ordered_cards()
    for position, card in enumerate(cards):
        card.position = position
    Flashcard.objects.bulk_update(cards, ["position"])


def _replace_cards(deck: FlashcardSet, cards: Iterable[tuple[str, str]]) -> None:
    deck.cards.all().delete()
    Flashcard.objects.bulk_create(
        Flashcard(set=deck, term=term, definition=definition, position=position)
        for position, (term, definition) in enumerate(cards)
    )


def create_set(owner_id, title, description="", is_public: bool = False, cards=None) -> FlashcardSet:
    owner_id = _clean_text(owner_id, "owner_id")
    title = _clean_text(title, "title")
    description = _clean_text(description, "description", required=False)
    cleaned = clean_cards(cards) if cards is not None else []

    with transaction.atomic():
        deck = FlashcardSet.objects.create(
            title=title,
            description=description,
            owner_id=owner_id,
            is_public=_clean_flag(is_public, "is_public"),
        )
        _replace_cards(deck, cleaned)
    return deck


def update_set(
    deck_id,
    actor_id,
    *,
    title=None,
    description=None,
    is_public: Optional[bool] = None,
    cards=None,
) -> FlashcardSet:
    """Change set fields; a `cards` list replaces every card of the set."""

    with transaction.atomic():
        deck = _locked_deck(deck_id)
        require_owner(deck, actor_id)
        if title is not None:
            deck.title = _clean_text(title, "title")
        if description is not None:
            deck.description = _clean_text(description, "description", required=False)
        if is_public is not None:
            deck.is_public = _clean_flag(is_public, "is_public")
        if cards is not None:
            cleaned = clean_cards(cards)
            _require_no_running_game(deck)
            _replace_cards(deck, cleaned)
        deck.save()
    return deck


def delete_set(deck_id, actor_id) -> None:
    with transaction.atomic():
        deck = _locked_deck(deck_id)
        require_owner(deck, actor_id)
        try:
            deck.delete()
        except ProtectedError as exc:
            raise DeckInUseError("This set has hosted live games and cannot be deleted.") from exc


def add_card(deck_id, actor_id, term, definition) -> Flashcard:
    term = _clean_text(term, "term")
    definition = _clean_text(definition, "definition")
    with transaction.atomic():
        deck = _locked_deck(deck_id)
        require_owner(deck, actor_id)
        _require_no_running_game(deck)
        last = deck.cards.aggregate(last=Max("position"))["last"]
        card = Flashcard.objects.create(
            set=deck,
            term=term,
            definition=definition,
            position=0 if last is None else last + 1,
        )
        deck.save(update_fields=["updated_at"])
    return card


def update_card(card_id, actor_id, term=None, definition=None) -> Flashcard:
    with transaction.atomic():
        card = _locked_card(card_id)
        require_owner(card.set, actor_id)
        if term is not None:
            card.term = _clean_text(term, "term")
        if definition is not None:
            card.definition = _clean_text(definition, "definition")
        card.save()
        card.set.save(update_fields=["updated_at"])
    return card


def delete_card(card_id, actor_id) -> None:
    with transaction.atomic():
        card = _locked_card(card_id)
        deck = card.set
        require_owner(deck, actor_id)
        _require_no_running_game(deck)
        card.delete()
        _renumber(deck)
        deck.save(update_fields=["updated_at"])
