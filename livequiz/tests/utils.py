from decks.models import Flashcard, FlashcardSet
from livequiz import registry, state_machine

HOST_ID = "host-1"


def make_deck(card_count: int = 3, title: str = "Capitals") -> FlashcardSet:
    deck = FlashcardSet.objects.create(title=title, owner_id=HOST_ID, is_public=True)
    for position in range(card_count):
        Flashcard.objects.create(
            set=deck,
            term=f"Term {position}",
            definition=f"Definition {position}",
            position=position,
        )
    return deck


def make_session(card_count: int = 3, players=()):
    session = state_machine.create_session(HOST_ID, make_deck(card_count).id)
    participants = [registry.join(session.code, name) for name in players]
    return session, participants
