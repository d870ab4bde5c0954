from unittest import mock

from django.db import IntegrityError, transaction
from django.test import TestCase

from livequiz import registry, state_machine
from livequiz.errors import (
    BadRequest,
    DeckNotFound,
    EmptyDeck,
    EmptyRoster,
    InvalidMode,
    InvalidTransition,
    NotHost,
    SessionNotFound,
)
from livequiz.models import GameSession

from .utils import HOST_ID, make_deck, make_session


class CreateSessionTests(TestCase):
    def test_new_session_waits_in_single_mode(self):
        session = state_machine.create_session(HOST_ID, make_deck().id)

        self.assertEqual(session.status, GameSession.Status.WAITING)
        self.assertEqual(session.mode, GameSession.Mode.SINGLE)
        self.assertEqual(session.team_size, 4)
        self.assertIsNone(session.current_card_index)
        self.assertIsNone(session.started_at)
        self.assertEqual(len(session.code), 6)
        self.assertTrue(session.code.isalnum())
        self.assertEqual(session.code, session.code.upper())

    def test_supplied_code_is_normalized(self):
        session = state_machine.create_session(HOST_ID, make_deck().id, code="ab12cd")
        self.assertEqual(session.code, "AB12CD")

    def test_supplied_code_must_not_clash_with_active_session(self):
        state_machine.create_session(HOST_ID, make_deck().id, code="ABCDEF")
        with self.assertRaises(BadRequest):
            state_machine.create_session(HOST_ID, make_deck().id, code="abcdef")

    def test_code_claimed_after_the_check_is_rejected(self):
        state_machine.create_session(HOST_ID, make_deck().id, code="RACE01")

        with mock.patch("livequiz.state_machine.code_in_use", return_value=False):
            with self.assertRaises(BadRequest):
                state_machine.create_session(HOST_ID, make_deck().id, code="race01")

        self.assertEqual(GameSession.objects.filter(code="RACE01").count(), 1)

    def test_database_refuses_two_active_sessions_with_one_code(self):
        deck = make_deck()
        GameSession.objects.create(host_id=HOST_ID, deck=deck, code="DUPE01")
        with self.assertRaises(IntegrityError), transaction.atomic():
            GameSession.objects.create(host_id=HOST_ID, deck=deck, code="DUPE01")

    def test_completed_session_releases_its_code(self):
        session = state_machine.create_session(HOST_ID, make_deck().id, code="AGAIN1")
        state_machine.abort(session.id, HOST_ID)

        again = state_machine.create_session(HOST_ID, make_deck().id, code="AGAIN1")

        self.assertNotEqual(again.id, session.id)
        self.assertEqual(again.status, GameSession.Status.WAITING)

    def test_unknown_deck_is_rejected(self):
        with self.assertRaises(DeckNotFound):
            state_machine.create_session(HOST_ID, 999)
        with self.assertRaises(DeckNotFound):
            state_machine.create_session(HOST_ID, "not-a-number")

    def test_deck_without_cards_is_rejected(self):
        with self.assertRaises(EmptyDeck):
            state_machine.create_session(HOST_ID, make_deck(card_count=0).id)

    def test_host_is_required(self):
        with self.assertRaises(BadRequest):
            state_machine.create_session("", make_deck().id)


class LifecycleTests(TestCase):
    def test_three_card_game_runs_to_completion(self):
        session, _ = make_session(card_count=3, players=["Ann", "Bo"])

        session = state_machine.start(session.id, HOST_ID)
        self.assertEqual(session.status, GameSession.Status.IN_PROGRESS)
        self.assertEqual(session.current_card_index, 0)
        self.assertIsNotNone(session.started_at)

        session = state_machine.advance(session.id, HOST_ID)
        self.assertEqual(session.current_card_index, 1)
        session = state_machine.advance(session.id, HOST_ID)
        self.assertEqual(session.current_card_index, 2)
        self.assertEqual(session.status, GameSession.Status.IN_PROGRESS)

        session = state_machine.advance(session.id, HOST_ID)
        self.assertEqual(session.status, GameSession.Status.COMPLETED)
        self.assertEqual(session.current_card_index, 2)
        self.assertEqual(session.completed_reason, GameSession.CompletedReason.EXHAUSTED)
        self.assertIsNotNone(session.completed_at)

        session.refresh_from_db()
        self.assertEqual(session.status, GameSession.Status.COMPLETED)
        self.assertEqual(session.current_card_index, 2)

    def test_completes_exactly_on_the_deck_length_advance(self):
        deck_length = 5
        session, _ = make_session(card_count=deck_length, players=["Ann"])
        state_machine.start(session.id, HOST_ID)

        statuses = []
        for _ in range(deck_length):
            session = state_machine.advance(session.id, HOST_ID)
            statuses.append(session.status)
            self.assertLess(session.current_card_index, deck_length)

        self.assertEqual(statuses[:-1], [GameSession.Status.IN_PROGRESS] * (deck_length - 1))
        self.assertEqual(statuses[-1], GameSession.Status.COMPLETED)

    def test_single_card_deck_completes_on_first_advance(self):
        session, _ = make_session(card_count=1, players=["Ann"])
        state_machine.start(session.id, HOST_ID)

        session = state_machine.advance(session.id, HOST_ID)

        self.assertEqual(session.status, GameSession.Status.COMPLETED)
        self.assertEqual(session.current_card_index, 0)

    def test_start_with_empty_roster_fails(self):
        session, _ = make_session()

        with self.assertRaises(EmptyRoster):
            state_machine.start(session.id, HOST_ID)

        session.refresh_from_db()
        self.assertEqual(session.status, GameSession.Status.WAITING)
        self.assertIsNone(session.started_at)

    def test_start_twice_is_invalid(self):
        session, _ = make_session(players=["Ann"])
        state_machine.start(session.id, HOST_ID)

        with self.assertRaises(InvalidTransition):
            state_machine.start(session.id, HOST_ID)

    def test_advance_before_start_is_invalid(self):
        session, _ = make_session(players=["Ann"])

        with self.assertRaises(InvalidTransition):
            state_machine.advance(session.id, HOST_ID)

    def test_completed_session_cannot_move(self):
        session, _ = make_session(card_count=1, players=["Ann"])
        state_machine.start(session.id, HOST_ID)
        state_machine.advance(session.id, HOST_ID)

        for operation in (state_machine.start, state_machine.advance, state_machine.abort):
            with self.assertRaises(InvalidTransition):
                operation(session.id, HOST_ID)

        session.refresh_from_db()
        self.assertEqual(session.completed_reason, GameSession.CompletedReason.EXHAUSTED)

    def test_unknown_session(self):
        with self.assertRaises(SessionNotFound):
            state_machine.start("00000000-0000-0000-0000-000000000000", HOST_ID)
        with self.assertRaises(SessionNotFound):
            state_machine.advance("NOPE42", HOST_ID)


class AbortTests(TestCase):
    def test_abort_mid_game_keeps_card_index(self):
        session, _ = make_session(card_count=4, players=["Ann"])
        state_machine.start(session.id, HOST_ID)
        state_machine.advance(session.id, HOST_ID)

        session = state_machine.abort(session.id, HOST_ID)

        self.assertEqual(session.status, GameSession.Status.COMPLETED)
        self.assertEqual(session.completed_reason, GameSession.CompletedReason.ABORTED)
        self.assertEqual(session.current_card_index, 1)
        self.assertIsNotNone(session.completed_at)

    def test_abort_from_lobby(self):
        session, _ = make_session()

        session = state_machine.abort(session.id, HOST_ID)

        self.assertEqual(session.status, GameSession.Status.COMPLETED)
        self.assertIsNone(session.current_card_index)
        self.assertIsNone(session.started_at)


class SetModeTests(TestCase):
    def test_switch_to_teams_with_size(self):
        session, _ = make_session()

        session = state_machine.set_mode(session.id, HOST_ID, "teams", team_size=3)

        self.assertEqual(session.mode, GameSession.Mode.TEAMS)
        self.assertEqual(session.team_size, 3)

    def test_keeps_team_size_when_omitted(self):
        session, _ = make_session()
        session = state_machine.set_mode(session.id, HOST_ID, "teams")
        self.assertEqual(session.team_size, 4)

    def test_rejects_unknown_mode_and_bad_team_size(self):
        session, _ = make_session()
        with self.assertRaises(InvalidMode):
            state_machine.set_mode(session.id, HOST_ID, "duel")
        with self.assertRaises(InvalidMode):
            state_machine.set_mode(session.id, HOST_ID, "teams", team_size=0)
        with self.assertRaises(InvalidMode):
            state_machine.set_mode(session.id, HOST_ID, "teams", team_size="4")

    def test_mode_is_frozen_after_start(self):
        session, _ = make_session(players=["Ann"])
        state_machine.start(session.id, HOST_ID)

        with self.assertRaises(InvalidTransition):
            state_machine.set_mode(session.id, HOST_ID, "teams")


class HostAuthorizationTests(TestCase):
    def setUp(self):
        self.session, _ = make_session(card_count=3, players=["Ann", "Bo"])

    def test_non_host_cannot_advance(self):
        state_machine.start(self.session.id, HOST_ID)

        with self.assertRaises(NotHost):
            state_machine.advance(self.session.id, "bo-user")

        self.session.refresh_from_db()
        self.assertEqual(self.session.current_card_index, 0)

    def test_non_host_mutations_leave_session_unchanged(self):
        before = GameSession.objects.get(pk=self.session.pk).to_payload()

        with self.assertRaises(NotHost):
            state_machine.set_mode(self.session.id, "bo-user", "teams")
        with self.assertRaises(NotHost):
            state_machine.start(self.session.id, "bo-user")
        with self.assertRaises(NotHost):
            state_machine.abort(self.session.id, "bo-user")
        with self.assertRaises(NotHost):
            state_machine.start(self.session.id, None)

        after = GameSession.objects.get(pk=self.session.pk).to_payload()
        self.assertEqual(before, after)

    def test_host_check_precedes_state_check(self):
        with self.assertRaises(NotHost):
            state_machine.advance(self.session.id, "bo-user")

    def test_join_code_works_as_session_key(self):
        session = state_machine.start(self.session.code.lower(), HOST_ID)
        self.assertEqual(session.status, GameSession.Status.IN_PROGRESS)
        self.assertEqual(len(registry.list_participants(session.id)), 2)
