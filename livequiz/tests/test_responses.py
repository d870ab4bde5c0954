from django.test import TestCase

from livequiz import responses, state_machine, teams
from livequiz.errors import BadRequest, DuplicateResponse, InvalidTransition, ParticipantNotFound

from .utils import HOST_ID, make_session


class RecordResponseTests(TestCase):
    def setUp(self):
        self.session, (self.ann, self.bo) = make_session(card_count=2, players=["Ann", "Bo"])

    def test_answers_only_while_running(self):
        with self.assertRaises(InvalidTransition):
            responses.record_response(self.session.id, self.ann.id, True)

    def test_correct_answer_scores(self):
        state_machine.start(self.session.id, HOST_ID)

        response = responses.record_response(self.session.id, self.ann.id, True, response_time_ms=850)

        self.assertEqual(response.card_index, 0)
        self.assertEqual(response.flashcard.term, "Term 0")
        self.ann.refresh_from_db()
        self.assertEqual(self.ann.score, 1)

    def test_wrong_answer_does_not_score(self):
        state_machine.start(self.session.id, HOST_ID)
        responses.record_response(self.session.id, self.bo.id, False)
        self.bo.refresh_from_db()
        self.assertEqual(self.bo.score, 0)

    def test_one_answer_per_card(self):
        state_machine.start(self.session.id, HOST_ID)
        responses.record_response(self.session.id, self.ann.id, True)

        with self.assertRaises(DuplicateResponse):
            responses.record_response(self.session.id, self.ann.id, True)

        state_machine.advance(self.session.id, HOST_ID)
        response = responses.record_response(self.session.id, self.ann.id, True)
        self.assertEqual(response.card_index, 1)

    def test_participant_must_belong_to_session(self):
        _, (stranger,) = make_session(players=["Zed"])
        state_machine.start(self.session.id, HOST_ID)

        with self.assertRaises(ParticipantNotFound):
            responses.record_response(self.session.id, stranger.id, True)
        with self.assertRaises(ParticipantNotFound):
            responses.record_response(self.session.id, "abc", True)

    def test_validates_payload_values(self):
        state_machine.start(self.session.id, HOST_ID)
        with self.assertRaises(BadRequest):
            responses.record_response(self.session.id, self.ann.id, "yes")
        with self.assertRaises(BadRequest):
            responses.record_response(self.session.id, self.ann.id, True, response_time_ms=-5)


class ResultsTests(TestCase):
    def test_leaderboard_orders_by_score_then_join_order(self):
        session, (ann, bo, cy) = make_session(card_count=2, players=["Ann", "Bo", "Cy"])
        state_machine.start(session.id, HOST_ID)
        responses.record_response(session.id, bo.id, True)
        responses.record_response(session.id, cy.id, False)
        state_machine.advance(session.id, HOST_ID)
        responses.record_response(session.id, bo.id, True)
        responses.record_response(session.id, cy.id, True)
        state_machine.advance(session.id, HOST_ID)

        result = responses.results(session.code)

        self.assertEqual(result["status"], "completed")
        self.assertEqual(
            [(row["display_name"], row["score"], row["answered"], row["correct"]) for row in result["leaderboard"]],
            [("Bo", 2, 2, 2), ("Cy", 1, 2, 1), ("Ann", 0, 0, 0)],
        )
        self.assertEqual([row["rank"] for row in result["leaderboard"]], [1, 2, 3])
        self.assertIsNone(result["teams"])

    def test_team_totals(self):
        session, players = make_session(card_count=1, players=["Ann", "Bo", "Cy"])
        state_machine.set_mode(session.id, HOST_ID, "teams", team_size=2)
        teams.assign_teams(session.id, HOST_ID)
        state_machine.start(session.id, HOST_ID)
        responses.record_response(session.id, players[0].id, True)
        responses.record_response(session.id, players[2].id, True)

        result = responses.results(session.id)

        self.assertEqual(
            result["teams"],
            [
                {"team_number": 1, "score": 1, "members": 2},
                {"team_number": 2, "score": 1, "members": 1},
            ],
        )
