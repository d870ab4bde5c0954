import json
from unittest import mock

import redis
from django.db import DatabaseError
from django.test import Client, TestCase

from .utils import HOST_ID, make_deck


class LiveQuizAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.deck = make_deck(card_count=2)

    def post(self, path: str, payload=None, **extra):
        return self.client.post(
            path,
            data=json.dumps(payload or {}),
            content_type="application/json",
            **extra,
        )

    def create_session(self) -> dict:
        response = self.post("/livequiz/session/", {"host_id": HOST_ID, "deck_id": self.deck.id})
        self.assertEqual(response.status_code, 200)
        return response.json()["session"]

    def test_full_game_flow(self):
        session = self.create_session()
        self.assertEqual(session["status"], "waiting")
        base = f"/livequiz/session/{session['id']}"

        join = self.post(f"/livequiz/session/{session['code'].lower()}/join/", {"display_name": "Ann"})
        self.assertEqual(join.status_code, 200)
        ann_id = join.json()["participant"]["id"]
        self.post(f"/livequiz/session/{session['code']}/join/", {"display_name": "Bo"})

        players = self.client.get(f"{base}/players/").json()
        self.assertEqual([p["display_name"] for p in players["participants"]], ["Ann", "Bo"])

        started = self.post(f"{base}/start/", {"actor_id": HOST_ID})
        self.assertEqual(started.status_code, 200)
        self.assertEqual(started.json()["session"]["current_card_index"], 0)

        answered = self.post(f"{base}/responses/", {"participant_id": ann_id, "is_correct": True})
        self.assertEqual(answered.status_code, 200)

        view = self.client.get(f"{base}/view/", {"viewer_id": "someone"}).json()["view"]
        self.assertFalse(view["is_host"])
        self.assertEqual(view["current_card"]["term"], "Term 0")
        self.assertEqual(view["progress_percent"], 50)

        self.post(f"{base}/advance/", HTTP_X_USER_ID=HOST_ID)
        finished = self.post(f"{base}/advance/", HTTP_X_USER_ID=HOST_ID).json()["session"]
        self.assertEqual(finished["status"], "completed")
        self.assertEqual(finished["current_card_index"], 1)

        results = self.client.get(f"{base}/results/").json()["results"]
        self.assertEqual(results["leaderboard"][0]["display_name"], "Ann")
        self.assertEqual(results["leaderboard"][0]["score"], 1)

    def test_teams_flow(self):
        session = self.create_session()
        base = f"/livequiz/session/{session['id']}"
        for name in ["Ann", "Bo", "Cy", "Dee", "Eve"]:
            self.post(f"/livequiz/session/{session['code']}/join/", {"display_name": name})

        mode = self.post(f"{base}/mode/", {"actor_id": HOST_ID, "mode": "teams", "team_size": 4})
        self.assertEqual(mode.status_code, 200)
        assigned = self.post(f"{base}/teams/", {"actor_id": HOST_ID})
        self.assertEqual(sorted(assigned.json()["teams"].values()), [1, 1, 1, 1, 2])

        view = self.client.get(f"{base}/view/", HTTP_X_USER_ID=HOST_ID).json()["view"]
        self.assertTrue(view["is_host"])
        self.assertEqual([len(group["members"]) for group in view["team_groups"]], [4, 1])

    def test_error_kinds_map_to_status_codes(self):
        session = self.create_session()
        base = f"/livequiz/session/{session['id']}"

        empty = self.post(f"{base}/start/", {"actor_id": HOST_ID})
        self.assertEqual(empty.status_code, 409)
        self.assertEqual(empty.json()["kind"], "EmptyRoster")

        self.post(f"/livequiz/session/{session['code']}/join/", {"display_name": "Bo"})
        not_host = self.post(f"{base}/start/", {"actor_id": "bo-user"})
        self.assertEqual(not_host.status_code, 403)
        self.assertEqual(not_host.json()["kind"], "NotHost")

        early = self.post(f"{base}/advance/", {"actor_id": HOST_ID})
        self.assertEqual(early.status_code, 409)
        self.assertEqual(early.json()["kind"], "InvalidTransition")

        self.post(f"{base}/start/", {"actor_id": HOST_ID})
        late = self.post(f"/livequiz/session/{session['code']}/join/", {"display_name": "Late"})
        self.assertEqual(late.status_code, 409)
        self.assertEqual(late.json()["kind"], "SessionAlreadyStarted")

        missing = self.post("/livequiz/session/NOPE00/join/", {"display_name": "Ann"})
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["kind"], "SessionNotFound")

    def test_invalid_display_name(self):
        session = self.create_session()
        response = self.post(f"/livequiz/session/{session['code']}/join/", {"display_name": " "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["kind"], "InvalidDisplayName")

    def test_rejects_malformed_json(self):
        response = self.client.post(
            "/livequiz/session/", data="{not json", content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["kind"], "BadRequest")

    def test_create_with_unknown_deck(self):
        response = self.post("/livequiz/session/", {"host_id": HOST_ID, "deck_id": 12345})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["kind"], "DeckNotFound")

    def test_database_failure_is_retryable(self):
        session = self.create_session()
        with mock.patch("livequiz.store._lookup", side_effect=DatabaseError("lock wait timeout")):
            response = self.post(
                f"/livequiz/session/{session['id']}/abort/", {"actor_id": HOST_ID}
            )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["kind"], "PersistenceFailure")

    def test_method_not_allowed(self):
        response = self.client.get("/livequiz/session/")
        self.assertEqual(response.status_code, 405)

    def test_event_stream_reports_unavailable_redis(self):
        session = self.create_session()
        with mock.patch(
            "livequiz.notifications._redis_client",
            side_effect=redis.ConnectionError("refused"),
        ):
            response = self.client.get(f"/livequiz/session/{session['id']}/events/")
        self.assertEqual(response.status_code, 503)

    def test_event_stream_relays_messages(self):
        session = self.create_session()
        message = {"event": "card_advanced", "session_id": session["id"]}
        with mock.patch("livequiz.views.notifications.subscribe"), mock.patch(
            "livequiz.views.notifications.iter_messages", return_value=iter([message])
        ):
            response = self.client.get(f"/livequiz/session/{session['id']}/events/")
            body = b"".join(response.streaming_content).decode()

        self.assertEqual(response["Content-Type"], "text/event-stream")
        self.assertIn("event: card_advanced", body)
        self.assertIn(json.dumps(message), body)

    def test_closing_unread_event_stream_releases_subscription(self):
        session = self.create_session()
        pubsub = mock.Mock()
        with mock.patch("livequiz.views.notifications.subscribe", return_value=pubsub):
            response = self.client.get(f"/livequiz/session/{session['id']}/events/")

        pubsub.close.assert_not_called()
        with mock.patch("django.core.signals.request_finished"):
            response.close()
        pubsub.close.assert_called_once_with()

