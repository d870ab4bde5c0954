import json
from datetime import timedelta
from unittest import mock

import requests
from django.test import Client, TestCase, override_settings
from django.utils import timezone

from flashcards_backend.llm_client import call_llm
from livequiz.models import GameSession

from . import study
from .models import Flashcard, FlashcardSet, StudyProgress
from .questions import QuestionGenerationError, generate_questions, parse_questions

LLM_SETTINGS = {"LLM_BASE_URL": "https://llm.example.com/v1", "LLM_API_KEY": "test-key"}


def _completion(content: str) -> mock.Mock:
    response = mock.Mock(status_code=200, text="")
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    return response


class DeckAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.deck = FlashcardSet.objects.create(title="Verbs", owner_id="owner-1", is_public=True)
        Flashcard.objects.create(set=self.deck, term="być", definition="to be", position=1)
        Flashcard.objects.create(set=self.deck, term="mieć", definition="to have", position=0)
        self.private = FlashcardSet.objects.create(title="Drafts", owner_id="owner-2")

    def test_detail_lists_cards_in_position_order(self):
        response = self.client.get(f"/decks/{self.deck.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual([card["term"] for card in payload["cards"]], ["mieć", "być"])

    def test_detail_not_found(self):
        response = self.client.get("/decks/9999/")
        self.assertEqual(response.status_code, 404)

    def test_list_hides_private_sets_of_other_owners(self):
        titles = [deck["title"] for deck in self.client.get("/decks/").json()["decks"]]
        self.assertEqual(titles, ["Verbs"])

        owned = self.client.get("/decks/", {"owner_id": "owner-2"}).json()
        self.assertEqual(sorted(deck["title"] for deck in owned["decks"]), ["Drafts", "Verbs"])

    @override_settings(**LLM_SETTINGS)
    def test_question_feed(self):
        content = json.dumps({"questions": [{"question": "'być' means?", "correctAnswer": True}]})
        with mock.patch("flashcards_backend.llm_client.requests.post", return_value=_completion(content)):
            response = self.client.post(
                f"/decks/{self.deck.id}/questions/",
                data=json.dumps({"count": 1, "question_type": "true_false"}),
                content_type="application/json",
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)

    def test_question_feed_validates_count(self):
        for count in ("abc", 0, 500):
            response = self.client.post(
                f"/decks/{self.deck.id}/questions/",
                data=json.dumps({"count": count}),
                content_type="application/json",
            )
            self.assertEqual(response.status_code, 400)

    def test_question_feed_without_llm_configuration(self):
        with override_settings(LLM_BASE_URL=None, LLM_API_KEY=None):
            response = self.client.post(f"/decks/{self.deck.id}/questions/")
        self.assertEqual(response.status_code, 502)


class GenerateQuestionsTests(TestCase):
    def setUp(self) -> None:
        deck = FlashcardSet.objects.create(title="Verbs", owner_id="owner-1")
        Flashcard.objects.create(set=deck, term="być", definition="to be")
        self.cards = deck.ordered_cards()

    @override_settings(**LLM_SETTINGS)
    def test_prompt_carries_cards_and_parses_answer(self):
        question = {
            "question": "What does 'być' mean?",
            "options": ["A: to be", "B: to have", "C: to go", "D: to eat"],
            "correctAnswer": "A",
        }
        with mock.patch(
            "flashcards_backend.llm_client.requests.post",
            return_value=_completion(json.dumps({"questions": [question]})),
        ) as post:
            questions = generate_questions(self.cards, count=1)

        self.assertEqual(questions, [question])
        sent = post.call_args.kwargs["json"]
        self.assertEqual(sent["response_format"], {"type": "json_object"})
        self.assertIn("Term: być\nDefinition: to be", sent["messages"][1]["content"])
        self.assertEqual(post.call_args.kwargs["headers"]["Authorization"], "Bearer test-key")

    def test_rejects_unknown_question_type(self):
        with self.assertRaises(QuestionGenerationError) as ctx:
            generate_questions(self.cards, question_type="essay")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_parse_accepts_bare_array(self):
        answer = json.dumps([{"question": "The capital is ___", "correctAnswer": "Warsaw"}])
        self.assertEqual(len(parse_questions(answer, "fill_blank")), 1)

    def test_parse_rejects_malformed_answers(self):
        bad_answers = [
            "not json",
            json.dumps({"questions": "nope"}),
            json.dumps([{"question": "missing answer"}]),
            json.dumps([{"question": "q", "correctAnswer": "A", "options": ["A", "B"]}]),
        ]
        for answer in bad_answers:
            with self.assertRaises(QuestionGenerationError):
                parse_questions(answer, "multiple_choice")

        with self.assertRaises(QuestionGenerationError):
            parse_questions(json.dumps([{"question": "q", "correctAnswer": "yes"}]), "true_false")


@override_settings(**LLM_SETTINGS)
class CallLLMTests(TestCase):
    def test_rate_limit_is_reported(self):
        limited = mock.Mock(status_code=429, text="slow down")
        with mock.patch("flashcards_backend.llm_client.requests.post", return_value=limited):
            result = call_llm([{"role": "user", "content": "hi"}])

        self.assertFalse(result["success"])
        self.assertEqual(result["status_code"], 429)

    def test_network_error_is_reported(self):
        with mock.patch(
            "flashcards_backend.llm_client.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            result = call_llm([{"role": "user", "content": "hi"}])

        self.assertFalse(result["success"])
        self.assertIn("Failed to reach", result["error"])

    def test_missing_choices(self):
        response = mock.Mock(status_code=200, text="")
        response.json.return_value = {}
        with mock.patch("flashcards_backend.llm_client.requests.post", return_value=response):
            result = call_llm([{"role": "user", "content": "hi"}])

        self.assertFalse(result["success"])


class DeckEditingAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.owner = {"HTTP_X_USER_ID": "owner-1"}

    def send(self, method: str, path: str, payload=None, **extra):
        return getattr(self.client, method)(
            path,
            data=json.dumps(payload or {}),
            content_type="application/json",
            **extra,
        )

    def create_deck(self, cards=None) -> dict:
        response = self.send(
            "post",
            "/decks/",
            {"title": " Verbs ", "description": "Common verbs", "cards": cards},
            **self.owner,
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_create_keeps_only_complete_cards_in_order(self):
        deck = self.create_deck(
            [
                {"term": "być", "definition": "to be"},
                {"term": "  ", "definition": "dropped"},
                {"term": "mieć", "definition": "to have"},
            ]
        )

        self.assertEqual(deck["title"], "Verbs")
        self.assertEqual(deck["owner_id"], "owner-1")
        self.assertFalse(deck["is_public"])
        self.assertEqual(
            [(card["term"], card["position"]) for card in deck["cards"]],
            [("być", 0), ("mieć", 1)],
        )

    def test_create_without_cards_makes_an_empty_set(self):
        deck = self.create_deck()
        self.assertEqual(deck["cards"], [])

    def test_create_validation(self):
        self.assertEqual(self.send("post", "/decks/", {"title": "No owner"}).status_code, 400)
        self.assertEqual(self.send("post", "/decks/", {"title": ""}, **self.owner).status_code, 400)
        response = self.send(
            "post",
            "/decks/",
            {"title": "Blank", "cards": [{"term": "x", "definition": ""}]},
            **self.owner,
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(FlashcardSet.objects.exists())

    def test_update_replaces_cards_and_renumbers(self):
        deck = self.create_deck([{"term": "a", "definition": "1"}, {"term": "b", "definition": "2"}])

        response = self.send(
            "put",
            f"/decks/{deck['id']}/",
            {"title": "Renamed", "is_public": True, "cards": [{"term": "c", "definition": "3"}]},
            **self.owner,
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["title"], "Renamed")
        self.assertTrue(payload["is_public"])
        self.assertEqual([(card["term"], card["position"]) for card in payload["cards"]], [("c", 0)])
        self.assertEqual(Flashcard.objects.filter(set_id=deck["id"]).count(), 1)

    def test_only_owner_can_edit(self):
        deck = self.create_deck([{"term": "a", "definition": "1"}])
        stranger = {"HTTP_X_USER_ID": "owner-2"}

        self.assertEqual(self.send("put", f"/decks/{deck['id']}/", {"title": "Mine"}, **stranger).status_code, 403)
        self.assertEqual(self.send("delete", f"/decks/{deck['id']}/", **stranger).status_code, 403)
        card_id = deck["cards"][0]["id"]
        self.assertEqual(self.send("put", f"/decks/cards/{card_id}/", {"term": "z"}, **stranger).status_code, 403)
        self.assertEqual(FlashcardSet.objects.get(pk=deck["id"]).title, "Verbs")

    def test_add_update_and_delete_cards(self):
        deck = self.create_deck([{"term": "a", "definition": "1"}, {"term": "b", "definition": "2"}])
        first, second = deck["cards"]

        added = self.send("post", f"/decks/{deck['id']}/cards/", {"term": "c", "definition": "3"}, **self.owner)
        self.assertEqual(added.status_code, 201)
        self.assertEqual(added.json()["position"], 2)

        updated = self.send("put", f"/decks/cards/{second['id']}/", {"definition": "two"}, **self.owner)
        self.assertEqual(updated.json()["definition"], "two")
        self.assertEqual(updated.json()["term"], "b")

        self.assertEqual(self.send("delete", f"/decks/cards/{first['id']}/", **self.owner).status_code, 200)
        cards = FlashcardSet.objects.get(pk=deck["id"]).ordered_cards()
        self.assertEqual([(card.term, card.position) for card in cards], [("b", 0), ("c", 1)])

    def test_missing_targets(self):
        self.assertEqual(self.send("put", "/decks/9999/", {"title": "x"}, **self.owner).status_code, 404)
        self.assertEqual(self.send("delete", "/decks/cards/9999/", **self.owner).status_code, 404)

    def test_cards_are_frozen_while_a_game_runs(self):
        deck = self.create_deck([{"term": "a", "definition": "1"}, {"term": "b", "definition": "2"}])
        GameSession.objects.create(
            code="LIVE01",
            deck_id=deck["id"],
            host_id="owner-1",
            status=GameSession.Status.IN_PROGRESS,
            current_card_index=0,
        )

        replace = self.send(
            "put", f"/decks/{deck['id']}/", {"cards": [{"term": "z", "definition": "9"}]}, **self.owner
        )
        add = self.send("post", f"/decks/{deck['id']}/cards/", {"term": "c", "definition": "3"}, **self.owner)
        remove = self.send("delete", f"/decks/cards/{deck['cards'][0]['id']}/", **self.owner)

        self.assertEqual([replace.status_code, add.status_code, remove.status_code], [409, 409, 409])
        self.assertEqual(Flashcard.objects.filter(set_id=deck["id"]).count(), 2)

        renamed = self.send("put", f"/decks/{deck['id']}/", {"title": "Still editable"}, **self.owner)
        self.assertEqual(renamed.status_code, 200)

    def test_delete_set(self):
        deck = self.create_deck([{"term": "a", "definition": "1"}])

        response = self.send("delete", f"/decks/{deck['id']}/", **self.owner)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(FlashcardSet.objects.filter(pk=deck["id"]).exists())
        self.assertFalse(Flashcard.objects.exists())

    def test_set_with_hosted_games_cannot_be_deleted(self):
        deck = self.create_deck([{"term": "a", "definition": "1"}])
        GameSession.objects.create(
            code="DONE01",
            deck_id=deck["id"],
            host_id="owner-1",
            status=GameSession.Status.COMPLETED,
        )

        response = self.send("delete", f"/decks/{deck['id']}/", **self.owner)

        self.assertEqual(response.status_code, 409)
        self.assertTrue(FlashcardSet.objects.filter(pk=deck["id"]).exists())


class StudyProgressTests(TestCase):
    def setUp(self) -> None:
        self.deck = FlashcardSet.objects.create(title="Verbs", owner_id="owner-1")
        self.other_deck = FlashcardSet.objects.create(title="Animals", owner_id="owner-1")
        self.cards = [
            Flashcard.objects.create(set=self.deck, term=f"verb {i}", definition=str(i), position=i)
            for i in range(3)
        ]
        self.cat = Flashcard.objects.create(set=self.other_deck, term="kot", definition="cat")
        self.now = timezone.now()

    def test_mastery_moves_one_level_per_review(self):
        card = self.cards[0]
        for _ in range(6):
            progress = study.record_review("student", card.id, True, now=self.now)
        self.assertEqual(progress.mastery_level, study.MAX_MASTERY_LEVEL)

        progress = study.record_review("student", card.id, False, now=self.now)

        self.assertEqual(progress.mastery_level, study.MAX_MASTERY_LEVEL - 1)
        self.assertEqual(progress.times_reviewed, 7)
        self.assertEqual(progress.times_correct, 6)
        self.assertEqual(StudyProgress.objects.filter(user_id="student").count(), 1)

    def test_mastery_never_drops_below_zero(self):
        progress = study.record_review("student", self.cards[0].id, False, now=self.now)
        self.assertEqual(progress.mastery_level, 0)
        self.assertEqual(progress.last_studied_at, self.now)

    def test_unknown_card(self):
        with self.assertRaises(study.StudyCardNotFound):
            study.record_review("student", 9999, True)

    def test_summary_counts_mastered_learning_and_stale_cards(self):
        week_ago = self.now - timedelta(days=8)
        for _ in range(4):
            study.record_review("student", self.cards[0].id, True, now=self.now)
        study.record_review("student", self.cards[1].id, True, now=week_ago)
        study.record_review("student", self.cards[2].id, False, now=week_ago)
        study.record_review("student", self.cat.id, True, now=week_ago)
        study.record_review("someone-else", self.cards[0].id, True, now=week_ago)

        summary = study.mastery_summary("student", now=self.now)

        self.assertEqual(summary["total_cards"], 4)
        self.assertEqual(summary["mastered"], 1)
        self.assertEqual(summary["learning"], 2)
        self.assertEqual(summary["needs_review"], 3)
        self.assertEqual(summary["retention_rate"], 25.0)
        self.assertEqual(
            [(alert["set_title"], alert["card_count"]) for alert in summary["review_alerts"]],
            [("Animals", 1), ("Verbs", 2)],
        )

    def test_summary_for_new_user(self):
        summary = study.mastery_summary("nobody")
        self.assertEqual(summary["total_cards"], 0)
        self.assertEqual(summary["retention_rate"], 0.0)
        self.assertEqual(summary["review_alerts"], [])

    def test_review_queue_lists_oldest_first_and_filters_by_set(self):
        study.record_review("student", self.cards[0].id, True, now=self.now - timedelta(days=10))
        study.record_review("student", self.cards[1].id, True, now=self.now - timedelta(days=20))
        study.record_review("student", self.cards[2].id, True, now=self.now)
        study.record_review("student", self.cat.id, True, now=self.now - timedelta(days=30))

        queue = study.review_queue("student", now=self.now)
        self.assertEqual([p.flashcard_id for p in queue], [self.cat.id, self.cards[1].id, self.cards[0].id])

        in_set = study.review_queue("student", deck_id=self.deck.id, now=self.now)
        self.assertEqual([p.flashcard_id for p in in_set], [self.cards[1].id, self.cards[0].id])

    def test_heatmap_sums_reviews_per_day(self):
        study.record_review("student", self.cards[0].id, True, now=self.now)
        study.record_review("student", self.cards[0].id, True, now=self.now)
        study.record_review("student", self.cards[1].id, True, now=self.now)
        study.record_review("student", self.cards[2].id, True, now=self.now - timedelta(days=200))

        activity = study.activity_heatmap("student", days=90, now=self.now)

        self.assertEqual(activity, [{"date": self.now.date().isoformat(), "count": 3}])


class StudyAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        deck = FlashcardSet.objects.create(title="Verbs", owner_id="owner-1")
        self.card = Flashcard.objects.create(set=deck, term="być", definition="to be")

    def review(self, payload, **extra):
        return self.client.post(
            "/decks/study/reviews/",
            data=json.dumps(payload),
            content_type="application/json",
            **extra,
        )

    def test_review_then_summary(self):
        response = self.review({"card_id": self.card.id, "is_correct": True}, HTTP_X_USER_ID="student")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["progress"]["mastery_level"], 1)

        summary = self.client.get("/decks/study/summary/", {"user_id": "student"}).json()
        self.assertEqual(summary["total_cards"], 1)
        self.assertEqual(summary["learning"], 1)

        queue = self.client.get("/decks/study/queue/", {"user_id": "student"}).json()
        self.assertEqual(queue["count"], 0)

        heatmap = self.client.get("/decks/study/heatmap/", {"user_id": "student"}).json()
        self.assertEqual(heatmap["activity"][0]["count"], 1)

    def test_review_validation(self):
        self.assertEqual(self.review({"card_id": self.card.id, "is_correct": True}).status_code, 400)
        self.assertEqual(
            self.review({"user_id": "s", "card_id": self.card.id, "is_correct": "yes"}).status_code, 400
        )
        self.assertEqual(self.review({"user_id": "s", "card_id": "abc", "is_correct": True}).status_code, 400)
        self.assertEqual(self.review({"user_id": "s", "card_id": 9999, "is_correct": True}).status_code, 404)

    def test_study_reads_need_a_user(self):
        for path in ("/decks/study/summary/", "/decks/study/queue/", "/decks/study/heatmap/"):
            self.assertEqual(self.client.get(path).status_code, 400)
        self.assertEqual(
            self.client.get("/decks/study/heatmap/", {"user_id": "s", "days": 0}).status_code, 400
        )
