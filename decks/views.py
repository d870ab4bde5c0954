import json

from django.conf import settings
from django.db.models import Q
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import editing, study
from .models import FlashcardSet
from .questions import QuestionGenerationError, generate_questions

MAX_GENERATED_QUESTIONS = getattr(settings, "DECKS_MAX_GENERATED_QUESTIONS", 20)
MAX_HEATMAP_DAYS = 365


class _BadPayload(Exception):
    pass


def _parse_body(request) -> dict:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise _BadPayload("request body is not valid JSON")
    if not isinstance(payload, dict):
        raise _BadPayload("request body must be a JSON object")
    return payload


def _user_id(request, payload=None):
    """The acting user: X-User-Id header, else `user_id` in the body or query string."""
    source = payload if payload is not None else request.GET
    return request.headers.get("X-User-Id") or source.get("user_id") or None


def _error(message: str, status: int = 400) -> JsonResponse:
    return JsonResponse({"error": message}, status=status)


def _deck_response(deck: FlashcardSet, status: int = 200) -> JsonResponse:
    return JsonResponse(
        deck.to_payload(include_cards=True),
        status=status,
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["GET", "POST"])
def deck_list(request):
    """List visible flashcard sets, or create a new one on POST."""

    if request.method == "POST":
        try:
            payload = _parse_body(request)
            deck = editing.create_set(
                _user_id(request, payload),
                payload.get("title"),
                payload.get("description", ""),
                is_public=payload.get("is_public", False),
                cards=payload.get("cards"),
            )
        except _BadPayload as exc:
            return _error(str(exc))
        except editing.DeckEditError as exc:
            return _error(str(exc), status=exc.status_code)
        return _deck_response(deck, status=201)

    visible = Q(is_public=True)
    owner_id = request.GET.get("owner_id")
    if owner_id:
        visible |= Q(owner_id=owner_id)

    payload = [deck.to_payload() for deck in FlashcardSet.objects.filter(visible)]
    return JsonResponse(
        {"count": len(payload), "decks": payload},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
def deck_detail(request, deck_id: int):
    if request.method == "GET":
        deck = FlashcardSet.objects.filter(id=deck_id).first()
        if deck is None:
            return _error("deck not found", status=404)
        return _deck_response(deck)

    try:
        payload = _parse_body(request)
        if request.method == "DELETE":
            editing.delete_set(deck_id, _user_id(request, payload))
            return JsonResponse({"deleted": deck_id})
        deck = editing.update_set(
            deck_id,
            _user_id(request, payload),
            title=payload.get("title"),
            description=payload.get("description"),
            is_public=payload.get("is_public"),
            cards=payload.get("cards"),
        )
    except _BadPayload as exc:
        return _error(str(exc))
    except editing.DeckEditError as exc:
        return _error(str(exc), status=exc.status_code)
    return _deck_response(deck)


@csrf_exempt
@require_POST
def card_list(request, deck_id: int):
    """Append one card to the end of a set."""

    try:
        payload = _parse_body(request)
        card = editing.add_card(
            deck_id,
            _user_id(request, payload),
            payload.get("term"),
            payload.get("definition"),
        )
    except _BadPayload as exc:
        return _error(str(exc))
    except editing.DeckEditError as exc:
        return _error(str(exc), status=exc.status_code)
    return JsonResponse(card.to_payload(), status=201, json_dumps_params={"ensure_ascii": False})


@csrf_exempt
@require_http_methods(["PUT", "DELETE"])
def card_detail(request, card_id: int):
    try:
        payload = _parse_body(request)
        if request.method == "DELETE":
            editing.delete_card(card_id, _user_id(request, payload))
            return JsonResponse({"deleted": card_id})
        card = editing.update_card(
            card_id,
            _user_id(request, payload),
            term=payload.get("term"),
            definition=payload.get("definition"),
        )
    except _BadPayload as exc:
        return _error(str(exc))
    except editing.DeckEditError as exc:
        return _error(str(exc), status=exc.status_code)
    return JsonResponse(card.to_payload(), json_dumps_params={"ensure_ascii": False})


@csrf_exempt
@require_POST
def question_feed(request, deck_id: int):
    """Generate study questions for a deck with the language model."""

    deck = FlashcardSet.objects.filter(id=deck_id).first()
    if deck is None:
        return _error("deck not found", status=404)

    try:
        payload = _parse_body(request)
    except _BadPayload as exc:
        return _error(str(exc))

    try:
        requested_count = int(payload.get("count", 5))
    except (TypeError, ValueError):
        return _error("count must be an integer")
    if requested_count < 1 or requested_count > MAX_GENERATED_QUESTIONS:
        return _error(f"count must be between 1 and {MAX_GENERATED_QUESTIONS}")

    question_type = payload.get("question_type", "multiple_choice")
    try:
        questions = generate_questions(deck.ordered_cards(), requested_count, question_type)
    except QuestionGenerationError as exc:
        return _error(str(exc), status=exc.status_code)

    return JsonResponse(
        {"count": len(questions), "question_type": question_type, "questions": questions},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_POST
def record_review(request):
    try:
        payload = _parse_body(request)
    except _BadPayload as exc:
        return _error(str(exc))

    user_id = _user_id(request, payload)
    if not user_id:
        return _error("user_id is required")
    is_correct = payload.get("is_correct")
    if not isinstance(is_correct, bool):
        return _error("is_correct must be true or false")
    try:
        card_id = int(payload.get("card_id"))
    except (TypeError, ValueError):
        return _error("card_id must be an integer")

    try:
        progress = study.record_review(user_id, card_id, is_correct)
    except study.StudyCardNotFound as exc:
        return _error(str(exc), status=404)
    return JsonResponse({"progress": progress.to_payload()}, json_dumps_params={"ensure_ascii": False})


@require_GET
def mastery_summary(request):
    user_id = _user_id(request)
    if not user_id:
        return _error("user_id is required")
    return JsonResponse(study.mastery_summary(user_id), json_dumps_params={"ensure_ascii": False})


@require_GET
def review_queue(request):
    """Cards the user has not studied for a week, optionally within one set."""

    user_id = _user_id(request)
    if not user_id:
        return _error("user_id is required")
    deck_id = request.GET.get("deck_id")
    if deck_id is not None:
        try:
            deck_id = int(deck_id)
        except ValueError:
            return _error("deck_id must be an integer")

    cards = [progress.to_payload() for progress in study.review_queue(user_id, deck_id=deck_id)]
    return JsonResponse(
        {"count": len(cards), "cards": cards},
        json_dumps_params={"ensure_ascii": False},
    )


@require_GET
def study_heatmap(request):
    user_id = _user_id(request)
    if not user_id:
        return _error("user_id is required")
    try:
        days = int(request.GET.get("days", 90))
    except ValueError:
        return _error("days must be an integer")
    if days < 1 or days > MAX_HEATMAP_DAYS:
        return _error(f"days must be between 1 and {MAX_HEATMAP_DAYS}")
    return JsonResponse({"days": days, "activity": study.activity_heatmap(user_id, days=days)})
