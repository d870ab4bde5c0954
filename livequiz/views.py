import json
import logging
from typing import Any, Dict, Optional

import redis
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.http import JsonResponse, StreamingHttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from . import notifications, registry, responses, state_machine, teams
from .errors import BadRequest, GameSessionError
from .projection import project
from .store import get_session, persistence_errors

logger = logging.getLogger(__name__)

EVENT_STREAM_TIMEOUT = getattr(settings, "LIVEQUIZ_EVENT_STREAM_TIMEOUT", 30)


def _parse_body(request) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BadRequest(f"Request body is not valid JSON: {exc}")
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object.")
    return payload


def _actor_id(request, payload: Dict[str, Any], field: str = "actor_id") -> Optional[str]:
    """Identity comes from the X-User-Id header, else from the request body."""
    header = request.headers.get("X-User-Id")
    if header:
        return header
    value = payload.get(field)
    return str(value) if value not in (None, "") else None


def _json_error(exc: GameSessionError) -> JsonResponse:
    return JsonResponse(
        {"success": False, "error": str(exc), "kind": exc.kind},
        status=exc.status_code,
    )


def _session_guard(func):
    def _wrapped(request, *args, **kwargs):
        try:
            return func(request, *args, **kwargs)
        except GameSessionError as exc:
            if exc.status_code >= 500:
                logger.error("%s failed: %s", func.__name__, exc)
            return _json_error(exc)

    _wrapped.__name__ = func.__name__
    _wrapped.__doc__ = func.__doc__
    return _wrapped


def _session_response(session, **extra) -> JsonResponse:
    payload = {"success": True, "session": session.to_payload()}
    payload.update(extra)
    return JsonResponse(payload)


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def create_session(request) -> JsonResponse:
    payload = _parse_body(request)
    host_id = _actor_id(request, payload, field="host_id")
    session = state_machine.create_session(host_id, payload.get("deck_id"), payload.get("code"))
    return _session_response(session, session_code=session.code)


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def join_session(request, code: str) -> JsonResponse:
    payload = _parse_body(request)
    user_id = request.headers.get("X-User-Id") or payload.get("user_id")
    participant = registry.join(code, payload.get("display_name"), user_id=user_id)
    return JsonResponse(
        {
            "success": True,
            "session_id": str(participant.session_id),
            "participant": participant.to_payload(),
        }
    )


@require_http_methods(["GET"])
@_session_guard
def list_players(request, key: str) -> JsonResponse:
    participants = registry.list_participants(key)
    return JsonResponse(
        {
            "success": True,
            "count": len(participants),
            "participants": [p.to_payload() for p in participants],
        },
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def set_mode(request, key: str) -> JsonResponse:
    payload = _parse_body(request)
    if "mode" not in payload:
        raise BadRequest("mode is required.")
    session = state_machine.set_mode(
        key,
        _actor_id(request, payload),
        payload["mode"],
        team_size=payload.get("team_size"),
    )
    return _session_response(session)


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def assign_teams(request, key: str) -> JsonResponse:
    payload = _parse_body(request)
    assignment = teams.assign_teams(key, _actor_id(request, payload))
    return JsonResponse(
        {
            "success": True,
            "teams": {str(participant_id): team for participant_id, team in assignment.items()},
        }
    )


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def start_session(request, key: str) -> JsonResponse:
    payload = _parse_body(request)
    return _session_response(state_machine.start(key, _actor_id(request, payload)))


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def advance_session(request, key: str) -> JsonResponse:
    payload = _parse_body(request)
    return _session_response(state_machine.advance(key, _actor_id(request, payload)))


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def abort_session(request, key: str) -> JsonResponse:
    payload = _parse_body(request)
    return _session_response(state_machine.abort(key, _actor_id(request, payload)))


@require_http_methods(["GET"])
@_session_guard
def session_view(request, key: str) -> JsonResponse:
    """Render the session as seen by `viewer_id` (query string or X-User-Id)."""
    viewer_id = request.headers.get("X-User-Id") or request.GET.get("viewer_id")
    session = get_session(key)
    with persistence_errors():
        participants = list(session.participants.all())
        cards = session.deck.ordered_cards()
    view = project(session, participants, viewer_id, cards)
    return JsonResponse(
        {"success": True, "view": view.to_payload(), "deck_title": session.deck.title},
        json_dumps_params={"ensure_ascii": False},
    )


@csrf_exempt
@require_http_methods(["POST"])
@_session_guard
def submit_response(request, key: str) -> JsonResponse:
    payload = _parse_body(request)
    if "participant_id" not in payload or "is_correct" not in payload:
        raise BadRequest("participant_id and is_correct are required.")
    response = responses.record_response(
        key,
        payload["participant_id"],
        payload["is_correct"],
        response_time_ms=payload.get("response_time_ms"),
    )
    return JsonResponse(
        {
            "success": True,
            "response_id": response.id,
            "card_index": response.card_index,
            "is_correct": response.is_correct,
        }
    )


@require_http_methods(["GET"])
@_session_guard
def session_results(request, key: str) -> JsonResponse:
    return JsonResponse(
        {"success": True, "results": responses.results(key)},
        json_dumps_params={"ensure_ascii": False},
    )


class _EventStream:
    """SSE body over an open subscription.

    close() releases the subscription even if iteration never started.
    """

    def __init__(self, session_code: str, pubsub, timeout: float):
        self.session_code = session_code
        self.pubsub = pubsub
        self.timeout = timeout

    def __iter__(self):
        yield "retry: 1000\n\n"
        try:
            for message in notifications.iter_messages(self.pubsub, self.timeout):
                yield f"event: {message['event']}\ndata: {json.dumps(message)}\n\n"
        except redis.RedisError as exc:
            logger.warning("Event stream for session %s ended: %s", self.session_code, exc)

    def close(self) -> None:
        self.pubsub.close()


@require_http_methods(["GET"])
@_session_guard
def session_events(request, key: str):
    """Stream change notifications for a session as server-sent events."""
    session = get_session(key)
    try:
        pubsub = notifications.subscribe(session.id)
    except (redis.RedisError, ImproperlyConfigured) as exc:
        return JsonResponse(
            {"success": False, "error": f"Realtime channel unavailable: {exc}", "kind": "RealtimeUnavailable"},
            status=503,
        )

    stream = _EventStream(session.code, pubsub, EVENT_STREAM_TIMEOUT)
    response = StreamingHttpResponse(stream, content_type="text/event-stream")
    response["Cache-Control"] = "no-cache"
    return response
