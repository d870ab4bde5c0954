#!/usr/bin/env python3
"""
Simulate live quiz sessions against a running backend service.

Usage:
    python simulate_livequiz_game.py --base-url http://localhost:8000 --deck-id 1

The deck must exist and contain at least one card. The script plays the host
and a handful of participants purely over HTTP, mimicking the front-end:
1) A full game advanced card by card until it completes.
2) Starting with nobody in the lobby is refused.
3) Five players split into teams of four.
4) A participant trying to advance the host's game is refused.
5) Joining after the game started is refused.
"""

import argparse
import sys
from typing import Dict, Iterable, List

try:
    import requests
except ModuleNotFoundError as exc:  # pragma: no cover - runtime dependency notice
    raise SystemExit(
        "The simulate_livequiz_game script requires the 'requests' package. "
        "Install it via `pip install requests` and rerun."
    ) from exc


TIMEOUT = 10  # seconds per request
HOST_ID = "simulated-host"


class LiveQuizClient:
    def __init__(self, base_url: str, deck_id: int):
        self.base_url = base_url.rstrip("/")
        self.deck_id = deck_id

    def _request(
        self,
        method: str,
        path: str,
        expected_status: Iterable[int],
        json_payload: Dict | None = None,
    ) -> Dict:
        url = f"{self.base_url}/livequiz{path}"
        response = requests.request(
            method=method,
            url=url,
            json=json_payload,
            timeout=TIMEOUT,
        )
        if response.status_code not in expected_status:
            raise RuntimeError(
                f"{method} {path} returned {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeError(f"Response from {path} was not valid JSON.") from exc

    # Lobby --------------------------------------------------------------

    def create_session(self) -> Dict:
        data = self._request(
            "POST", "/session/", {200}, {"host_id": HOST_ID, "deck_id": self.deck_id}
        )
        session = data["session"]
        print(f"[info] session created (code={session['code']}, id={session['id']})")
        return session

    def join(self, code: str, names: List[str]) -> List[Dict]:
        joined = []
        for name in names:
            data = self._request("POST", f"/session/{code}/join/", {200}, {"display_name": name})
            joined.append(data["participant"])
            print(f"[info] {name} joined as participant #{data['participant']['id']}")
        return joined

    def host_action(self, session_id: str, action: str, expected_status=(200,), **payload) -> Dict:
        payload.setdefault("actor_id", HOST_ID)
        return self._request("POST", f"/session/{session_id}/{action}/", set(expected_status), payload)

    def view(self, session_id: str, viewer_id: str) -> Dict:
        return self._request(
            "GET", f"/session/{session_id}/view/?viewer_id={viewer_id}", {200}
        )["view"]


def scenario_full_game(client: LiveQuizClient):
    print("\n=== Scenario 1: host plays through the deck ===")
    session = client.create_session()
    client.join(session["code"], ["Ann", "Bo"])
    client.host_action(session["id"], "start")

    for step in range(1, 1000):
        view = client.view(session["id"], HOST_ID)
        print(
            f"[info] card {view['card_number']}/{view['card_count']} "
            f"({view['progress_percent']}%): {view['current_card']['term']}"
        )
        state = client.host_action(session["id"], "advance")["session"]
        if state["status"] == "completed":
            print(f"[info] completed after {step} advance(s), index={state['current_card_index']}")
            if step != view["card_count"]:
                raise RuntimeError("Game completed before the deck was exhausted.")
            return
    raise RuntimeError("Game never completed.")


def scenario_empty_roster(client: LiveQuizClient):
    print("\n=== Scenario 2: nobody joined ===")
    session = client.create_session()
    data = client.host_action(session["id"], "start", expected_status=(409,))
    print(f"[info] start refused: {data['kind']}")
    if data["kind"] != "EmptyRoster":
        raise RuntimeError("Expected EmptyRoster.")


def scenario_teams(client: LiveQuizClient):
    print("\n=== Scenario 3: teams of four ===")
    session = client.create_session()
    client.join(session["code"], ["Ann", "Bo", "Cy", "Dee", "Eve"])
    client.host_action(session["id"], "mode", mode="teams", team_size=4)
    teams = client.host_action(session["id"], "teams")["teams"]
    print(f"[info] teams={teams}")
    if sorted(teams.values()) != [1, 1, 1, 1, 2]:
        raise RuntimeError("Unexpected team split.")


def scenario_not_host(client: LiveQuizClient):
    print("\n=== Scenario 4: participant tries to advance ===")
    session = client.create_session()
    client.join(session["code"], ["Ann", "Bo"])
    client.host_action(session["id"], "start")
    data = client.host_action(session["id"], "advance", expected_status=(403,), actor_id="Bo")
    print(f"[info] advance refused: {data['kind']}")
    if client.view(session["id"], "Bo")["card_number"] != 1:
        raise RuntimeError("Card moved after a refused advance.")


def scenario_late_join(client: LiveQuizClient):
    print("\n=== Scenario 5: joining a running game ===")
    session = client.create_session()
    client.join(session["code"], ["Ann"])
    client.host_action(session["id"], "start")
    data = client._request(
        "POST", f"/session/{session['code']}/join/", {409}, {"display_name": "Late"}
    )
    print(f"[info] late join refused: {data['kind']}")


def main():
    parser = argparse.ArgumentParser(description="Simulate live quiz sessions via HTTP requests.")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Root URL of the running Django service (default: http://localhost:8000)",
    )
    parser.add_argument("--deck-id", type=int, required=True, help="Flashcard set to play")
    args = parser.parse_args()

    client = LiveQuizClient(args.base_url, args.deck_id)
    try:
        scenario_full_game(client)
        scenario_empty_roster(client)
        scenario_teams(client)
        scenario_not_host(client)
        scenario_late_join(client)
    except (RuntimeError, requests.RequestException) as exc:
        print(f"[error] {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    print("\n[info] All scenarios completed successfully.")


if __name__ == "__main__":
    main()
