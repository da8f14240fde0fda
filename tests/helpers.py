"""Shared test helpers: record builders and an in-memory GitHub contents API.

Usage:
    from helpers import make_team, make_player, FakeGitHub

    gh = FakeGitHub()
    client = gh.client()
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Callable

import httpx

from leaderboard_bot.config import Settings
from leaderboard_bot.github_api import GitHubContentsClient


REPO = "acme/scrims"
BRANCH = "main"


def make_player(name: str = "A", kills: int = 0, damage: int = 0) -> dict[str, Any]:
    return {"name": name, "kills": kills, "damage_dealt": damage}


def make_team(
    name: str = "alpha",
    placement: int = 1,
    kills: int | None = None,
    damage: int | None = None,
    points: int | float = 0,
    players: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Team dict shaped like extractor output. kills/damage default to the player sums."""
    players = players if players is not None else []
    return {
        "team_name": name,
        "placement": placement,
        "kills": kills if kills is not None else sum(p["kills"] for p in players),
        "damage_dealt": damage if damage is not None else sum(p["damage_dealt"] for p in players),
        "total_points": points,
        "players": players,
    }


def scenario_game() -> list[dict[str, Any]]:
    """The single-team game from the design notes: ALPHA, 17 points, players A and B."""
    return [
        make_team(
            "alpha",
            placement=1,
            kills=5,
            damage=2500,
            points=17,
            players=[make_player("A", 3, 1500), make_player("B", 2, 1000)],
        )
    ]


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = dict(
        discord_token="discord",
        gemini_api_key="gemini",
        github_token="gh",
        github_repo=REPO,
        github_branch=BRANCH,
        publish_backoff=0.0,
    )
    values.update(overrides)
    return Settings(**values)


def git_blob_sha(content: bytes) -> str:
    return hashlib.sha1(b"blob %d\x00" % len(content) + content).hexdigest()


class FakeGitHub:
    """
    Enough of GET/PUT/DELETE /repos/{owner}/{repo}/contents/{path} to test
    optimistic concurrency: a write with a stale sha gets 409, a create
    without sha over an existing file gets 422.

    `before_put` / `before_delete` run right before a write is applied,
    which is where tests simulate a concurrent writer.
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.before_put: Callable[[str], None] | None = None
        self.before_delete: Callable[[str], None] | None = None
        self.fail_status: int | None = None
        # Paths served like GitHub serves files over 1 MB: metadata only,
        # bytes through the raw media type (unless raw_status says otherwise).
        self.large: set[str] = set()
        self.raw_status: int | None = None

    # --- direct manipulation -------------------------------------------------

    def seed(self, path: str, document: Any) -> str:
        raw = json.dumps(document, indent=2).encode("utf-8")
        self.files[path] = raw
        return git_blob_sha(raw)

    def sha(self, path: str) -> str | None:
        raw = self.files.get(path)
        return git_blob_sha(raw) if raw is not None else None

    def document(self, path: str) -> Any:
        return json.loads(self.files[path].decode("utf-8"))

    def writes(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method in ("PUT", "DELETE")]

    def client(self) -> GitHubContentsClient:
        return GitHubContentsClient("token", REPO, BRANCH, transport=httpx.MockTransport(self.handler))

    # --- HTTP ---------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "Bad credentials"})

        prefix = f"/repos/{REPO}/contents/"
        if not request.url.path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        path = request.url.path[len(prefix):]

        if request.method == "GET":
            return self._get(path, request)
        body = json.loads(request.content or b"{}")
        if request.method == "PUT":
            return self._put(path, body)
        if request.method == "DELETE":
            return self._delete(path, body)
        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def _get(self, path: str, request: httpx.Request) -> httpx.Response:
        if path in self.files:
            raw = self.files[path]
            if path in self.large:
                return self._get_large(path, raw, request)
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "path": path,
                    "sha": git_blob_sha(raw),
                    "encoding": "base64",
                    # GitHub wraps base64 at 60 chars.
                    "content": base64.encodebytes(raw).decode("ascii"),
                },
            )
        children = [p for p in self.files if p.startswith(path.rstrip("/") + "/")]
        if children:
            return httpx.Response(200, json=[{"type": "file", "path": p} for p in children])
        return httpx.Response(404, json={"message": "Not Found"})

    def _get_large(self, path: str, raw: bytes, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Accept", "").startswith("application/vnd.github.raw"):
            if self.raw_status is not None:
                return httpx.Response(self.raw_status, json={"message": "Server Error"})
            return httpx.Response(200, content=raw)
        return httpx.Response(
            200,
            json={"type": "file", "path": path, "sha": git_blob_sha(raw), "encoding": "none", "content": ""},
        )

    def _put(self, path: str, body: dict[str, Any]) -> httpx.Response:
        if self.before_put is not None:
            self.before_put(path)
        current = self.sha(path)
        given = body.get("sha")
        if current is not None and not given:
            return httpx.Response(422, json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
        if given and given != current:
            return httpx.Response(409, json={"message": f"{path} does not match {given}"})

        raw = base64.b64decode(body["content"])
        self.files[path] = raw
        status = 200 if current else 201
        return httpx.Response(status, json={"content": {"path": path, "sha": git_blob_sha(raw)}})

    def _delete(self, path: str, body: dict[str, Any]) -> httpx.Response:
        if self.before_delete is not None:
            self.before_delete(path)
        current = self.sha(path)
        if current is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if body.get("sha") != current:
            return httpx.Response(409, json={"message": f"{path} does not match {body.get('sha')}"})
        del self.files[path]
        return httpx.Response(200, json={"content": None})
