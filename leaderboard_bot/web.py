from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import HTMLResponse, PlainTextResponse

from .aggregate import PlayerKey
from .github_api import GitHubContentsClient, StoreStatus, document_path
from .records import Invalid, validate_dataset
from .render import DEFAULT_TITLE, render


logger = logging.getLogger(__name__)


def create_app(
    client: GitHubContentsClient,
    *,
    leaderboard_path: str,
    leaderboards_dir: str = "leaderboards",
    title: str = DEFAULT_TITLE,
    player_key: PlayerKey | None = None,
) -> FastAPI:
    """Read-only report server: every request re-reads the stored document."""
    app = FastAPI(title=title, docs_url=None, redoc_url=None, openapi_url=None)

    async def _render_document(path: str, label: str, page_title: str):
        result = await client.fetch(path)
        if result.status is StoreStatus.NOT_FOUND:
            return PlainTextResponse(f'Leaderboard "{label}" not found.', status_code=404)
        if result.status is not StoreStatus.OK:
            logger.warning("Web: fetch %s failed: %s", path, result.error)
            if result.version is not None:
                # The file exists but isn't JSON.
                return PlainTextResponse("Invalid leaderboard format.", status_code=500)
            return PlainTextResponse("Leaderboard store unavailable.", status_code=502)

        dataset = validate_dataset(result.document)
        if isinstance(dataset, Invalid):
            logger.warning("Web: %s has an invalid shape: %s", path, dataset.reason)
            return PlainTextResponse("Invalid leaderboard format.", status_code=500)

        return HTMLResponse(render(dataset.value, page_title, player_key=player_key))

    @app.get("/", response_class=HTMLResponse)
    async def cumulative():
        return await _render_document(leaderboard_path, "leaderboard", title)

    @app.get("/leaderboards/{name}", response_class=HTMLResponse)
    async def named(name: str):
        try:
            path = document_path(name, leaderboards_dir)
        except ValueError:
            return PlainTextResponse(f'Leaderboard "{name}" not found.', status_code=404)
        return await _render_document(path, name, name)

    return app
