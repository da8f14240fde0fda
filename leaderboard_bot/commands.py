from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Sequence

from .aggregate import Standings, player_key_for_policy
from .config import Settings
from .dataset import LeaderboardStore
from .extract import ImagePart, expected_total
from .github_api import GitHubContentsClient, StoreStatus, document_path
from .publish import PublishState, publish, unpublish
from .records import GameRecord, Invalid, MalformedRecord, parse_json_text, validate_dataset


logger = logging.getLogger(__name__)

# What the original bot used when the mention had no text.
DEFAULT_GAME_LABEL = "0"

USAGE = (
    "Attach result screenshots with a game name to add a game, or use:\n"
    "`clear` · `delete <game>` · `publish <name>` · `unpublish <name>`"
)

Extractor = Callable[[list[ImagePart]], Awaitable[str]]


class CommandKind(str, Enum):
    ADD_GAME = "add_game"
    CLEAR = "clear"
    DELETE = "delete"
    PUBLISH = "publish"
    UNPUBLISH = "unpublish"


_KEYWORDS = {
    "clear": CommandKind.CLEAR,
    "delete": CommandKind.DELETE,
    "publish": CommandKind.PUBLISH,
    "unpublish": CommandKind.UNPUBLISH,
}


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    argument: str = ""


@dataclass(frozen=True)
class Reply:
    text: str
    standings: Standings | None = None


def parse_command(text: str, *, has_attachments: bool = False) -> Command:
    """
    "delete Game 3" -> Command(DELETE, "Game 3"). With attachments the whole
    text is a game label, even if it starts with a keyword.
    """
    s = " ".join((text or "").strip().split())
    if has_attachments:
        return Command(CommandKind.ADD_GAME, s or DEFAULT_GAME_LABEL)

    word, _, rest = s.partition(" ")
    kind = _KEYWORDS.get(word.lower())
    if kind is None:
        return Command(CommandKind.ADD_GAME, s or DEFAULT_GAME_LABEL)
    return Command(kind, rest.strip())


def _check_points(label: str, record: GameRecord) -> None:
    # total_points is stored as read; a mismatch usually means a misread screenshot.
    for team in record:
        expected = expected_total(team)
        if team.total_points != expected:
            logger.warning(
                "Game %r: %s reports %s points, scoring table gives %s",
                label,
                team.team_name,
                team.total_points,
                expected,
            )


class CommandHandler:
    def __init__(
        self,
        *,
        store: LeaderboardStore,
        client: GitHubContentsClient,
        settings: Settings,
        extractor: Extractor | None = None,
    ):
        self.store = store
        self.client = client
        self.settings = settings
        self.extractor = extractor
        self._player_key = player_key_for_policy(settings.player_name_policy)

    def standings(self) -> Standings:
        return self.store.standings(player_key=self._player_key)

    async def restore(self) -> int:
        """
        Refill the in-memory dataset from the cumulative leaderboard file.

        Skipped if a game was ingested while the file was being fetched.
        Returns the number of games loaded.
        """
        path = self.settings.leaderboard_path
        seen = self.store.revision
        current = await self.client.fetch(path)
        if current.status is StoreStatus.NOT_FOUND:
            return 0
        if not current.ok:
            logger.warning("Could not restore games from %s: %s", path, current.error)
            return 0

        result = validate_dataset(current.document)
        if isinstance(result, Invalid):
            logger.warning("Not restoring games from %s: %s", path, result.reason)
            return 0
        if not await self.store.load(result.value, expected_revision=seen):
            logger.info("Games were added during startup; not restoring from %s", path)
            return 0
        logger.info("Restored %d game(s) from %s", len(result.value), path)
        return len(result.value)

    async def handle(self, text: str, images: Sequence[ImagePart] = ()) -> Reply:
        cmd = parse_command(text, has_attachments=bool(images))
        if cmd.kind is CommandKind.ADD_GAME:
            if not images:
                return Reply(USAGE)
            return await self.add_game(cmd.argument, list(images))
        if cmd.kind is CommandKind.CLEAR:
            return await self.clear()
        if not cmd.argument:
            return Reply(f"Usage: `{cmd.kind.value} <name>`")
        if cmd.kind is CommandKind.DELETE:
            return await self.delete(cmd.argument)
        if cmd.kind is CommandKind.PUBLISH:
            return await self.publish(cmd.argument)
        return await self.unpublish(cmd.argument)

    async def add_game(self, label: str, images: list[ImagePart]) -> Reply:
        if self.extractor is None:
            return Reply("Screenshot extraction is not configured.")

        raw_text = await self.extractor(images)
        try:
            raw = parse_json_text(raw_text)
        except MalformedRecord as e:
            logger.warning("Extractor returned unusable output for %r: %s", label, e)
            return Reply(f'Could not read results for "{label}": {e}')

        result = await self.store.ingest(label, raw)
        if isinstance(result, Invalid):
            logger.warning("Rejected game %r: %s", label, result.reason)
            return Reply(f'Could not read results for "{label}": {result.reason}')
        _check_points(label, result.value)

        if not self.settings.auto_publish:
            return Reply(f'Added "{label}".', standings=self.standings())

        outcome = await publish(
            self.client,
            self.settings.leaderboard_path,
            {label: result.value},
            message=f"Update leaderboard: {label}",
            max_attempts=self.settings.publish_attempts,
            backoff=self.settings.publish_backoff,
        )
        if not outcome.succeeded:
            logger.error("Publish of %r failed: %s", label, outcome.error)
            return Reply(f'Failed to publish "{label}".')
        return Reply(f'Successfully published "{label}"', standings=self.standings())

    async def clear(self) -> Reply:
        n = await self.store.clear()
        return Reply(f"Cleared {n} game(s).")

    async def delete(self, label: str) -> Reply:
        if not self.settings.auto_publish:
            removed = await self.store.delete(label)
            return Reply(f'Deleted "{label}".' if removed else f'No game named "{label}".')

        # Remote first: if that fails the game stays everywhere.
        outcome = await publish(
            self.client,
            self.settings.leaderboard_path,
            {},
            removals=[label],
            message=f"Remove game: {label}",
            max_attempts=self.settings.publish_attempts,
            backoff=self.settings.publish_backoff,
        )
        if outcome.state is PublishState.FAILED:
            logger.error("Removing %r from the leaderboard failed: %s", label, outcome.error)
            return Reply(f'Failed to delete "{label}".')

        removed = await self.store.delete(label)
        if not (removed or outcome.committed):
            return Reply(f'No game named "{label}".')
        return Reply(f'Deleted "{label}".', standings=self.standings())

    async def publish(self, name: str) -> Reply:
        try:
            path = document_path(name, self.settings.leaderboards_dir)
        except ValueError:
            return Reply(f'"{name}" is not a valid leaderboard name.')

        games = self.store.snapshot()
        if not games:
            return Reply("Nothing to publish yet.")

        outcome = await publish(
            self.client,
            path,
            games,
            message=f"Publish leaderboard: {name}",
            max_attempts=self.settings.publish_attempts,
            backoff=self.settings.publish_backoff,
        )
        if not outcome.succeeded:
            logger.error("Publish of leaderboard %r failed: %s", name, outcome.error)
            return Reply(f'Failed to publish "{name}".')
        return Reply(f'Successfully published "{name}" ({len(games)} game(s)).')

    async def unpublish(self, name: str) -> Reply:
        try:
            path = document_path(name, self.settings.leaderboards_dir)
        except ValueError:
            return Reply(f'"{name}" is not a valid leaderboard name.')

        outcome = await unpublish(
            self.client,
            path,
            message=f"Unpublish leaderboard: {name}",
            max_attempts=self.settings.publish_attempts,
            backoff=self.settings.publish_backoff,
        )
        if outcome.state is PublishState.NOT_FOUND:
            return Reply(f'Leaderboard "{name}" not found.')
        if not outcome.committed:
            logger.error("Unpublish of leaderboard %r failed: %s", name, outcome.error)
            return Reply(f'Failed to unpublish "{name}".')
        return Reply(f'Unpublished "{name}".')
