from __future__ import annotations

import asyncio
from typing import Mapping

from .aggregate import PlayerKey, Standings, aggregate
from .records import GameRecord, LeaderboardDataset, ValidationResult, Valid, validate


class LeaderboardStore:
    """
    The in-memory dataset the bot ingests into.

    Mutations serialize on `lock` (one per store unless injected) and bump
    `revision`. Readers take a snapshot and never hold the lock while
    aggregating or publishing.
    """

    def __init__(
        self,
        games: Mapping[str, GameRecord] | None = None,
        *,
        lock: asyncio.Lock | None = None,
    ):
        self._games: LeaderboardDataset = dict(games or {})
        self._lock = lock or asyncio.Lock()
        self.revision = 0

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, label: object) -> bool:
        return label in self._games

    def labels(self) -> list[str]:
        return list(self._games)

    def snapshot(self) -> LeaderboardDataset:
        # GameRecords are tuples of frozen entries; a shallow copy is enough.
        return dict(self._games)

    def standings(self, *, player_key: PlayerKey | None = None) -> Standings:
        return aggregate(self.snapshot(), player_key=player_key)

    async def ingest(self, label: str, raw: object) -> ValidationResult:
        """Validate `raw` and store it under `label`, replacing any previous game."""
        result = validate(raw)
        if not isinstance(result, Valid):
            return result
        async with self._lock:
            self._games[label] = result.value
            self.revision += 1
        return result

    async def delete(self, label: str) -> bool:
        async with self._lock:
            if label not in self._games:
                return False
            del self._games[label]
            self.revision += 1
            return True

    async def clear(self) -> int:
        async with self._lock:
            n = len(self._games)
            self._games.clear()
            self.revision += 1
            return n

    async def load(self, games: Mapping[str, GameRecord], *, expected_revision: int | None = None) -> bool:
        """
        Replace the whole dataset. With `expected_revision`, only if no
        mutation happened since that revision was read.
        """
        async with self._lock:
            if expected_revision is not None and expected_revision != self.revision:
                return False
            self._games = dict(games)
            self.revision += 1
            return True
