"""
Fetch-merge-put cycle for leaderboard documents.

A publish walks:

    START -> FETCHING -> FOUND | ABSENT -> MERGING -> PUTTING
          -> COMMITTED | CONFLICT | FAILED

A merge that changes nothing stops at MERGING without writing: UNCHANGED
if the document exists, NOT_FOUND if it does not.

CONFLICT means someone else wrote the document between our fetch and our put.
The whole cycle is then retried (fresh fetch, fresh merge) until
`max_attempts` runs out, at which point the outcome is FAILED.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from .github_api import GitHubContentsClient, StoreResult, StoreStatus
from .records import GameRecord, TeamEntry


logger = logging.getLogger(__name__)


class PublishState(str, Enum):
    START = "start"
    FETCHING = "fetching"
    FOUND = "found"
    ABSENT = "absent"
    MERGING = "merging"
    PUTTING = "putting"
    COMMITTED = "committed"
    CONFLICT = "conflict"
    FAILED = "failed"
    UNCHANGED = "unchanged"
    DELETING = "deleting"
    NOT_FOUND = "not_found"


TERMINAL_STATES = frozenset(
    {
        PublishState.COMMITTED,
        PublishState.CONFLICT,
        PublishState.FAILED,
        PublishState.UNCHANGED,
        PublishState.NOT_FOUND,
    }
)


@dataclass
class PublishOutcome:
    path: str
    state: PublishState = PublishState.START
    attempts: int = 0
    version: str | None = None
    document: dict[str, Any] | None = None
    error: str | None = None
    trail: list[PublishState] = field(default_factory=lambda: [PublishState.START])

    @property
    def committed(self) -> bool:
        return self.state is PublishState.COMMITTED

    @property
    def succeeded(self) -> bool:
        """The remote document now holds what was asked for, written or not."""
        return self.state in (PublishState.COMMITTED, PublishState.UNCHANGED)

    def move(self, state: PublishState) -> None:
        self.state = state
        self.trail.append(state)


def _plain(teams: Iterable[Any]) -> list[Any]:
    return [t.to_dict() if isinstance(t, TeamEntry) else t for t in teams]


def merge_documents(
    existing: Mapping[str, Any],
    updates: Mapping[str, Any],
    removals: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Top-level merge: a game in `updates` replaces the stored game of the same
    label wholesale; teams inside a game are never merged.
    """
    merged: dict[str, Any] = dict(existing)
    for label, teams in updates.items():
        merged[label] = _plain(teams)
    for label in removals:
        merged.pop(label, None)
    return merged


async def _backoff(attempt: int, backoff: float) -> None:
    if backoff > 0:
        await asyncio.sleep(backoff * attempt)


async def publish(
    client: GitHubContentsClient,
    path: str,
    updates: Mapping[str, GameRecord | list[Any]],
    *,
    removals: Iterable[str] = (),
    message: str,
    max_attempts: int = 3,
    backoff: float = 0.5,
) -> PublishOutcome:
    removals = tuple(removals)
    outcome = PublishOutcome(path=path)
    last_conflict: str | None = None

    for attempt in range(1, max(1, max_attempts) + 1):
        outcome.attempts = attempt

        outcome.move(PublishState.FETCHING)
        current = await client.fetch(path)
        if current.status is StoreStatus.OK:
            outcome.move(PublishState.FOUND)
            existing = current.document or {}
        elif current.status is StoreStatus.NOT_FOUND:
            outcome.move(PublishState.ABSENT)
            existing = {}
        else:
            outcome.error = current.error
            outcome.move(PublishState.FAILED)
            return outcome

        outcome.move(PublishState.MERGING)
        merged = merge_documents(existing, updates, removals)
        if merged == existing:
            outcome.version = current.version
            outcome.document = current.document
            outcome.move(PublishState.UNCHANGED if current.ok else PublishState.NOT_FOUND)
            return outcome

        outcome.move(PublishState.PUTTING)
        written = await client.put(path, merged, current.version, message=message)
        if written.status is StoreStatus.OK:
            outcome.version = written.version
            outcome.document = merged
            outcome.error = None
            outcome.move(PublishState.COMMITTED)
            return outcome

        if written.status is StoreStatus.CONFLICT:
            outcome.move(PublishState.CONFLICT)
            last_conflict = written.error
            logger.info("Publish %s: conflict on attempt %d/%d", path, attempt, max_attempts)
            if attempt < max_attempts:
                await _backoff(attempt, backoff)
            continue

        outcome.error = written.error
        outcome.move(PublishState.FAILED)
        return outcome

    outcome.error = f"conflict persisted after {outcome.attempts} attempt(s): {last_conflict}"
    outcome.move(PublishState.FAILED)
    return outcome


async def unpublish(
    client: GitHubContentsClient,
    path: str,
    *,
    message: str,
    max_attempts: int = 3,
    backoff: float = 0.5,
) -> PublishOutcome:
    outcome = PublishOutcome(path=path)
    last: StoreResult | None = None

    for attempt in range(1, max(1, max_attempts) + 1):
        outcome.attempts = attempt

        outcome.move(PublishState.FETCHING)
        current = await client.fetch(path)
        if current.status is StoreStatus.NOT_FOUND:
            outcome.error = current.error
            outcome.move(PublishState.NOT_FOUND)
            return outcome
        # An unreadable document can still be deleted as long as we got its sha.
        if current.version is None:
            outcome.error = current.error
            outcome.move(PublishState.FAILED)
            return outcome
        outcome.move(PublishState.FOUND)

        outcome.move(PublishState.DELETING)
        last = await client.delete(path, current.version, message=message)
        if last.status is StoreStatus.OK:
            outcome.move(PublishState.COMMITTED)
            return outcome
        if last.status is StoreStatus.NOT_FOUND:
            outcome.error = last.error
            outcome.move(PublishState.NOT_FOUND)
            return outcome
        if last.status is StoreStatus.CONFLICT:
            outcome.move(PublishState.CONFLICT)
            if attempt < max_attempts:
                await _backoff(attempt, backoff)
            continue

        outcome.error = last.error
        outcome.move(PublishState.FAILED)
        return outcome

    outcome.error = f"conflict persisted after {outcome.attempts} attempt(s): {last.error if last else None}"
    outcome.move(PublishState.FAILED)
    return outcome
