"""
Roll per-game team results up into tournament standings.

Input is a {game label: [TeamEntry, ...]} mapping. Teams are grouped by
upper-cased name; players by whatever `player_key` returns for their name
(the raw name unless a policy says otherwise).

Sorted by: total_points (teams) / total_kills (players), descending. There is
no secondary key: ties keep the order in which the team or player was first
seen while walking the games in dataset order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from .records import GameRecord, TeamEntry


PlayerKey = Callable[[str], str]

PLAYER_NAME_POLICIES: tuple[str, ...] = ("exact", "trim", "casefold")


def _exact(name: str) -> str:
    return name


def _trim(name: str) -> str:
    return " ".join((name or "").strip().split())


def _casefold(name: str) -> str:
    return _trim(name).casefold()


def player_key_for_policy(policy: str) -> PlayerKey:
    """
    exact    -> name as extracted (so "Bob" and "bob" are two players)
    trim     -> strip + collapse whitespace
    casefold -> trim, then casefold
    """
    p = (policy or "exact").strip().lower()
    if p == "exact":
        return _exact
    if p == "trim":
        return _trim
    if p == "casefold":
        return _casefold
    raise ValueError(f"unknown player name policy {policy!r} (expected one of {', '.join(PLAYER_NAME_POLICIES)})")


def team_key(team_name: str) -> str:
    return team_name.upper()


@dataclass
class PlayerAggregate:
    name: str
    total_kills: int = 0
    total_damage: int = 0
    games_played: int = 0
    placement_total: int = 0

    @property
    def avg_placement(self) -> float:
        if not self.games_played:
            return 0
        return self.placement_total / self.games_played

    def add(self, kills: int, damage: int, placement: int) -> None:
        self.total_kills += kills
        self.total_damage += damage
        self.games_played += 1
        self.placement_total += placement


@dataclass(frozen=True)
class GameContribution:
    game: str
    entry: TeamEntry


@dataclass
class TeamAggregate:
    team_name: str
    total_points: int | float = 0
    total_kills: int = 0
    total_damage: int = 0
    games: list[GameContribution] = field(default_factory=list)
    # Keyed like the overall player table, but only this team's appearances.
    players: dict[str, PlayerAggregate] = field(default_factory=dict)

    def ranked_players(self) -> list[PlayerAggregate]:
        return sorted(self.players.values(), key=lambda p: -p.total_kills)


@dataclass(frozen=True)
class Standings:
    teams: list[TeamAggregate]
    players: list[PlayerAggregate]
    # The key players were grouped by; lookups must use the same one.
    player_key: PlayerKey = field(default=_exact, repr=False, compare=False)

    def team(self, name: str) -> TeamAggregate | None:
        key = team_key(name)
        for t in self.teams:
            if t.team_name == key:
                return t
        return None

    def player(self, name: str) -> PlayerAggregate | None:
        key = self.player_key(name)
        for p in self.players:
            if self.player_key(p.name) == key:
                return p
        return None


def _upsert_player(table: dict[str, PlayerAggregate], key: str, name: str) -> PlayerAggregate:
    agg = table.get(key)
    if agg is None:
        agg = PlayerAggregate(name=name)
        table[key] = agg
    return agg


def _iter_entries(dataset: Mapping[str, Iterable[TeamEntry]]) -> Iterable[tuple[str, TeamEntry]]:
    for game, teams in dataset.items():
        for entry in teams:
            yield game, entry


def aggregate(
    dataset: Mapping[str, GameRecord],
    *,
    player_key: PlayerKey | None = None,
) -> Standings:
    key_of = player_key or _exact

    teams: dict[str, TeamAggregate] = {}
    players: dict[str, PlayerAggregate] = {}

    for game, entry in _iter_entries(dataset):
        t_key = team_key(entry.team_name)
        team = teams.get(t_key)
        if team is None:
            team = TeamAggregate(team_name=t_key)
            teams[t_key] = team

        team.total_points += entry.total_points
        team.total_kills += entry.kills
        team.total_damage += entry.damage_dealt
        team.games.append(GameContribution(game=game, entry=entry))

        for p in entry.players:
            p_key = key_of(p.name)
            _upsert_player(players, p_key, p.name).add(p.kills, p.damage_dealt, entry.placement)
            _upsert_player(team.players, p_key, p.name).add(p.kills, p.damage_dealt, entry.placement)

    # sorted() is stable, so equal totals stay in first-seen order.
    return Standings(
        teams=sorted(teams.values(), key=lambda t: -t.total_points),
        players=sorted(players.values(), key=lambda p: -p.total_kills),
        player_key=key_of,
    )


def placement_labels(values: list[int | float]) -> list[str]:
    """
    [30, 20, 20, 5] -> ["1", "2-3", "2-3", "4"]. `values` must already be
    sorted descending; equal values share a placement range.
    """
    labels = [""] * len(values)
    i = 0
    while i < len(values):
        j = i
        while j + 1 < len(values) and values[j + 1] == values[i]:
            j += 1
        label = f"{i+1}-{j+1}" if j > i else f"{i+1}"
        for k in range(i, j + 1):
            labels[k] = label
        i = j + 1
    return labels
