from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Union


_REQUIRED_TEAM_FIELDS: tuple[str, ...] = (
    "team_name",
    "placement",
    "kills",
    "damage_dealt",
    "total_points",
    "players",
)
_REQUIRED_PLAYER_FIELDS: tuple[str, ...] = ("name", "kills", "damage_dealt")

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class MalformedRecord(ValueError):
    """Raised when extractor output does not have the team/player shape."""


@dataclass(frozen=True)
class PlayerEntry:
    name: str
    kills: int
    damage_dealt: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "kills": self.kills, "damage_dealt": self.damage_dealt}


@dataclass(frozen=True)
class TeamEntry:
    team_name: str
    placement: int
    kills: int
    damage_dealt: int
    total_points: int | float
    players: tuple[PlayerEntry, ...] = ()
    # Keys we don't use (placement_points, kill_points, ...) are kept so the
    # stored document round-trips unchanged.
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)
    key_order: tuple[str, ...] = field(default=(), compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            "team_name": self.team_name,
            "placement": self.placement,
            **self.extra,
            "kills": self.kills,
            "damage_dealt": self.damage_dealt,
            "total_points": self.total_points,
            "players": [p.to_dict() for p in self.players],
        }
        out = {k: values[k] for k in self.key_order if k in values}
        for k, v in values.items():
            out.setdefault(k, v)
        return out


GameRecord = tuple[TeamEntry, ...]
LeaderboardDataset = dict[str, GameRecord]


@dataclass(frozen=True)
class Valid:
    value: Any
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Invalid:
    reason: str
    ok: bool = field(default=False, init=False)


ValidationResult = Union[Valid, Invalid]


def _count(obj: Mapping[str, Any], key: str, where: str) -> int:
    v = obj[key]
    # bool is an int subclass; "true" kills is still garbage.
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise MalformedRecord(f"{where}: {key!r} must be a number, got {type(v).__name__}")
    if isinstance(v, float):
        if not v.is_integer():
            raise MalformedRecord(f"{where}: {key!r} must be a whole number, got {v!r}")
        v = int(v)
    if v < 0:
        raise MalformedRecord(f"{where}: {key!r} must not be negative, got {v!r}")
    return v


def _name(obj: Mapping[str, Any], key: str, where: str) -> str:
    v = obj[key]
    if not isinstance(v, str):
        raise MalformedRecord(f"{where}: {key!r} must be a string, got {type(v).__name__}")
    return v


def _missing(obj: Mapping[str, Any], required: tuple[str, ...]) -> list[str]:
    return [k for k in required if k not in obj]


def _player_from_raw(raw: object, where: str) -> PlayerEntry:
    if not isinstance(raw, dict):
        raise MalformedRecord(f"{where}: expected an object, got {type(raw).__name__}")
    missing = _missing(raw, _REQUIRED_PLAYER_FIELDS)
    if missing:
        raise MalformedRecord(f"{where}: missing field(s) {', '.join(missing)}")
    return PlayerEntry(
        name=_name(raw, "name", where),
        kills=_count(raw, "kills", where),
        damage_dealt=_count(raw, "damage_dealt", where),
    )


def _team_from_raw(raw: object, where: str) -> TeamEntry:
    if not isinstance(raw, dict):
        raise MalformedRecord(f"{where}: expected an object, got {type(raw).__name__}")
    missing = _missing(raw, _REQUIRED_TEAM_FIELDS)
    if missing:
        raise MalformedRecord(f"{where}: missing field(s) {', '.join(missing)}")

    team_name = _name(raw, "team_name", where)
    placement = _count(raw, "placement", where)
    if placement < 1:
        raise MalformedRecord(f"{where}: 'placement' must be >= 1, got {placement}")

    points = raw["total_points"]
    if isinstance(points, bool) or not isinstance(points, (int, float)):
        raise MalformedRecord(f"{where}: 'total_points' must be a number, got {type(points).__name__}")

    players_raw = raw["players"]
    if not isinstance(players_raw, list):
        raise MalformedRecord(f"{where}: 'players' must be a list, got {type(players_raw).__name__}")
    players = tuple(
        _player_from_raw(p, f"{where} ({team_name}) player #{i}")
        for i, p in enumerate(players_raw, start=1)
    )

    extra = {k: v for k, v in raw.items() if k not in _REQUIRED_TEAM_FIELDS}
    return TeamEntry(
        team_name=team_name,
        placement=placement,
        kills=_count(raw, "kills", where),
        damage_dealt=_count(raw, "damage_dealt", where),
        total_points=points,
        players=players,
        extra=extra,
        key_order=tuple(raw.keys()),
    )


def parse_json_text(text: str) -> Any:
    """
    Parse extractor output, tolerating a Markdown code fence around the JSON.

    Models like to answer with ```json ... ```; everything else must be JSON.
    """
    clean = _FENCE_RE.sub("", text or "").strip()
    if not clean:
        raise MalformedRecord("empty response")
    try:
        return json.loads(clean)
    except json.JSONDecodeError as e:
        raise MalformedRecord(f"invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from None


def parse_game(raw: object) -> GameRecord:
    """Strict variant of validate(): returns the record or raises MalformedRecord."""
    if isinstance(raw, str):
        raw = parse_json_text(raw)
    if not isinstance(raw, list):
        raise MalformedRecord(f"expected a list of teams, got {type(raw).__name__}")
    return tuple(_team_from_raw(t, f"team #{i}") for i, t in enumerate(raw, start=1))


def validate(raw: object) -> ValidationResult:
    """
    Check one game's team array.

    Accepts the decoded list or the JSON text. Returns Valid(GameRecord) or
    Invalid(reason); never raises for bad input.
    """
    try:
        return Valid(parse_game(raw))
    except MalformedRecord as e:
        return Invalid(str(e))


def validate_dataset(raw: object) -> ValidationResult:
    """Same as validate() but for a whole {game label: [team, ...]} document."""
    if not isinstance(raw, dict):
        return Invalid(f"expected an object keyed by game, got {type(raw).__name__}")
    out: LeaderboardDataset = {}
    for label, teams in raw.items():
        try:
            out[str(label)] = parse_game(teams)
        except MalformedRecord as e:
            return Invalid(f"game {label!r}: {e}")
    return Valid(out)


def serialize(record: GameRecord) -> list[dict[str, Any]]:
    return [t.to_dict() for t in record]


def dataset_to_json(dataset: Mapping[str, Any]) -> str:
    """
    Serialize a dataset the way it is stored remotely.

    Values may already be plain dicts (a fetched document) or TeamEntry tuples.
    Key order is kept as inserted.
    """
    plain = {
        label: [t.to_dict() if isinstance(t, TeamEntry) else t for t in teams]
        for label, teams in dataset.items()
    }
    return json.dumps(plain, indent=2, ensure_ascii=False)
