#!/usr/bin/env python3
"""
Export standings from a local leaderboard JSON file.

Input (default): leaderboard.json, shaped {game name: [team, ...]}
Output (default): output/teams.csv and output/players.csv

Teams sorted by: Points (desc), first appearance.
Players sorted by: Kills (desc), first appearance.
Equal values share a rank label like "2-3".
"""

from __future__ import annotations

import argparse
import csv
import json
import sys
from pathlib import Path

from .aggregate import PLAYER_NAME_POLICIES, Standings, aggregate, placement_labels, player_key_for_policy
from .records import Invalid, validate_dataset
from .render import DEFAULT_TITLE, render


DEFAULT_OUTPUT_DIR = Path("output")


def _fmt(value: int | float, decimals: int) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:.{decimals}f}"
    return str(int(value))


def team_rows(standings: Standings, *, decimals: int = 2) -> list[dict[str, str]]:
    labels = placement_labels([round(t.total_points, decimals) for t in standings.teams])
    return [
        {
            "Rank": labels[i],
            "Team": t.team_name,
            "Games": str(len(t.games)),
            "Kills": str(t.total_kills),
            "Damage": str(t.total_damage),
            "Points": _fmt(t.total_points, decimals),
        }
        for i, t in enumerate(standings.teams)
    ]


def player_rows(standings: Standings) -> list[dict[str, str]]:
    labels = placement_labels([p.total_kills for p in standings.players])
    return [
        {
            "Rank": labels[i],
            "Player": p.name,
            "Kills": str(p.total_kills),
            "Damage": str(p.total_damage),
            "Games": str(p.games_played),
            "AvgPlacement": f"{p.avg_placement:.2f}",
        }
        for i, p in enumerate(standings.players)
    ]


def _write_csv(path: Path, rows: list[dict[str, str]], fieldnames: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f_out:
        writer = csv.DictWriter(f_out, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(description="Export team and player standings from a leaderboard JSON file.")
    ap.add_argument("-i", "--input", default="leaderboard.json", help="Leaderboard JSON path.")
    ap.add_argument(
        "-o",
        "--output",
        default=str(DEFAULT_OUTPUT_DIR / "teams.csv"),
        help=f"Team standings CSV (default: {DEFAULT_OUTPUT_DIR / 'teams.csv'}).",
    )
    ap.add_argument(
        "--players-output",
        default=str(DEFAULT_OUTPUT_DIR / "players.csv"),
        help=f"Player standings CSV (default: {DEFAULT_OUTPUT_DIR / 'players.csv'}). Empty to skip.",
    )
    ap.add_argument("--html", default="", help="Also write the HTML report to this path.")
    ap.add_argument("--title", default=DEFAULT_TITLE, help="Title for the HTML report.")
    ap.add_argument(
        "--player-names",
        choices=PLAYER_NAME_POLICIES,
        default="exact",
        help="How player names are matched across games (default: exact).",
    )
    ap.add_argument("--decimals", type=int, default=2, help="Decimals for fractional points (default: 2).")
    args = ap.parse_args(argv)

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"ERROR: Input file not found: {input_path}", file=sys.stderr)
        return 2

    try:
        with input_path.open("r", encoding="utf-8-sig") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        print(f"ERROR: {input_path}: invalid JSON: {e}", file=sys.stderr)
        return 2

    result = validate_dataset(raw)
    if isinstance(result, Invalid):
        print(f"ERROR: {input_path}: {result.reason}", file=sys.stderr)
        return 2

    standings = aggregate(result.value, player_key=player_key_for_policy(args.player_names))

    output_path = Path(args.output)
    _write_csv(
        output_path,
        team_rows(standings, decimals=args.decimals),
        ["Rank", "Team", "Games", "Kills", "Damage", "Points"],
    )
    print(f"Wrote: {output_path} ({len(standings.teams)} teams, {len(result.value)} games)")

    if args.players_output:
        players_path = Path(args.players_output)
        _write_csv(
            players_path,
            player_rows(standings),
            ["Rank", "Player", "Kills", "Damage", "Games", "AvgPlacement"],
        )
        print(f"Wrote: {players_path} ({len(standings.players)} players)")

    if args.html:
        html_path = Path(args.html)
        html_path.parent.mkdir(parents=True, exist_ok=True)
        html_path.write_text(render(standings, args.title), encoding="utf-8")
        print(f"Wrote: {html_path}")

    return 0


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
