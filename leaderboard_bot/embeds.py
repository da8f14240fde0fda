from __future__ import annotations

import discord

from .aggregate import Standings, placement_labels


# Keep low so each field stays under Discord's 1024-char limit.
MAX_ROWS = 24
MAX_TEAM = 18

_MEDALS = {"1": "🥇", "2": "🥈", "3": "🥉"}


def _points_int(v: int | float) -> int:
    return int(round(v))


def standings_embed(standings: Standings, *, title: str = "Leaderboard") -> discord.Embed:
    """
    Build an embed with 3 columns:
      Placement | Team | Points
    """
    teams = standings.teams[:MAX_ROWS]
    points = [_points_int(t.total_points) for t in teams]
    labels = placement_labels(points)

    placement_vals: list[str] = []
    team_vals: list[str] = []
    points_vals: list[str] = []

    for idx, t in enumerate(teams):
        team = " ".join(t.team_name.split())
        if len(team) > MAX_TEAM:
            team = team[: MAX_TEAM - 1] + "…"

        # Medals replace 1/2/3 but tie ranges like "1-2" stay as text.
        placement_vals.append(_MEDALS.get(labels[idx], labels[idx]))
        pts = str(points[idx])

        if idx < 3:
            team_vals.append(f"**{discord.utils.escape_markdown(team) or '-'}**")
            points_vals.append(f"**{pts}**")
        else:
            team_vals.append(discord.utils.escape_markdown(team) or "-")
            points_vals.append(pts)

    e = discord.Embed(title=title, color=0x00FFA3)
    e.add_field(name="Placement", value="\n".join(placement_vals) or "-", inline=True)
    e.add_field(name="Team", value="\n".join(team_vals) or "-", inline=True)
    e.add_field(name="Points", value="\n".join(points_vals) or "-", inline=True)

    if standings.players:
        top = standings.players[0]
        e.set_footer(text=f"Top fragger: {top.name} ({top.total_kills} KOs)")
    return e
