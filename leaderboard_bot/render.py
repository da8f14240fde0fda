from __future__ import annotations

from html import escape
from typing import Mapping

from .aggregate import GameContribution, PlayerAggregate, PlayerKey, Standings, TeamAggregate, aggregate
from .records import GameRecord


DEFAULT_TITLE = "Tournament Standings"

_STYLE = """
body{font-family:'Segoe UI',sans-serif;background:#121212;color:#e0e0e0;padding:40px;}
table{width:100%;max-width:1100px;margin:auto;border-collapse:collapse;background:#1e1e1e;box-shadow:0 10px 30px rgba(0,0,0,0.5);border-radius:8px;}
th{background:#2d2d2d;color:#00ffa3;text-transform:uppercase;font-size:13px;}
th,td{padding:14px;border-bottom:1px solid #333;text-align:center;}
.main-row{cursor:pointer;transition:.2s ease;}
.main-row:hover{background:#2a2a2a;}
.points{color:#00ffa3;font-weight:bold;text-align:right;}
.details-row{background:#161616;}
.expansion-content{padding:20px;}
.nested-table{width:100%;border-collapse:collapse;margin-bottom:5px;background:#1c1c1c;}
.nested-table th, .nested-table td{padding:8px;border:1px solid #333;font-size:13px;text-align:center;}
.nested-inner-table th, .nested-inner-table td{padding:6px;border:1px solid #222;font-size:12px;text-align:center;}
h2{text-align:center;margin-bottom:5px;color:#00ffa3;}
""".strip()

_SCRIPT = """
function toggleDetails(id){
    const el=document.getElementById(id);
    el.style.display=el.style.display==='none'?'table-row':'none';
}
""".strip()


def _n(value: int | float) -> str:
    # 12500 -> "12,500"; points may be floats but usually are whole.
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value:,}"


def _game_table(g: GameContribution) -> str:
    e = g.entry
    player_rows = "".join(
        f"<tr><td>{escape(p.name)}</td><td>{p.kills}</td><td>{_n(p.damage_dealt)}</td></tr>"
        for p in e.players
    )
    return f"""
<table class="nested-table">
<thead>
<tr><th colspan="4">{escape(g.game)} - Placement: {e.placement}</th></tr>
<tr><th>Team Kills</th><th>Team Damage</th><th>Points</th><th>Players</th></tr>
</thead>
<tbody>
<tr>
<td>{e.kills}</td>
<td>{_n(e.damage_dealt)}</td>
<td>{_n(e.total_points)}</td>
<td>
<table class="nested-inner-table">
<thead><tr><th>Player</th><th>Kills</th><th>Damage</th></tr></thead>
<tbody>{player_rows}</tbody>
</table>
</td>
</tr>
</tbody>
</table>"""


def _team_rows(index: int, team: TeamAggregate) -> str:
    player_rows = "".join(
        f"<tr><td>{escape(p.name)}</td><td>{p.total_kills}</td><td>{_n(p.total_damage)}</td></tr>"
        for p in team.ranked_players()
    )
    games = "".join(_game_table(g) for g in team.games)
    return f"""
<tr class="main-row" onclick="toggleDetails('details-{index}')">
<td>{index + 1}</td>
<td><strong>{escape(team.team_name)}</strong></td>
<td>{team.total_kills}</td>
<td>{_n(team.total_damage)}</td>
<td class="points">{_n(team.total_points)}</td>
</tr>
<tr id="details-{index}" class="details-row" style="display:none;">
<td colspan="5">
<div class="expansion-content">
<table class="nested-table">
<thead><tr><th>Player</th><th>Total Kills</th><th>Total Damage</th></tr></thead>
<tbody>{player_rows}</tbody>
</table>
{games}
</div>
</td>
</tr>"""


def _player_row(index: int, p: PlayerAggregate) -> str:
    return (
        f"<tr><td>{index + 1}</td><td>{escape(p.name)}</td><td>{p.total_kills}</td>"
        f"<td>{_n(p.total_damage)}</td><td>{p.games_played}</td><td>{p.avg_placement:.2f}</td></tr>"
    )


def render(
    data: Standings | Mapping[str, GameRecord],
    title: str = DEFAULT_TITLE,
    *,
    player_key: PlayerKey | None = None,
) -> str:
    """
    Render standings as a standalone HTML page.

    `data` is either the output of aggregate() or a dataset, which is then
    aggregated here. No I/O.
    """
    standings = data if isinstance(data, Standings) else aggregate(data, player_key=player_key)
    title = escape(title or DEFAULT_TITLE)

    team_rows = "".join(_team_rows(i, t) for i, t in enumerate(standings.teams))
    player_rows = "".join(_player_row(i, p) for i, p in enumerate(standings.players))

    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>
{_STYLE}
</style>
<script>
{_SCRIPT}
</script>
</head>
<body>

<h2>🏆 {title}</h2>
<table>
<thead>
<tr>
<th>Rank</th>
<th>Team Name</th>
<th>Total Kills</th>
<th>Total Damage</th>
<th style="text-align:right;">Total Points</th>
</tr>
</thead>
<tbody>
{team_rows or '<tr><td colspan="5">No matches recorded yet.</td></tr>'}
</tbody>
</table>

<br/><br/>

<h2>🔥 Overall Player Leaderboard</h2>
<table>
<thead>
<tr>
<th>Rank</th>
<th>Player</th>
<th>Total KOs</th>
<th>Total Damage</th>
<th>Games Played</th>
<th>Average Placement</th>
</tr>
</thead>
<tbody>
{player_rows or '<tr><td colspan="6">No player data available.</td></tr>'}
</tbody>
</table>

</body>
</html>
"""
