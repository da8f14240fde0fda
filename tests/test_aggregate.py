"""Aggregation math: conservation laws, player counting, ordering, name policies."""

import itertools
import random

import pytest
from helpers import make_player, make_team, scenario_game

from leaderboard_bot.aggregate import (
    aggregate,
    placement_labels,
    player_key_for_policy,
)
from leaderboard_bot.records import validate, validate_dataset


def dataset(raw: dict) -> dict:
    return validate_dataset(raw).value


def tournament() -> dict:
    """Three games, three teams, one player who switches team."""
    return dataset(
        {
            "Game1": [
                make_team("alpha", 1, points=17, players=[make_player("A", 3, 1500), make_player("B", 2, 1000)]),
                make_team("Bravo", 2, points=11, players=[make_player("C", 1, 900), make_player("D", 2, 1200)]),
            ],
            "Game2": [
                make_team("bravo", 1, points=20, players=[make_player("C", 4, 2100), make_player("D", 4, 1900)]),
                make_team("ALPHA", 3, points=7, players=[make_player("A", 1, 400), make_player("B", 0, 300)]),
                make_team("charlie", 2, points=9, players=[make_player("E", 1, 800)]),
            ],
            "Game3": [
                make_team("charlie", 1, points=14, players=[make_player("E", 2, 1500), make_player("A", 1, 700)]),
            ],
        }
    )


def _all_entries(ds):
    return [entry for teams in ds.values() for entry in teams]


class TestScenario:
    def test_single_game(self):
        standings = aggregate({"Game1": validate(scenario_game()).value})

        assert len(standings.teams) == 1
        alpha = standings.teams[0]
        assert alpha.team_name == "ALPHA"
        assert alpha.total_points == 17
        assert alpha.total_kills == 5
        assert alpha.total_damage == 2500

        a = standings.player("A")
        assert a.total_kills == 3
        assert a.games_played == 1
        assert a.avg_placement == 1

    def test_empty_dataset(self):
        standings = aggregate({})
        assert standings.teams == []
        assert standings.players == []


class TestConservation:
    def test_points_are_conserved(self):
        ds = tournament()
        standings = aggregate(ds)
        assert sum(t.total_points for t in standings.teams) == sum(e.total_points for e in _all_entries(ds))

    def test_kills_and_damage_are_conserved(self):
        ds = tournament()
        standings = aggregate(ds)
        entries = _all_entries(ds)
        assert sum(t.total_kills for t in standings.teams) == sum(e.kills for e in entries)
        assert sum(t.total_damage for t in standings.teams) == sum(e.damage_dealt for e in entries)

    def test_team_points_match_their_games(self):
        for team in aggregate(tournament()).teams:
            assert team.total_points == sum(g.entry.total_points for g in team.games)

    def test_random_datasets(self):
        rng = random.Random(7)
        for _ in range(20):
            raw = {}
            for g in range(rng.randint(1, 5)):
                teams = []
                for t in range(rng.randint(1, 4)):
                    players = [make_player(f"P{rng.randint(0, 6)}", rng.randint(0, 5), rng.randint(0, 3000)) for _ in range(2)]
                    teams.append(make_team(f"team{rng.randint(0, 3)}", t + 1, points=rng.randint(0, 30), players=players))
                raw[f"G{g}"] = teams
            ds = dataset(raw)
            standings = aggregate(ds)
            entries = _all_entries(ds)
            assert sum(t.total_points for t in standings.teams) == sum(e.total_points for e in entries)
            assert sum(p.games_played for p in standings.players) == sum(len(e.players) for e in entries)


class TestPlayers:
    def test_games_played_counts_appearances(self):
        standings = aggregate(tournament())
        assert standings.player("A").games_played == 3
        assert standings.player("E").games_played == 2
        assert standings.player("B").games_played == 2

    def test_placement_uses_team_placement(self):
        a = aggregate(tournament()).player("A")
        # alpha 1st, alpha 3rd, charlie 1st
        assert a.placement_total == 5
        assert a.avg_placement == pytest.approx(5 / 3)

    def test_team_scoped_players(self):
        standings = aggregate(tournament())
        charlie = standings.team("charlie")
        assert set(charlie.players) == {"E", "A"}
        assert charlie.players["A"].total_kills == 1
        assert charlie.players["A"].games_played == 1
        alpha = standings.team("alpha")
        assert alpha.players["A"].total_kills == 4
        assert alpha.players["A"].games_played == 2

    def test_ranked_players_by_kills(self):
        alpha = aggregate(tournament()).team("alpha")
        assert [p.name for p in alpha.ranked_players()] == ["A", "B"]

    def test_names_are_case_sensitive_by_default(self):
        ds = dataset({"G1": [make_team("x", 1, players=[make_player("Bob", 1, 0), make_player("bob", 1, 0)])]})
        assert len(aggregate(ds).players) == 2

    def test_casefold_policy_merges_spellings(self):
        ds = dataset(
            {
                "G1": [make_team("x", 1, players=[make_player("Bob", 1, 0)])],
                "G2": [make_team("x", 2, players=[make_player(" bob ", 2, 0)])],
            }
        )
        standings = aggregate(ds, player_key=player_key_for_policy("casefold"))
        (bob,) = standings.players
        assert bob.name == "Bob"
        assert bob.total_kills == 3
        assert bob.games_played == 2

    def test_player_lookup_follows_policy(self):
        ds = dataset({"G1": [make_team("x", 1, players=[make_player("Bob", 4, 0)])]})
        folded = aggregate(ds, player_key=player_key_for_policy("casefold"))
        assert folded.player("bob").total_kills == 4
        assert folded.player(" BOB ") is folded.player("Bob")
        assert aggregate(ds).player("bob") is None

    def test_trim_policy_keeps_case(self):
        key = player_key_for_policy("trim")
        assert key("  Bob   Smith ") == "Bob Smith"
        assert key("bob") != key("Bob")

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            player_key_for_policy("soundex")


class TestOrdering:
    def test_teams_sorted_by_points(self):
        names = [t.team_name for t in aggregate(tournament()).teams]
        # bravo 31, alpha 24, charlie 23
        assert names == ["BRAVO", "ALPHA", "CHARLIE"]

    def test_players_sorted_by_kills(self):
        kills = [p.total_kills for p in aggregate(tournament()).players]
        assert kills == sorted(kills, reverse=True)

    def test_ties_keep_first_seen_order(self):
        ds = dataset(
            {
                "G1": [make_team("zulu", 1, points=10), make_team("alpha", 2, points=10)],
                "G2": [make_team("mike", 1, points=10)],
            }
        )
        assert [t.team_name for t in aggregate(ds).teams] == ["ZULU", "ALPHA", "MIKE"]

    def test_game_order_does_not_change_totals(self):
        ds = tournament()
        baseline = {t.team_name: (t.total_points, t.total_kills, t.total_damage) for t in aggregate(ds).teams}
        players = {p.name: (p.total_kills, p.games_played, p.placement_total) for p in aggregate(ds).players}
        for order in itertools.permutations(ds):
            shuffled = {k: ds[k] for k in order}
            standings = aggregate(shuffled)
            assert {t.team_name: (t.total_points, t.total_kills, t.total_damage) for t in standings.teams} == baseline
            assert {p.name: (p.total_kills, p.games_played, p.placement_total) for p in standings.players} == players

    def test_games_list_follows_dataset_order(self):
        ds = tournament()
        reordered = {k: ds[k] for k in ["Game3", "Game2", "Game1"]}
        assert [g.game for g in aggregate(ds).team("alpha").games] == ["Game1", "Game2"]
        assert [g.game for g in aggregate(reordered).team("alpha").games] == ["Game2", "Game1"]


class TestPurity:
    def test_input_is_not_mutated(self):
        ds = tournament()
        before = {k: tuple(v) for k, v in ds.items()}
        aggregate(ds)
        aggregate(ds)
        assert ds == before

    def test_recomputation_is_identical(self):
        ds = tournament()
        first, second = aggregate(ds), aggregate(ds)
        assert [(t.team_name, t.total_points) for t in first.teams] == [
            (t.team_name, t.total_points) for t in second.teams
        ]
        assert first.teams[0] is not second.teams[0]


class TestPlacementLabels:
    def test_ties_share_a_range(self):
        assert placement_labels([30, 20, 20, 5]) == ["1", "2-3", "2-3", "4"]

    def test_no_ties(self):
        assert placement_labels([3, 2, 1]) == ["1", "2", "3"]

    def test_empty(self):
        assert placement_labels([]) == []
