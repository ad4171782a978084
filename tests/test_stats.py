from __future__ import annotations

from conftest import make_match

from wc94.reference import GoalEvent
from wc94.stats import TOP_SCORER_COLUMNS, player_goals, top_scorers, tournament_pulse


def test_top_scorers_of_1994(reference) -> None:
    table = top_scorers(reference.matches, reference.teams)
    assert list(table.columns) == TOP_SCORER_COLUMNS
    assert table.loc[0, "player"] == "Hristo Stoichkov"
    assert table.loc[0, "team"] == "Bulgaria"
    assert table.loc[0, "goals"] == 6
    assert table.loc[1, "player"] == "Oleg Salenko"
    assert table.loc[1, "goals"] == 6
    assert "Andres Escobar" not in set(table["player"])


def test_top_scorers_empty(reference) -> None:
    table = top_scorers([], reference.teams)
    assert table.empty
    assert list(table.columns) == TOP_SCORER_COLUMNS


def test_player_goals(reference) -> None:
    assert player_goals(reference.matches, "RUS", "Oleg Salenko") == 6
    assert player_goals(reference.matches, "COL", "Andres Escobar") == 0
    assert player_goals(reference.matches[:1], "GER", "Jurgen Klinsmann") == 1


def test_tournament_pulse(reference) -> None:
    pulse = tournament_pulse(reference.matches, reference.teams)
    assert pulse.matches_played == 52
    assert pulse.total_goals == 141
    assert pulse.average_goals == 2.71
    assert pulse.red_cards == 9
    assert (pulse.highest_scoring_match, pulse.highest_scoring_total) == ("M31", 7)
    assert pulse.quickest_goal_player == "Gabriel Batistuta"
    assert pulse.quickest_goal_minute == 2
    assert pulse.quickest_goal_match == "M11"
    assert (pulse.best_offense, pulse.best_offense_goals) == ("SWE", 15)
    assert (pulse.best_defense, pulse.best_defense_conceded) == ("NOR", 1)


def test_pulse_empty_and_own_goals(reference) -> None:
    empty = tournament_pulse([], reference.teams)
    assert (empty.matches_played, empty.total_goals, empty.average_goals) == (0, 0, 0.0)
    assert empty.quickest_goal_player is None

    own_goal = make_match(
        "AAA", "BBB", "0-1", goals=(GoalEvent("AAA", "Unlucky", "1", "Own Goal"),)
    )
    pulse = tournament_pulse([own_goal], {})
    assert pulse.total_goals == 1
    assert pulse.quickest_goal_player is None
    assert pulse.best_offense == "BBB"
