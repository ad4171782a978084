from __future__ import annotations

import numpy as np
from conftest import historical_state, make_match

from wc94.bracket import (
    BRACKET_COLUMNS,
    KNOCKOUT_ROUNDS,
    assign_third_place_slots,
    bracket_frame,
    generate_bracket,
)
from wc94.standings import GroupStanding, apply_match_to_standings, initialize_standings


def _bracket(reference, processed, standings, user=None):
    return generate_bracket(
        processed,
        standings,
        reference.matches,
        reference.teams,
        user,
        slots=reference.round_of_16_slots,
        rng=np.random.default_rng(0),
    )


def test_round_of_16_matches_history(reference) -> None:
    processed, standings = historical_state(reference, 3)
    bracket = _bracket(reference, processed, standings)
    assert [r.title for r in bracket.rounds] == list(KNOCKOUT_ROUNDS)
    round_of_16 = bracket.round("Round of 16")
    assert len(round_of_16.matchups) == 8
    for matchup in round_of_16.matchups:
        historical = reference.match_by_id(matchup.match_id)
        assert (matchup.team1_key, matchup.team2_key) == historical.teams
        assert not matchup.is_complete
    assert len(bracket.team_keys()) == 16


def test_later_rounds_wait_for_feeders(reference) -> None:
    processed, standings = historical_state(reference, 3)
    bracket = _bracket(reference, processed, standings)
    m45 = bracket.matchup("M45")
    assert (m45.team1_slot, m45.team2_slot) == ("Winner M43", "Winner M38")
    assert not m45.is_resolved
    assert m45.team1_name == "Winner M43"
    m51 = bracket.matchup("M51")
    assert (m51.team1_slot, m51.team2_slot) == ("Loser M50", "Loser M49")
    m52 = bracket.matchup("M52")
    assert (m52.team1_slot, m52.team2_slot) == ("Winner M50", "Winner M49")


def test_groups_resolve_as_they_finish(reference) -> None:
    processed, standings = historical_state(reference, 2)
    bracket = _bracket(reference, processed, standings)
    assert not any(m.is_resolved for m in bracket.round("Round of 16").matchups)

    for match_id in ("M27", "M28"):
        match = reference.match_by_id(match_id)
        processed.append(match)
        standings = apply_match_to_standings(standings, match)
    bracket = _bracket(reference, processed, standings)
    assert bracket.matchup("M37").team1_key == "GER"
    assert bracket.matchup("M38").team1_key == "ESP"
    # Third-placed slots wait for every group.
    assert bracket.matchup("M37").team2_key is None
    assert bracket.matchup("M37").team2_name == "3rd Place F"
    assert bracket.matchup("M38").team2_key is None


def test_changed_group_result_moves_the_bracket(reference) -> None:
    upset = make_match("GER", "KOR", "0-3", group="C", match_id="M28")
    processed = []
    standings = initialize_standings(reference)
    for idx in range(3):
        for match in reference.matches_for_round(idx):
            if match.match_id == "M28":
                match = upset
            processed.append(match)
            standings = apply_match_to_standings(standings, match)
    bracket = _bracket(reference, processed, standings, user="KOR")
    m37 = bracket.matchup("M37")
    assert m37.team1_key == "KOR"
    assert m37.is_user_team1
    assert bracket.matchup("M38").team1_key == "ESP"
    assert "GER" not in bracket.team_keys()


def test_knockout_winners_flow_forward(reference) -> None:
    processed, standings = historical_state(reference, 4)
    bracket = _bracket(reference, processed, standings)
    assert (bracket.matchup("M45").team1_key, bracket.matchup("M45").team2_key) == ("ITA", "ESP")
    # M44 records its shootout with display names.
    assert bracket.matchup("M44").winner_key == "BUL"
    assert (bracket.matchup("M47").team1_key, bracket.matchup("M47").team2_key) == ("BUL", "GER")
    assert bracket.matchup("M49").team1_key is None

    processed, standings = historical_state(reference, 6)
    bracket = _bracket(reference, processed, standings)
    m51 = bracket.matchup("M51")
    m52 = bracket.matchup("M52")
    assert (m51.team1_key, m51.team2_key) == ("SWE", "BUL")
    assert (m52.team1_key, m52.team2_key) == ("BRA", "ITA")
    assert not m52.is_complete


def test_completed_bracket(reference) -> None:
    processed, standings = historical_state(reference, 7)
    bracket = _bracket(reference, processed, standings, user="ITA")
    m52 = bracket.matchup("M52")
    assert m52.score == "0-0"
    assert m52.penalties == "BRA 3-2 ITA"
    assert m52.winner_key == "BRA"
    assert m52.is_user_team2 and not m52.is_user_team1
    assert bracket.matchup("M48").winner_key == "SWE"
    assert all(m.is_complete for m in bracket.matchups())

    frame = bracket_frame(bracket)
    assert list(frame.columns) == BRACKET_COLUMNS
    assert len(frame) == 16
    assert frame.iloc[-1]["winner"] == "BRA"


def test_user_flags(reference) -> None:
    processed, standings = historical_state(reference, 3)
    bracket = _bracket(reference, processed, standings, user="BRA")
    flagged = [m.match_id for m in bracket.matchups() if m.involves_user]
    assert flagged == ["M42"]
    assert bracket.matchup("M42").is_user_team1

    anonymous = _bracket(reference, processed, standings)
    assert not any(m.involves_user for m in anonymous.matchups())


def test_third_place_slots_prefer_own_group(reference) -> None:
    best = [
        GroupStanding("B3", "B three", "B"),
        GroupStanding("A3", "A three", "A"),
        GroupStanding("C3", "C three", "C"),
        GroupStanding("D3", "D three", "D"),
    ]
    assigned = assign_third_place_slots(reference.round_of_16_slots.values(), best)
    assert assigned == {
        "3rd Place D": "D3",
        "3rd Place A": "A3",
        "3rd Place F": "B3",
        "3rd Place E": "C3",
    }


def test_third_place_slots_with_short_list(reference) -> None:
    best = [GroupStanding("A3", "A three", "A")]
    assigned = assign_third_place_slots(reference.round_of_16_slots.values(), best)
    assert assigned == {"3rd Place A": "A3"}


def test_final_and_third_place_follow_the_semi_finals(reference) -> None:
    processed, standings = historical_state(reference, 5)
    processed += [
        make_match("BUL", "ITA", "2-0", round="Semi-finals", group="", match_id="M49"),
        make_match("SWE", "BRA", "2-1", round="Semi-finals", group="", match_id="M50"),
    ]
    bracket = _bracket(reference, processed, standings)
    m51 = bracket.matchup("M51")
    m52 = bracket.matchup("M52")
    assert (m52.team1_key, m52.team2_key) == ("SWE", "BUL")
    assert (m51.team1_key, m51.team2_key) == ("BRA", "ITA")
    assert m52.team1_name == "Sweden"
