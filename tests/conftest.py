from __future__ import annotations

from typing import List, Tuple

import pytest

from wc94.progression import Phase, RoundProgressionController, SessionState
from wc94.reference import Match, ReferenceData, load_reference_data
from wc94.squad import auto_fill_by_formation
from wc94.standings import Standings, apply_match_to_standings, initialize_standings


@pytest.fixture(scope="session")
def reference() -> ReferenceData:
    return load_reference_data()


def make_match(
    team1: str = "AAA",
    team2: str = "BBB",
    score: str = "0-0",
    round: str = "Group Stage",
    group: str = "X",
    match_id: str = "M1",
    **kwargs,
) -> Match:
    return Match(
        match_id=match_id,
        round=round,
        group=group,
        team1=team1,
        team2=team2,
        score=score,
        **kwargs,
    )


def historical_state(reference: ReferenceData, rounds: int) -> Tuple[List[Match], Standings]:
    """Processed matches and standings after replaying the first `rounds` rounds."""
    processed: List[Match] = []
    standings = initialize_standings(reference)
    for idx in range(rounds):
        for match in reference.matches_for_round(idx):
            processed.append(match)
            standings = apply_match_to_standings(standings, match)
    return processed, standings


def play_to_end(controller: RoundProgressionController, state: SessionState) -> SessionState:
    """Drive a session to GAME_OVER, playing the user's match with a 4-4-2."""
    reference = controller.reference
    team = reference.teams[state.user_team_key]
    for _ in range(500):
        phase = state.phase
        if phase is Phase.GAME_OVER:
            return state
        if phase is Phase.AWAITING_ROUND_START:
            state = controller.start_tournament(state)
        elif phase is Phase.FIXTURES_SHOWN:
            state = controller.go_to_match(state)
            if state.phase is Phase.FIXTURES_SHOWN:
                state = controller.simulate_round(state)
        elif phase is Phase.PRE_GAME:
            state = controller.go_to_squad_selection(state)
        elif phase is Phase.SQUAD_SELECT:
            selection = auto_fill_by_formation(team, "4-4-2", reference.formations)
            state = controller.confirm_squad(state, selection)
        elif phase is Phase.IN_PROGRESS:
            state = controller.finish_match(state)
        elif phase is Phase.AFTERMATH:
            state = controller.continue_to_results(state)
        else:
            state = controller.continue_(state)
    raise AssertionError("session did not finish")
