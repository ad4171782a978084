"""Round-by-round driver for a single-player tournament session.

All session data lives in an immutable `SessionState`; every controller action
takes a state and returns the next one. Aggregates (standings, processed
matches, bracket snapshot) are only replaced when a round is committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple
import logging

import numpy as np

from wc94.bracket import (
    FINAL,
    THIRD_PLACE,
    FullKnockoutBracket,
    generate_bracket,
)
from wc94.outcome import final_score, loser_of, winner_of
from wc94.reference import Match, ReferenceData
from wc94.simulate import MatchSimulator, orient_historical
from wc94.squad import SquadSelection, SquadSelectionError, validate_selection
from wc94.standings import Standings, apply_match_to_standings, initialize_standings

logger = logging.getLogger(__name__)

HISTORICAL = "historical"
SIMULATE = "simulate"
MODES = (HISTORICAL, SIMULATE)

NO_USER_MATCH_NOTICE = "No match for your team in this round."


class SessionStateError(RuntimeError):
    pass


class Phase(Enum):
    AWAITING_ROUND_START = "awaiting_round_start"
    FIXTURES_SHOWN = "fixtures_shown"
    PRE_GAME = "pre_game"
    SQUAD_SELECT = "squad_select"
    IN_PROGRESS = "in_progress"
    AFTERMATH = "aftermath"
    ROUND_RESULTS = "round_results"
    STANDINGS = "standings"
    TOP_SCORERS = "top_scorers"
    NEWS = "news"
    PULSE = "pulse"
    BRACKET = "bracket"
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class Fixture:
    match_id: str
    round: str
    group: Optional[str]
    team1: str
    team2: str
    date: Optional[str] = None
    venue: Optional[str] = None

    def involves(self, team_key: str) -> bool:
        return team_key in (self.team1, self.team2)


@dataclass(frozen=True)
class SessionState:
    user_team_key: str
    phase: Phase = Phase.AWAITING_ROUND_START
    round_index: int = 0
    processed_matches: Tuple[Match, ...] = ()
    processed_ids: FrozenSet[str] = frozenset()
    standings: Standings = field(default_factory=dict)
    bracket: Optional[FullKnockoutBracket] = None
    current_match: Optional[Fixture] = None
    squad_selection: Optional[SquadSelection] = None
    pending_results: Tuple[Match, ...] = ()
    notice: Optional[str] = None
    lots_seed: int = 0
    rng_counter: int = 0

    def processed(self, match_id: str) -> Optional[Match]:
        for m in self.processed_matches:
            if m.match_id == match_id:
                return m
        return None


class RoundProgressionController:
    """Moves a session through fixtures, the user's match and the result screens.

    `mode="historical"` replays the 1994 record whenever the live pairing is
    the historical one and simulates otherwise; `mode="simulate"` simulates
    every fixture. `seed` makes sessions reproducible: each new session draws
    its own seed for the lots between level third-placed teams and for match
    simulation.
    """

    ACTIONS = (
        "start_tournament",
        "show_fixtures",
        "go_to_match",
        "go_to_squad_selection",
        "confirm_squad",
        "finish_match",
        "simulate_round",
        "continue_to_results",
        "continue_",
        "reset",
    )

    def __init__(
        self,
        reference: ReferenceData,
        mode: str = HISTORICAL,
        seed: Optional[int] = None,
        simulator: Optional[MatchSimulator] = None,
    ):
        if mode not in MODES:
            raise ValueError(f"Unknown mode {mode!r}, expected one of {MODES}")
        self.reference = reference
        self.mode = mode
        self.simulator = simulator or MatchSimulator(reference)
        self._seed_sequence = np.random.SeedSequence(seed)

    # Sessions

    def new_session(self, user_team_key: str) -> SessionState:
        if user_team_key not in self.reference.teams:
            raise ValueError(f"Unknown team: {user_team_key}")
        child = self._seed_sequence.spawn(1)[0]
        lots_seed = int(child.generate_state(1)[0])
        return SessionState(
            user_team_key=user_team_key,
            standings=initialize_standings(self.reference),
            lots_seed=lots_seed,
        )

    def reset(self, state: SessionState, to_main_menu: bool = True) -> SessionState:
        fresh = self.new_session(state.user_team_key)
        if to_main_menu:
            return fresh
        return self.start_tournament(fresh)

    def dispatch(self, state: SessionState, action: str, **kwargs) -> SessionState:
        if action not in self.ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        handler: Callable[..., SessionState] = getattr(self, action)
        try:
            return handler(state, **kwargs)
        except SessionStateError as exc:
            logger.warning("Resetting session after invalid transition: %s", exc)
            return self.reset(state)

    # Queries

    def current_round(self, state: SessionState):
        return self.reference.game_rounds[state.round_index]

    def is_group_round(self, state: SessionState) -> bool:
        return self.current_round(state).is_group_stage

    def is_last_round(self, state: SessionState) -> bool:
        return state.round_index >= len(self.reference.game_rounds) - 1

    def generate_bracket(self, state: SessionState) -> FullKnockoutBracket:
        return generate_bracket(
            state.processed_matches,
            state.standings,
            self.reference.matches,
            self.reference.teams,
            state.user_team_key,
            slots=self.reference.round_of_16_slots,
            rng=np.random.default_rng(state.lots_seed),
        )

    def current_fixtures(self, state: SessionState) -> List[Fixture]:
        """Live fixtures of the current round.

        Group fixtures are fixed. Knockout fixtures take their occupants from
        the bracket derived from the current state.
        """
        matches = self.reference.matches_for_round(state.round_index)
        if self.is_group_round(state):
            return [self._fixture(m, m.team1, m.team2) for m in matches]
        bracket = self.generate_bracket(state)
        fixtures = []
        for match in matches:
            matchup = bracket.matchup(match.match_id)
            if matchup is None or not matchup.is_resolved:
                raise SessionStateError(
                    f"Fixture {match.match_id} has no resolved participants yet"
                )
            fixtures.append(self._fixture(match, matchup.team1_key, matchup.team2_key))
        return fixtures

    def user_fixture(self, state: SessionState) -> Optional[Fixture]:
        for fixture in self.current_fixtures(state):
            if fixture.involves(state.user_team_key):
                return fixture
        return None

    def round_results(self, state: SessionState) -> List[Match]:
        ids = set(self.current_round(state).match_ids)
        return [m for m in state.processed_matches if m.match_id in ids]

    def has_diverged(self, state: SessionState) -> bool:
        for record in state.processed_matches:
            historical = self.reference.match_by_id(record.match_id)
            if (
                record.teams != historical.teams
                or record.score != historical.score
                or record.extra_time_score != historical.extra_time_score
                or (record.penalties is None) != (historical.penalties is None)
                or winner_of(record, self.reference.teams)
                != winner_of(historical, self.reference.teams)
            ):
                return True
        return False

    def is_user_eliminated(self, state: SessionState) -> bool:
        """Whether the user's team has no place in the next round."""
        next_index = state.round_index + 1
        if next_index >= len(self.reference.game_rounds):
            return True
        key = state.user_team_key
        if not self.has_diverged(state):
            if self.reference.user_match_for_round(next_index, key) is not None:
                return False
        bracket = state.bracket or self.generate_bracket(state)
        next_ids = self.reference.game_rounds[next_index].match_ids
        for match_id in next_ids:
            matchup = bracket.matchup(match_id)
            if matchup is not None and matchup.has_team(key):
                return False
        return True

    def finals_complete(self, state: SessionState) -> bool:
        last = self.reference.game_rounds[-1]
        for match_id in last.match_ids:
            record = state.processed(match_id)
            if record is None or winner_of(record, self.reference.teams) is None:
                return False
        return True

    # Actions

    def start_tournament(self, state: SessionState) -> SessionState:
        self._require(state, "start_tournament", Phase.AWAITING_ROUND_START)
        if state.round_index != 0 or state.processed_ids:
            raise SessionStateError("Tournament already started")
        return self.show_fixtures(state)

    def show_fixtures(self, state: SessionState) -> SessionState:
        self._require(state, "show_fixtures", Phase.AWAITING_ROUND_START)
        return replace(state, phase=Phase.FIXTURES_SHOWN, notice=None)

    def go_to_match(self, state: SessionState) -> SessionState:
        self._require(state, "go_to_match", Phase.FIXTURES_SHOWN)
        fixture = self.user_fixture(state)
        if fixture is None:
            return replace(state, notice=NO_USER_MATCH_NOTICE)
        return replace(state, phase=Phase.PRE_GAME, current_match=fixture, notice=None)

    def go_to_squad_selection(self, state: SessionState) -> SessionState:
        self._require(state, "go_to_squad_selection", Phase.PRE_GAME)
        if state.current_match is None:
            raise SessionStateError("No match selected")
        return replace(state, phase=Phase.SQUAD_SELECT)

    def confirm_squad(self, state: SessionState, selection: SquadSelection) -> SessionState:
        self._require(state, "confirm_squad", Phase.SQUAD_SELECT)
        if state.current_match is None:
            raise SessionStateError("No match selected")
        team = self.reference.teams[state.user_team_key]
        messages = validate_selection(
            team,
            selection.starters,
            selection.subs,
            selection.formation,
            self.reference.formations,
        )
        if messages:
            raise SquadSelectionError(messages)
        return replace(state, phase=Phase.IN_PROGRESS, squad_selection=selection)

    def finish_match(self, state: SessionState) -> SessionState:
        self._require(state, "finish_match", Phase.IN_PROGRESS)
        if state.current_match is None or state.squad_selection is None:
            raise SessionStateError("No squad confirmed for the current match")
        rng = np.random.default_rng([state.lots_seed, state.rng_counter, 1])
        record = self._resolve(state.current_match, rng)
        return replace(state, phase=Phase.AFTERMATH, pending_results=(record,))

    def simulate_round(self, state: SessionState) -> SessionState:
        self._require(state, "simulate_round", Phase.FIXTURES_SHOWN)
        return self._commit_round(state)

    def continue_to_results(self, state: SessionState) -> SessionState:
        self._require(state, "continue_to_results", Phase.AFTERMATH)
        return self._commit_round(state)

    def continue_(self, state: SessionState) -> SessionState:
        phase = state.phase
        if phase is Phase.ROUND_RESULTS:
            nxt = Phase.STANDINGS if self.is_group_round(state) else Phase.TOP_SCORERS
            return replace(state, phase=nxt)
        if phase is Phase.STANDINGS:
            return replace(state, phase=Phase.TOP_SCORERS)
        if phase is Phase.TOP_SCORERS:
            return replace(state, phase=Phase.NEWS)
        if phase is Phase.NEWS:
            return replace(state, phase=Phase.PULSE)
        if phase is Phase.PULSE:
            stage_transition = (
                not self.is_group_round(state)
                or state.round_index == self.reference.last_group_round_index
            )
            if stage_transition:
                return replace(state, phase=Phase.BRACKET, bracket=self.generate_bracket(state))
            return self._next_round(state)
        if phase is Phase.BRACKET:
            if self.finals_complete(state) or self.is_user_eliminated(state):
                return replace(state, phase=Phase.GAME_OVER)
            return self._next_round(state)
        raise SessionStateError(f"continue not allowed in phase {phase.name}")

    # Round processing

    def process_round(
        self,
        state: SessionState,
        overrides: Optional[Iterable[Match]] = None,
    ) -> SessionState:
        """Commit every unprocessed match of the current round.

        Records in `overrides` are committed as given; the rest are replayed
        or simulated. Standings absorb group matches once each.
        """
        round_ids = set(self.current_round(state).match_ids)
        by_id: Dict[str, Match] = {}
        for record in overrides or ():
            if record.match_id not in round_ids:
                raise ValueError(f"Match {record.match_id} is not part of this round")
            by_id[record.match_id] = record

        rng = np.random.default_rng([state.lots_seed, state.rng_counter])
        records: List[Match] = []
        for fixture in self.current_fixtures(state):
            if fixture.match_id in state.processed_ids:
                continue
            record = by_id.get(fixture.match_id) or self._resolve(fixture, rng)
            records.append(record)

        standings = state.standings
        for record in records:
            standings = apply_match_to_standings(standings, record)
        logger.debug(
            "Processed %d matches in %s", len(records), self.current_round(state).name
        )
        return replace(
            state,
            processed_matches=state.processed_matches + tuple(records),
            processed_ids=state.processed_ids | {r.match_id for r in records},
            standings=standings,
            rng_counter=state.rng_counter + 1,
        )

    def _commit_round(self, state: SessionState) -> SessionState:
        state = self.process_round(state, overrides=state.pending_results)
        return replace(state, phase=Phase.ROUND_RESULTS, pending_results=(), notice=None)

    def _next_round(self, state: SessionState) -> SessionState:
        if self.is_last_round(state):
            return replace(state, phase=Phase.GAME_OVER)
        return replace(
            state,
            phase=Phase.FIXTURES_SHOWN,
            round_index=state.round_index + 1,
            current_match=None,
            squad_selection=None,
            pending_results=(),
            notice=None,
        )

    def _resolve(self, fixture: Fixture, rng: np.random.Generator) -> Match:
        historical = self.reference.match_by_id(fixture.match_id)
        if self.mode == HISTORICAL:
            record = orient_historical(historical, fixture.team1, fixture.team2)
            if record is not None:
                return record
        return self.simulator.simulate(historical, fixture.team1, fixture.team2, rng)

    @staticmethod
    def _fixture(match: Match, team1: str, team2: str) -> Fixture:
        return Fixture(
            match_id=match.match_id,
            round=match.round,
            group=match.group,
            team1=team1,
            team2=team2,
            date=match.date,
            venue=match.venue,
        )

    @staticmethod
    def _require(state: SessionState, action: str, *phases: Phase) -> None:
        if state.phase not in phases:
            raise SessionStateError(f"{action} not allowed in phase {state.phase.name}")

    # Game over

    def last_user_match(self, state: SessionState) -> Optional[Match]:
        played = [m for m in state.processed_matches if m.involves(state.user_team_key)]
        if not played:
            return None
        return max(played, key=lambda m: m.number)

    def game_over_details(self, state: SessionState) -> Tuple[str, str]:
        key = state.user_team_key
        name = self.reference.team_name(key)
        last = self.last_user_match(state)
        if last is None or last.is_group_stage:
            return "Tournament Over", f"{name} did not advance from the group stage."
        teams = self.reference.teams
        opponent = self.reference.team_name(last.opponent_of(key))
        won = winner_of(last, teams) == key
        score = final_score(last)
        if last.round == FINAL:
            if won:
                message = f"{name} won the World Cup, beating {opponent} in the final ({score})."
                return "Champions!", message
            return "Runners-up", f"{name} lost the final to {opponent} ({score})."
        if last.round == THIRD_PLACE:
            if won:
                return "Third Place", f"{name} finished third after beating {opponent} ({score})."
            return "Fourth Place", f"{name} finished fourth after losing to {opponent} ({score})."
        if loser_of(last, teams) == key:
            message = f"{name} were knocked out in the {last.round} by {opponent} ({score})."
            return "Eliminated", message
        return "Tournament Over", f"{name} last played {opponent} in the {last.round}."
