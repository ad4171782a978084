from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple
import logging

import numpy as np
import pandas as pd

from wc94.outcome import final_score, loser_of, winner_of
from wc94.ranking import group_rankings, rank_third_placed_teams, BEST_THIRD_COUNT
from wc94.reference import GROUP_STAGE, Match, RoundOf16Slot, Team
from wc94.standings import GroupStanding, Standings

logger = logging.getLogger(__name__)

ROUND_OF_16 = "Round of 16"
QUARTER_FINALS = "Quarter-finals"
SEMI_FINALS = "Semi-finals"
THIRD_PLACE = "Third Place"
FINAL = "Final"
KNOCKOUT_ROUNDS = (ROUND_OF_16, QUARTER_FINALS, SEMI_FINALS, THIRD_PLACE, FINAL)

WINNER_GROUP = "Winner Group "
RUNNER_UP_GROUP = "Runner-up Group "
THIRD_PLACE_GROUP = "3rd Place "

# The placing matches draw from the two semi-finals directly.
PLACING_WIRING = {
    "M51": (("Loser", "M50"), ("Loser", "M49")),
    "M52": (("Winner", "M50"), ("Winner", "M49")),
}

BRACKET_COLUMNS = [
    "round",
    "match_id",
    "team1_slot",
    "team1",
    "team2_slot",
    "team2",
    "score",
    "penalties",
    "winner",
]


@dataclass(frozen=True)
class BracketMatchup:
    match_id: str
    round_title: str
    team1_slot: str
    team2_slot: str
    team1_key: Optional[str] = None
    team2_key: Optional[str] = None
    team1_name: str = ""
    team2_name: str = ""
    score: Optional[str] = None
    penalties: Optional[str] = None
    winner_key: Optional[str] = None
    is_user_team1: bool = False
    is_user_team2: bool = False

    @property
    def is_complete(self) -> bool:
        return self.winner_key is not None

    @property
    def is_resolved(self) -> bool:
        return self.team1_key is not None and self.team2_key is not None

    @property
    def involves_user(self) -> bool:
        return self.is_user_team1 or self.is_user_team2

    def has_team(self, team_key: str) -> bool:
        return team_key in (self.team1_key, self.team2_key)


@dataclass(frozen=True)
class KnockoutRoundBracket:
    title: str
    matchups: Tuple[BracketMatchup, ...]


@dataclass(frozen=True)
class FullKnockoutBracket:
    rounds: Tuple[KnockoutRoundBracket, ...]

    def round(self, title: str) -> Optional[KnockoutRoundBracket]:
        for r in self.rounds:
            if r.title == title:
                return r
        return None

    def matchups(self) -> List[BracketMatchup]:
        return [m for r in self.rounds for m in r.matchups]

    def matchup(self, match_id: str) -> Optional[BracketMatchup]:
        for m in self.matchups():
            if m.match_id == match_id:
                return m
        return None

    def team_keys(self) -> Set[str]:
        keys = set()
        for m in self.matchups():
            keys.update(k for k in (m.team1_key, m.team2_key) if k)
        return keys


def _group_complete(group: str, processed: Mapping[str, Match], schedule: Iterable[Match]) -> bool:
    fixtures = [m.match_id for m in schedule if m.round == GROUP_STAGE and m.group == group]
    return bool(fixtures) and all(mid in processed for mid in fixtures)


def assign_third_place_slots(
    slots: Iterable[RoundOf16Slot],
    best_third: List[GroupStanding],
) -> Dict[str, str]:
    """Map each "3rd Place X" label to a qualifying third-placed team key.

    A label takes its own group's third when that team qualified. Labels whose
    group third missed out take the best remaining qualifier in rank order.
    """
    labels = []
    for slot in slots:
        for label in (slot.team1_slot, slot.team2_slot):
            if label.startswith(THIRD_PLACE_GROUP):
                labels.append(label)
    by_group = {row.group: row.team_key for row in best_third}
    assigned: Dict[str, str] = {}
    deferred = []
    for label in labels:
        group = label[len(THIRD_PLACE_GROUP):].strip()
        if group in by_group:
            assigned[label] = by_group[group]
        else:
            deferred.append(label)
    remaining = [row.team_key for row in best_third if row.team_key not in assigned.values()]
    for label in deferred:
        if not remaining:
            break
        assigned[label] = remaining.pop(0)
    return assigned


def _round_of_16_occupants(
    slots: Mapping[str, RoundOf16Slot],
    standings: Standings,
    processed: Mapping[str, Match],
    schedule: List[Match],
    rng: Optional[np.random.Generator],
) -> Tuple[Dict[str, Optional[str]], bool]:
    processed_matches = list(processed.values())
    rankings = group_rankings(standings, processed_matches)
    occupants: Dict[str, Optional[str]] = {}
    for group, ranking in rankings.items():
        if not _group_complete(group, processed, schedule):
            continue
        occupants[WINNER_GROUP + group] = ranking[0].team_key
        occupants[RUNNER_UP_GROUP + group] = ranking[1].team_key
    complete = bool(rankings) and all(_group_complete(g, processed, schedule) for g in rankings)
    if complete:
        ranked_thirds = rank_third_placed_teams(standings, processed_matches, rng)
        occupants.update(assign_third_place_slots(slots.values(), ranked_thirds[:BEST_THIRD_COUNT]))
    return occupants, complete


def _feeder_match_id(match: Match, team_key: str, schedule: List[Match]) -> Optional[str]:
    """Find the earlier knockout fixture that `team_key` came through to reach `match`."""
    idx = KNOCKOUT_ROUNDS.index(match.round)
    for round_title in reversed(KNOCKOUT_ROUNDS[:idx]):
        if round_title in (THIRD_PLACE, FINAL):
            continue
        for candidate in schedule:
            if candidate.round == round_title and candidate.involves(team_key):
                return candidate.match_id
    return None


def _feeding_slots(match: Match, schedule: List[Match]) -> Tuple[Tuple[str, Optional[str]], ...]:
    if match.match_id in PLACING_WIRING:
        return PLACING_WIRING[match.match_id]
    return tuple(
        ("Winner", _feeder_match_id(match, key, schedule)) for key in match.teams
    )


def generate_bracket(
    processed_matches: Iterable[Match],
    standings: Standings,
    schedule: Iterable[Match],
    teams: Mapping[str, Team],
    user_team_key: Optional[str],
    *,
    slots: Mapping[str, RoundOf16Slot],
    rng: Optional[np.random.Generator] = None,
) -> FullKnockoutBracket:
    """Derive the knockout bracket from the current simulation state.

    The fixture structure comes from the historical schedule and the static
    Round of 16 slot table; the occupants come from the live standings and the
    processed results. Slots whose feeders are not settled stay unresolved.
    `rng` is used only for drawing lots between exactly level third-placed
    teams.
    """
    schedule = sorted(schedule, key=lambda m: m.number)
    processed: Dict[str, Match] = {m.match_id: m for m in processed_matches}
    occupants, groups_complete = _round_of_16_occupants(
        slots, standings, processed, schedule, rng
    )

    def team_name(key: Optional[str], label: str) -> str:
        if key is None:
            return label
        team = teams.get(key)
        return team.name if team else key

    def resolve_feeder(kind: str, feeder_id: Optional[str]) -> Optional[str]:
        record = processed.get(feeder_id) if feeder_id else None
        if record is None:
            return None
        if kind == "Loser":
            return loser_of(record, teams)
        return winner_of(record, teams)

    rounds: List[KnockoutRoundBracket] = []
    for round_title in KNOCKOUT_ROUNDS:
        matchups: List[BracketMatchup] = []
        for match in (m for m in schedule if m.round == round_title):
            if round_title == ROUND_OF_16:
                slot = slots.get(match.match_id)
                if slot is None:
                    logger.warning("No slot definition for %s", match.match_id)
                    continue
                labels = (slot.team1_slot, slot.team2_slot)
                keys = tuple(occupants.get(label) for label in labels)
                if groups_complete and None in keys:
                    logger.warning("Unresolved Round of 16 slot in %s: %s", match.match_id, labels)
            else:
                feeders = _feeding_slots(match, schedule)
                labels = tuple(
                    f"{kind} {feeder_id}" if feeder_id else "To be decided"
                    for kind, feeder_id in feeders
                )
                keys = tuple(resolve_feeder(kind, feeder_id) for kind, feeder_id in feeders)

            record = processed.get(match.match_id)
            score = penalties = winner = None
            if record is not None:
                keys = record.teams
                score = final_score(record)
                penalties = record.penalties
                winner = winner_of(record, teams)
            matchups.append(
                BracketMatchup(
                    match_id=match.match_id,
                    round_title=round_title,
                    team1_slot=labels[0],
                    team2_slot=labels[1],
                    team1_key=keys[0],
                    team2_key=keys[1],
                    team1_name=team_name(keys[0], labels[0]),
                    team2_name=team_name(keys[1], labels[1]),
                    score=score,
                    penalties=penalties,
                    winner_key=winner,
                    is_user_team1=user_team_key is not None and keys[0] == user_team_key,
                    is_user_team2=user_team_key is not None and keys[1] == user_team_key,
                )
            )
        rounds.append(KnockoutRoundBracket(title=round_title, matchups=tuple(matchups)))
    return FullKnockoutBracket(rounds=tuple(rounds))


def bracket_frame(bracket: FullKnockoutBracket) -> pd.DataFrame:
    records = [
        {
            "round": m.round_title,
            "match_id": m.match_id,
            "team1_slot": m.team1_slot,
            "team1": m.team1_name,
            "team2_slot": m.team2_slot,
            "team2": m.team2_name,
            "score": m.score,
            "penalties": m.penalties,
            "winner": m.winner_key,
        }
        for m in bracket.matchups()
    ]
    return pd.DataFrame(records, columns=BRACKET_COLUMNS)
