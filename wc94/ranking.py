from __future__ import annotations

from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional

import numpy as np

from wc94.outcome import winner_of
from wc94.reference import Match
from wc94.standings import GroupStanding, Standings

BEST_THIRD_COUNT = 4


def _head_to_head(a: GroupStanding, b: GroupStanding, matches: Iterable[Match]) -> int:
    """Negative when `a` won the group match between the two, positive when `b` did."""
    for m in matches:
        if not m.is_group_stage or set(m.teams) != {a.team_key, b.team_key}:
            continue
        winner = winner_of(m)
        if winner == a.team_key:
            return -1
        if winner == b.team_key:
            return 1
        return 0
    return 0


def _compare(a: GroupStanding, b: GroupStanding, matches: List[Match]) -> int:
    for attr in ("points", "goal_difference", "goals_for"):
        va = getattr(a, attr)
        vb = getattr(b, attr)
        if va != vb:
            return -1 if va > vb else 1
    h2h = _head_to_head(a, b, matches)
    if h2h:
        return h2h
    na, nb = (a.team_name, a.team_key), (b.team_name, b.team_key)
    if na == nb:
        return 0
    return -1 if na < nb else 1


def sort_group(rows: Iterable[GroupStanding], processed_matches: Iterable[Match]) -> List[GroupStanding]:
    matches = list(processed_matches)
    return sorted(rows, key=cmp_to_key(lambda a, b: _compare(a, b, matches)))


def group_rankings(
    standings: Standings, processed_matches: Iterable[Match]
) -> Dict[str, List[GroupStanding]]:
    matches = list(processed_matches)
    return {group: sort_group(rows, matches) for group, rows in sorted(standings.items())}


def _third_place_key(row: GroupStanding):
    return (row.points, row.goal_difference, row.goals_for)


def rank_third_placed_teams(
    standings: Standings,
    processed_matches: Iterable[Match],
    rng: Optional[np.random.Generator] = None,
) -> List[GroupStanding]:
    if rng is None:
        rng = np.random.default_rng()
    third_place = [
        ranking[2] for ranking in group_rankings(standings, processed_matches).values()
        if len(ranking) >= 3
    ]
    third_place.sort(key=_third_place_key, reverse=True)

    # Drawing of lots for teams level on points, goal difference and goals.
    ordered: List[GroupStanding] = []
    i = 0
    while i < len(third_place):
        cur = third_place[i]
        tied_block = [cur]
        i += 1
        while i < len(third_place) and _third_place_key(third_place[i]) == _third_place_key(cur):
            tied_block.append(third_place[i])
            i += 1
        if len(tied_block) > 1:
            rng.shuffle(tied_block)
        ordered.extend(tied_block)
    return ordered


def best_third_placed_teams(
    standings: Standings,
    processed_matches: Iterable[Match],
    rng: Optional[np.random.Generator] = None,
) -> List[GroupStanding]:
    return rank_third_placed_teams(standings, processed_matches, rng)[:BEST_THIRD_COUNT]
