from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

import pandas as pd

from wc94.outcome import final_score
from wc94.reference import Match, Team, parse_score
from wc94.timeline import parse_minute

TOP_SCORER_COLUMNS = ["player", "team_key", "team", "goals"]


@dataclass(frozen=True)
class TournamentPulse:
    matches_played: int
    total_goals: int
    average_goals: float
    red_cards: int
    highest_scoring_match: Optional[str] = None
    highest_scoring_total: int = 0
    quickest_goal_player: Optional[str] = None
    quickest_goal_team: Optional[str] = None
    quickest_goal_minute: Optional[int] = None
    quickest_goal_match: Optional[str] = None
    best_offense: Optional[str] = None
    best_offense_goals: int = 0
    best_defense: Optional[str] = None
    best_defense_conceded: int = 0


def top_scorers(processed_matches: Iterable[Match], teams: Mapping[str, Team]) -> pd.DataFrame:
    records = [
        {"player": goal.player, "team_key": goal.team}
        for match in processed_matches
        for goal in match.goals
        if not goal.is_own_goal
    ]
    if not records:
        return pd.DataFrame(columns=TOP_SCORER_COLUMNS)
    df = pd.DataFrame(records)
    table = df.groupby(["player", "team_key"]).size().reset_index(name="goals")
    table["team"] = table["team_key"].map(
        lambda k: teams[k].name if k in teams else k
    )
    table = table.sort_values(by=["goals", "player"], ascending=[False, True])
    return table[TOP_SCORER_COLUMNS].reset_index(drop=True)


def player_goals(processed_matches: Iterable[Match], team_key: str, player_name: str) -> int:
    return sum(
        1
        for match in processed_matches
        for goal in match.goals
        if goal.team == team_key and goal.player == player_name and not goal.is_own_goal
    )


def tournament_pulse(processed_matches: Iterable[Match], teams: Mapping[str, Team]) -> TournamentPulse:
    """Headline numbers for the matches played so far."""
    matches = list(processed_matches)
    if not matches:
        return TournamentPulse(matches_played=0, total_goals=0, average_goals=0.0, red_cards=0)

    total_goals = 0
    red_cards = 0
    highest: Optional[Match] = None
    highest_total = -1
    scored: Dict[str, int] = {}
    conceded: Dict[str, int] = {}
    quickest = None
    for match in matches:
        s1, s2 = parse_score(final_score(match))
        total_goals += s1 + s2
        if s1 + s2 > highest_total:
            highest, highest_total = match, s1 + s2
        scored[match.team1] = scored.get(match.team1, 0) + s1
        scored[match.team2] = scored.get(match.team2, 0) + s2
        conceded[match.team1] = conceded.get(match.team1, 0) + s2
        conceded[match.team2] = conceded.get(match.team2, 0) + s1
        red_cards += sum(1 for card in match.cards if card.is_red)
        for goal in match.goals:
            minute = parse_minute(goal.minute)
            if goal.is_own_goal or minute is None:
                continue
            if quickest is None or minute < quickest[0]:
                quickest = (minute, goal, match.match_id)

    def by_name(key: str) -> str:
        return teams[key].name if key in teams else key

    best_offense = min(scored, key=lambda k: (-scored[k], by_name(k)))
    best_defense = min(conceded, key=lambda k: (conceded[k], by_name(k)))
    return TournamentPulse(
        matches_played=len(matches),
        total_goals=total_goals,
        average_goals=round(total_goals / len(matches), 2),
        red_cards=red_cards,
        highest_scoring_match=highest.match_id if highest else None,
        highest_scoring_total=max(highest_total, 0),
        quickest_goal_player=quickest[1].player if quickest else None,
        quickest_goal_team=quickest[1].team if quickest else None,
        quickest_goal_minute=quickest[0] if quickest else None,
        quickest_goal_match=quickest[2] if quickest else None,
        best_offense=best_offense,
        best_offense_goals=scored[best_offense],
        best_defense=best_defense,
        best_defense_conceded=conceded[best_defense],
    )
