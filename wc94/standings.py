from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Tuple

import pandas as pd

from wc94.reference import GROUP_STAGE, Match, ReferenceData, parse_score

Standings = Dict[str, Tuple["GroupStanding", ...]]

STANDINGS_COLUMNS = [
    "group",
    "position",
    "team_key",
    "team",
    "played",
    "won",
    "drawn",
    "lost",
    "goals_for",
    "goals_against",
    "goal_difference",
    "points",
]


@dataclass(frozen=True)
class GroupStanding:
    team_key: str
    team_name: str
    group: str
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0

    @property
    def played(self) -> int:
        return self.won + self.drawn + self.lost

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    @property
    def points(self) -> int:
        return 3 * self.won + self.drawn

    def record(self, scored: int, conceded: int) -> "GroupStanding":
        return replace(
            self,
            won=self.won + (1 if scored > conceded else 0),
            drawn=self.drawn + (1 if scored == conceded else 0),
            lost=self.lost + (1 if scored < conceded else 0),
            goals_for=self.goals_for + scored,
            goals_against=self.goals_against + conceded,
        )


def initialize_standings(reference: ReferenceData) -> Standings:
    return {
        group: tuple(
            GroupStanding(team_key=key, team_name=reference.team_name(key), group=group)
            for key in keys
        )
        for group, keys in reference.groups.items()
    }


def apply_match_to_standings(standings: Standings, match: Match) -> Standings:
    """Return a new table with one group match added.

    Knockout matches and matches whose group is not in the table leave the
    input untouched. Group results are always taken from the regulation score.
    Applying the same match twice counts it twice.
    """
    if match.round != GROUP_STAGE or match.group not in standings:
        return standings
    score1, score2 = parse_score(match.score)
    rows = []
    for row in standings[match.group]:
        if row.team_key == match.team1:
            row = row.record(score1, score2)
        elif row.team_key == match.team2:
            row = row.record(score2, score1)
        rows.append(row)
    updated = dict(standings)
    updated[match.group] = tuple(rows)
    return updated


def standings_frame(
    standings: Standings,
    processed_matches: Optional[Iterable[Match]] = None,
) -> pd.DataFrame:
    from wc94.ranking import sort_group

    matches = list(processed_matches) if processed_matches is not None else None
    records = []
    for group in sorted(standings):
        rows = list(standings[group])
        if matches is not None:
            rows = sort_group(rows, matches)
        for position, row in enumerate(rows, start=1):
            records.append(
                {
                    "group": group,
                    "position": position,
                    "team_key": row.team_key,
                    "team": row.team_name,
                    "played": row.played,
                    "won": row.won,
                    "drawn": row.drawn,
                    "lost": row.lost,
                    "goals_for": row.goals_for,
                    "goals_against": row.goals_against,
                    "goal_difference": row.goal_difference,
                    "points": row.points,
                }
            )
    return pd.DataFrame(records, columns=STANDINGS_COLUMNS)
