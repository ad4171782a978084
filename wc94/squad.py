from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from wc94.reference import CATEGORIES, UNKNOWN_CATEGORY, FormationRequirements, Match, Team

MAX_STARTERS = 11
MAX_SUBS = 5


class SquadSelectionError(ValueError):
    def __init__(self, messages: Sequence[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


@dataclass(frozen=True)
class SquadSelection:
    formation: str
    starters: Tuple[int, ...]
    subs: Tuple[int, ...] = ()


def validate_selection(
    team: Team,
    starters: Sequence[int],
    subs: Sequence[int],
    formation: Optional[str],
    formations: Mapping[str, FormationRequirements],
) -> List[str]:
    """Blocking problems with a squad pick; an empty list means it can be confirmed."""
    messages: List[str] = []
    requirements = formations.get(formation) if formation else None
    if not formation:
        messages.append("Select a formation.")
    elif requirements is None:
        messages.append(f"Unknown formation: {formation}")

    if len(starters) != MAX_STARTERS:
        messages.append(f"Select exactly {MAX_STARTERS} starters (got {len(starters)}).")
    if len(subs) > MAX_SUBS:
        messages.append(f"Select at most {MAX_SUBS} substitutes (got {len(subs)}).")

    counts = Counter(list(starters) + list(subs))
    dupes = sorted(n for n, c in counts.items() if c > 1)
    if dupes:
        messages.append(f"Duplicate jersey numbers: {', '.join(str(n) for n in dupes)}")
    unknown = sorted(n for n in counts if team.player(n) is None)
    if unknown:
        messages.append(
            f"Unknown jersey numbers for {team.key}: {', '.join(str(n) for n in unknown)}"
        )

    picked = [team.player(n) for n in starters]
    picked = [p for p in picked if p is not None]
    uncategorised = [p.name for p in picked if p.category == UNKNOWN_CATEGORY]
    if uncategorised:
        messages.append(f"Starters with unknown positions: {', '.join(uncategorised)}")

    if requirements is not None:
        got = Counter(p.category for p in picked)
        for category, need in requirements.counts().items():
            if got.get(category, 0) != need:
                messages.append(f"{category}: need {need}, got {got.get(category, 0)}")
    return messages


def auto_fill_by_formation(
    team: Team, formation: str, formations: Mapping[str, FormationRequirements]
) -> SquadSelection:
    requirements = formations.get(formation)
    if requirements is None:
        raise ValueError(f"Unknown formation: {formation}")
    starters: List[int] = []
    for category in CATEGORIES:
        need = requirements.counts()[category]
        pool = [p.number for p in team.squad if p.category == category]
        starters.extend(pool[:need])
    # Top up from whoever is left when the squad is short in a category.
    remaining = [p.number for p in team.squad if p.number not in starters]
    while len(starters) < MAX_STARTERS and remaining:
        starters.append(remaining.pop(0))
    subs = [n for n in remaining if n not in starters][:MAX_SUBS]
    return SquadSelection(formation=formation, starters=tuple(starters), subs=tuple(subs))


def auto_fill_historical(match: Match, team: Team) -> Optional[SquadSelection]:
    lineup = match.lineup_for(team.key)
    if lineup is None:
        return None
    return SquadSelection(
        formation=lineup.formation,
        starters=tuple(lineup.starters),
        subs=tuple(lineup.subs[:MAX_SUBS]),
    )
