from __future__ import annotations

from typing import Mapping, Optional, Tuple
import logging
import re

from wc94.reference import Match, Team, parse_score

logger = logging.getLogger(__name__)

PENALTIES_PATTERN = re.compile(r"^(.+?)\s+(\d+)-(\d+)\s+(.+)$")


def parse_penalties(text: str) -> Tuple[str, int, int, str]:
    match = PENALTIES_PATTERN.match(str(text or "").strip())
    if match is None:
        raise ValueError(f"Unparseable penalty result: {text!r}")
    return (
        match.group(1).strip(),
        int(match.group(2)),
        int(match.group(3)),
        match.group(4).strip(),
    )


def final_score(match: Match) -> str:
    return match.extra_time_score or match.score


def _identifies(identity: str, team_key: str, teams: Optional[Mapping[str, Team]]) -> bool:
    target = identity.casefold()
    if target == team_key.casefold():
        return True
    team = teams.get(team_key) if teams else None
    return team is not None and team.name.casefold() == target


def shootout_winner(match: Match, teams: Optional[Mapping[str, Team]] = None) -> str:
    try:
        identity_a, score_a, score_b, identity_b = parse_penalties(match.penalties)
    except ValueError:
        logger.warning(
            "Malformed penalties %r for %s, assuming %s won",
            match.penalties,
            match.match_id,
            match.team1,
        )
        return match.team1
    if score_a == score_b:
        logger.warning(
            "Level shootout %r for %s, assuming %s won",
            match.penalties,
            match.match_id,
            match.team1,
        )
        return match.team1
    identity = identity_a if score_a > score_b else identity_b
    for key in match.teams:
        if _identifies(identity, key, teams):
            return key
    logger.warning(
        "Shootout identity %r matches neither side of %s, assuming %s won",
        identity,
        match.match_id,
        match.team1,
    )
    return match.team1


def winner_of(match: Match, teams: Optional[Mapping[str, Team]] = None) -> Optional[str]:
    """Key of the team that won `match`, or None for a draw.

    A shootout decides the match when present. Otherwise the extra-time score
    is used if there is one, then the full-time score. Shootout identities may
    be keys or display names; names can only be recognised when `teams` is
    given.
    """
    if match.penalties:
        return shootout_winner(match, teams)
    score1, score2 = parse_score(final_score(match))
    if score1 > score2:
        return match.team1
    if score2 > score1:
        return match.team2
    return None


def loser_of(match: Match, teams: Optional[Mapping[str, Team]] = None) -> Optional[str]:
    winner = winner_of(match, teams)
    if winner is None:
        return None
    return match.opponent_of(winner)


def went_to_extra_time(match: Match) -> bool:
    return bool(match.extra_time_score)


def shootout_score(
    match: Match, teams: Optional[Mapping[str, Team]] = None
) -> Optional[Tuple[int, int]]:
    """Kicks scored in the shootout as (team1, team2), or None without one."""
    if not match.penalties:
        return None
    identity_a, score_a, score_b, identity_b = parse_penalties(match.penalties)
    if _identifies(identity_a, match.team1, teams) or _identifies(identity_b, match.team2, teams):
        return score_a, score_b
    if _identifies(identity_a, match.team2, teams) or _identifies(identity_b, match.team1, teams):
        return score_b, score_a
    raise ValueError(f"Shootout {match.penalties!r} does not name either side of {match.match_id}")
