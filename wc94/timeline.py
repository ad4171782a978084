from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple
import logging
import re

from wc94.outcome import final_score, shootout_score
from wc94.reference import CardEvent, GoalEvent, Match, Team, parse_score

logger = logging.getLogger(__name__)

DEFAULT_BASE_DURATION_MS = 15000
DEFAULT_UPDATES_PER_SECOND = 10
REGULATION_MINUTES = 90
EXTRA_TIME_MINUTES = 30
SHOOTOUT_KICKS = 5
KICK_INTERVAL_MS = 1000


class PlaybackPhase(Enum):
    REGULATION = "regulation"
    EXTRA_TIME = "extra_time"
    PENALTIES = "penalties"
    ENDED = "ended"


@dataclass(frozen=True)
class PenaltyKick:
    order: int
    team_key: str
    scored: bool
    shootout_score: Tuple[int, int]

    @property
    def outcome(self) -> str:
        return "SCORED" if self.scored else "MISSED"


@dataclass(frozen=True)
class PlaybackTick:
    phase: PlaybackPhase
    minute: int
    elapsed_ms: int
    score: Tuple[int, int]
    goals: Tuple[GoalEvent, ...] = ()
    cards: Tuple[CardEvent, ...] = ()
    kick: Optional[PenaltyKick] = None


def parse_minute(text: Optional[str]) -> Optional[int]:
    """Match minute as an int; "45+2" counts as 45."""
    if text is None:
        return None
    base = str(text).split("+", 1)[0]
    digits = re.sub(r"\D", "", base)
    return int(digits) if digits else None


def score_from_events(
    team1: str,
    team2: str,
    goals: Iterable[GoalEvent],
    up_to_minute: Optional[int] = None,
) -> Tuple[int, int]:
    score1 = score2 = 0
    for goal in goals:
        if up_to_minute is not None:
            minute = parse_minute(goal.minute)
            if minute is None or minute > up_to_minute:
                continue
        credited = goal.team
        if goal.is_own_goal:
            credited = team2 if goal.team == team1 else team1
        if credited == team1:
            score1 += 1
        elif credited == team2:
            score2 += 1
    return score1, score2


def _decided(kicks: Tuple[int, int], goals: Tuple[int, int]) -> bool:
    if kicks[0] <= SHOOTOUT_KICKS and kicks[1] <= SHOOTOUT_KICKS:
        return (
            goals[0] > goals[1] + SHOOTOUT_KICKS - kicks[1]
            or goals[1] > goals[0] + SHOOTOUT_KICKS - kicks[0]
        )
    return kicks[0] == kicks[1] and goals[0] != goals[1]


def _kick_outcomes(target: Tuple[int, int]) -> Optional[List[bool]]:
    """Alternating kick results (first kicker first) ending exactly at `target`."""
    max_kicks = SHOOTOUT_KICKS + max(target) + 1

    def search(kicks, goals, seq):
        if goals[0] > target[0] or goals[1] > target[1]:
            return None
        if _decided(kicks, goals):
            return seq if goals == target else None
        side = 0 if kicks[0] == kicks[1] else 1
        if kicks[side] >= max_kicks:
            return None
        for scored in (True, False):
            next_kicks = list(kicks)
            next_goals = list(goals)
            next_kicks[side] += 1
            next_goals[side] += int(scored)
            found = search(tuple(next_kicks), tuple(next_goals), seq + [scored])
            if found is not None:
                return found
        return None

    if target[0] == target[1]:
        return None
    return search((0, 0), (0, 0), [])


def penalty_kick_sequence(
    match: Match, teams: Optional[Mapping[str, Team]] = None
) -> List[PenaltyKick]:
    """Rebuild a kick-by-kick shootout that ends on the recorded score.

    Five kicks each with early stopping, then sudden death. team1 kicks first
    unless the score is only reachable the other way round.
    """
    try:
        score = shootout_score(match, teams)
    except ValueError as exc:
        logger.warning("Cannot replay shootout for %s: %s", match.match_id, exc)
        return []
    if score is None:
        return []
    for order in ((match.team1, match.team2), (match.team2, match.team1)):
        target = score if order[0] == match.team1 else (score[1], score[0])
        outcomes = _kick_outcomes(target)
        if outcomes is None:
            continue
        kicks: List[PenaltyKick] = []
        running = {match.team1: 0, match.team2: 0}
        for idx, scored in enumerate(outcomes):
            team_key = order[idx % 2]
            running[team_key] += int(scored)
            kicks.append(
                PenaltyKick(
                    order=idx + 1,
                    team_key=team_key,
                    scored=scored,
                    shootout_score=(running[match.team1], running[match.team2]),
                )
            )
        return kicks
    logger.warning("Shootout %r for %s is not a reachable result", match.penalties, match.match_id)
    return []


def _goes_to_extra_time(match: Match) -> bool:
    if match.is_group_stage:
        return False
    score1, score2 = parse_score(match.score)
    return score1 == score2 and bool(match.extra_time_score or match.penalties)


def playback(
    match: Match,
    teams: Optional[Mapping[str, Team]] = None,
    base_duration_ms: int = DEFAULT_BASE_DURATION_MS,
    updates_per_second: int = DEFAULT_UPDATES_PER_SECOND,
) -> Iterator[PlaybackTick]:
    """Yield the clock of a recorded match at a fixed cadence.

    Ninety minutes take `base_duration_ms`; extra time runs at the same pace.
    Goals and cards are revealed on the tick whose clock passes their minute.
    Events with unparseable minutes show at the end of regulation. The caller
    owns the pacing: one tick every 1000 / `updates_per_second` ms.
    """
    if base_duration_ms <= 0 or updates_per_second <= 0:
        raise ValueError("Playback duration and update rate must be positive")
    interval_ms = 1000.0 / updates_per_second

    def minute_of(event) -> int:
        minute = parse_minute(event.minute)
        return REGULATION_MINUTES if minute is None else minute

    pending_goals = sorted(match.goals, key=minute_of)
    pending_cards = sorted(match.cards, key=minute_of)
    revealed: List[GoalEvent] = []
    elapsed = 0.0

    def run_period(phase: PlaybackPhase, start: int, length: int) -> Iterator[PlaybackTick]:
        nonlocal elapsed
        duration_ms = base_duration_ms * length / REGULATION_MINUTES
        ticks = max(1, int(round(duration_ms / interval_ms)))
        last_tick = phase is PlaybackPhase.EXTRA_TIME or not _goes_to_extra_time(match)
        for i in range(1, ticks + 1):
            elapsed += interval_ms
            minute = start + (length * i) // ticks
            # Everything left is due once the final whistle of the period goes.
            cutoff = 10 ** 6 if (i == ticks and last_tick) else minute
            goals = []
            while pending_goals and minute_of(pending_goals[0]) <= cutoff:
                goals.append(pending_goals.pop(0))
            cards = []
            while pending_cards and minute_of(pending_cards[0]) <= cutoff:
                cards.append(pending_cards.pop(0))
            revealed.extend(goals)
            yield PlaybackTick(
                phase=phase,
                minute=minute,
                elapsed_ms=int(round(elapsed)),
                score=score_from_events(match.team1, match.team2, revealed),
                goals=tuple(goals),
                cards=tuple(cards),
            )

    yield from run_period(PlaybackPhase.REGULATION, 0, REGULATION_MINUTES)
    minute = REGULATION_MINUTES
    if _goes_to_extra_time(match):
        yield from run_period(PlaybackPhase.EXTRA_TIME, REGULATION_MINUTES, EXTRA_TIME_MINUTES)
        minute += EXTRA_TIME_MINUTES
        live = score_from_events(match.team1, match.team2, revealed)
        for kick in penalty_kick_sequence(match, teams):
            elapsed += KICK_INTERVAL_MS
            yield PlaybackTick(
                phase=PlaybackPhase.PENALTIES,
                minute=minute,
                elapsed_ms=int(round(elapsed)),
                score=live,
                kick=kick,
            )
    yield PlaybackTick(
        phase=PlaybackPhase.ENDED,
        minute=minute,
        elapsed_ms=int(round(elapsed)),
        score=parse_score(final_score(match)),
    )
