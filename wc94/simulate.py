from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import math

import numpy as np

from wc94.reference import GROUP_STAGE, GoalEvent, Match, ReferenceData, Team, parse_score

logger = logging.getLogger(__name__)

RHO = 0.1
EXTRA_TIME_EXP_SCORE_MULT = 1.0 / 3.0
SHOOTOUT_SKILLDIFF_COEF = 0.8
PENALTY_CONVERSION = 0.75
PRIOR_MATCHES = 2.0
REGULATION_MINUTES = 90
EXTRA_TIME_MINUTES = 30
SHOOTOUT_KICKS = 5
SCORER_WEIGHTS = {"FW": 6.0, "MF": 3.0, "DF": 1.0, "GK": 0.0, "Unknown": 1.0}


def safe_exp(x: float, cap: float = 50.0) -> float:
    return math.exp(min(x, cap))


def reverse_score(score: Optional[str]) -> Optional[str]:
    if not score:
        return score
    a, b = parse_score(score)
    return f"{b}-{a}"


def orient_historical(match: Match, team1: str, team2: str) -> Optional[Match]:
    """The historical record of `match` seen from `team1`'s side.

    Returns None when the live pairing is not the historical one.
    """
    if match.teams == (team1, team2):
        return match
    if match.teams == (team2, team1):
        return replace(
            match,
            team1=team1,
            team2=team2,
            score=reverse_score(match.score),
            half_time_score=reverse_score(match.half_time_score),
            extra_time_score=reverse_score(match.extra_time_score),
        )
    return None


@dataclass(frozen=True)
class TeamStrength:
    attack: float
    defense: float


class MatchSimulator:
    """Bivariate-Poisson fixture generator.

    Attack and defense log-rates are estimated from each team's 1994 record,
    shrunk towards the tournament average by `prior_matches` pseudo-matches.
    """

    def __init__(
        self,
        reference: ReferenceData,
        rho: float = RHO,
        extra_time_exp_score_mult: float = EXTRA_TIME_EXP_SCORE_MULT,
        shootout_skilldiff_coef: float = SHOOTOUT_SKILLDIFF_COEF,
        prior_matches: float = PRIOR_MATCHES,
    ):
        self.teams = reference.teams
        self.rho = min(max(float(rho), 0.0), 1.0 - 1e-9)
        self.extra_time_exp_score_mult = float(extra_time_exp_score_mult)
        self.shootout_skilldiff_coef = float(shootout_skilldiff_coef)
        self.prior_matches = float(prior_matches)
        self.mu, self.strengths = self._fit(reference.matches)

    def _fit(self, matches: Iterable[Match]) -> Tuple[float, Dict[str, TeamStrength]]:
        goals_for: Dict[str, float] = {}
        goals_against: Dict[str, float] = {}
        played: Dict[str, float] = {}
        total_goals = 0
        n_matches = 0
        for m in matches:
            s1, s2 = parse_score(m.score)
            total_goals += s1 + s2
            n_matches += 1
            for team, gf, ga in ((m.team1, s1, s2), (m.team2, s2, s1)):
                goals_for[team] = goals_for.get(team, 0.0) + gf
                goals_against[team] = goals_against.get(team, 0.0) + ga
                played[team] = played.get(team, 0.0) + 1.0
        mean = total_goals / (2.0 * n_matches) if n_matches else 1.0
        mean = max(mean, 1e-6)
        strengths: Dict[str, TeamStrength] = {}
        for team in self.teams:
            n = played.get(team, 0.0) + self.prior_matches
            expected = n * mean
            gf = goals_for.get(team, 0.0) + self.prior_matches * mean
            ga = goals_against.get(team, 0.0) + self.prior_matches * mean
            strengths[team] = TeamStrength(
                attack=math.log(gf / expected),
                defense=-math.log(ga / expected),
            )
        return math.log(mean), strengths

    def strength(self, team_key: str) -> TeamStrength:
        return self.strengths.get(team_key, TeamStrength(0.0, 0.0))

    def match_params(
        self, team1: str, team2: str, exp_score_mult: float = 1.0
    ) -> Tuple[float, float, float, float, float, float]:
        s1 = self.strength(team1)
        s2 = self.strength(team2)
        eta1 = self.mu + s1.attack - s2.defense
        eta2 = self.mu + s2.attack - s1.defense
        if exp_score_mult != 1.0:
            shift = math.log(exp_score_mult)
            eta1 += shift
            eta2 += shift
        m1 = safe_exp(eta1)
        m2 = safe_exp(eta2)
        nu = self.rho * min(m1, m2)
        lam1 = max(m1 - nu, 0.0)
        lam2 = max(m2 - nu, 0.0)
        return m1, m2, lam1, lam2, nu, float(eta1 - eta2)

    def _sample_score(
        self, rng: np.random.Generator, lam1: float, lam2: float, nu: float
    ) -> Tuple[int, int]:
        u = rng.poisson(nu) if nu > 0.0 else 0
        v1 = rng.poisson(lam1) if lam1 > 0.0 else 0
        v2 = rng.poisson(lam2) if lam2 > 0.0 else 0
        return int(u + v1), int(u + v2)

    def _shootout(self, rng: np.random.Generator, skilldiff: float) -> Tuple[bool, int, int]:
        """Returns (team1 won, winner's kicks scored, loser's kicks scored)."""
        p_team1 = 1.0 / (1.0 + safe_exp(-self.shootout_skilldiff_coef * skilldiff))
        team1_wins = bool(rng.random() < p_team1)
        a = b = 0
        for kick in range(1, SHOOTOUT_KICKS + 1):
            a += int(rng.random() < PENALTY_CONVERSION)
            if a > b + SHOOTOUT_KICKS - kick + 1 or b > a + SHOOTOUT_KICKS - kick:
                break
            b += int(rng.random() < PENALTY_CONVERSION)
            if abs(a - b) > SHOOTOUT_KICKS - kick:
                break
        else:
            while a == b:
                a += int(rng.random() < PENALTY_CONVERSION)
                b += int(rng.random() < PENALTY_CONVERSION)
        return team1_wins, max(a, b), min(a, b)

    def _scorer(self, team: Team, rng: np.random.Generator) -> str:
        if not team.squad:
            return "Unknown"
        weights = np.array([SCORER_WEIGHTS.get(p.category, 1.0) for p in team.squad])
        if weights.sum() <= 0.0:
            weights = np.ones(len(team.squad))
        idx = rng.choice(len(team.squad), p=weights / weights.sum())
        return team.squad[int(idx)].name

    def _goal_events(
        self,
        rng: np.random.Generator,
        team_key: str,
        goals: int,
        first_minute: int,
        last_minute: int,
    ) -> List[GoalEvent]:
        team = self.teams.get(team_key)
        events = []
        for minute in rng.integers(first_minute, last_minute + 1, size=goals):
            scorer = self._scorer(team, rng) if team else "Unknown"
            events.append(GoalEvent(team=team_key, player=scorer, minute=str(int(minute))))
        return events

    def simulate(
        self,
        fixture: Match,
        team1: str,
        team2: str,
        rng: np.random.Generator,
    ) -> Match:
        """Play `fixture` between `team1` and `team2` and return the result record.

        Group matches may be drawn. Knockout draws go to extra time and then
        to a shootout encoded with team keys.
        """
        allow_draw = fixture.round == GROUP_STAGE
        _, _, lam1, lam2, nu, skilldiff = self.match_params(team1, team2)
        s1, s2 = self._sample_score(rng, lam1, lam2, nu)
        goals = self._goal_events(rng, team1, s1, 1, REGULATION_MINUTES)
        goals += self._goal_events(rng, team2, s2, 1, REGULATION_MINUTES)
        extra_time_score = None
        penalties = None

        if not allow_draw and s1 == s2:
            _, _, lam1_et, lam2_et, nu_et, _ = self.match_params(
                team1, team2, exp_score_mult=self.extra_time_exp_score_mult
            )
            e1, e2 = self._sample_score(rng, lam1_et, lam2_et, nu_et)
            first = REGULATION_MINUTES + 1
            last = REGULATION_MINUTES + EXTRA_TIME_MINUTES
            goals += self._goal_events(rng, team1, e1, first, last)
            goals += self._goal_events(rng, team2, e2, first, last)
            extra_time_score = f"{s1 + e1}-{s2 + e2}"
            if e1 == e2:
                team1_wins, won, lost = self._shootout(rng, skilldiff)
                if team1_wins:
                    penalties = f"{team1} {won}-{lost} {team2}"
                else:
                    penalties = f"{team1} {lost}-{won} {team2}"

        goals.sort(key=lambda g: int(g.minute))
        ht1 = sum(1 for g in goals if g.team == team1 and int(g.minute) <= 45)
        ht2 = sum(1 for g in goals if g.team == team2 and int(g.minute) <= 45)
        logger.debug(
            "Simulated %s %s %d-%d %s (et=%s, pens=%s)",
            fixture.match_id,
            team1,
            s1,
            s2,
            team2,
            extra_time_score,
            penalties,
        )
        return Match(
            match_id=fixture.match_id,
            round=fixture.round,
            group=fixture.group,
            team1=team1,
            team2=team2,
            score=f"{s1}-{s2}",
            half_time_score=f"{ht1}-{ht2}",
            extra_time_score=extra_time_score,
            penalties=penalties,
            date=fixture.date,
            venue=fixture.venue,
            goals=tuple(goals),
        )
