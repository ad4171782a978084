from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import re
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[1]
REFERENCE_DATA_DIR = ROOT_DIR / "reference_data"
TEAMS_FILE = "teams.csv"
PLAYERS_FILE = "players.csv"
FORMATIONS_FILE = "formations.csv"
MATCHES_FILE = "matches.csv"
GOALS_FILE = "goals.csv"
CARDS_FILE = "cards.csv"
LINEUPS_FILE = "lineups.csv"
GAME_ROUNDS_FILE = "game_rounds.csv"
ROUND_OF_16_SLOTS_FILE = "round_of_16_slots.csv"

GROUP_STAGE = "Group Stage"
OWN_GOAL = "Own Goal"
CATEGORIES = ("GK", "DF", "MF", "FW")
UNKNOWN_CATEGORY = "Unknown"
TEAMS_PER_GROUP = 4

POSITION_CATEGORIES = {
    "GK": "GK",
    "CB": "DF",
    "RB": "DF",
    "LB": "DF",
    "SW": "DF",
    "RWB": "DF",
    "LWB": "DF",
    "DF": "DF",
    "DM": "MF",
    "CM": "MF",
    "AM": "MF",
    "RM": "MF",
    "LM": "MF",
    "MF": "MF",
    "CF": "FW",
    "ST": "FW",
    "LW": "FW",
    "RW": "FW",
    "SS": "FW",
    "FW": "FW",
}

SCORE_PATTERN = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")


class ReferenceDataError(ValueError):
    pass


def position_category(position: str) -> str:
    return POSITION_CATEGORIES.get(str(position).strip().upper(), UNKNOWN_CATEGORY)


def parse_score(text: str) -> Tuple[int, int]:
    match = SCORE_PATTERN.match(str(text or ""))
    if match is None:
        raise ValueError(f"Unparseable score: {text!r}")
    return int(match.group(1)), int(match.group(2))


def match_number(match_id: str) -> int:
    digits = re.sub(r"\D", "", str(match_id))
    return int(digits) if digits else 0


@dataclass(frozen=True)
class Player:
    number: int
    name: str
    position: str

    @property
    def category(self) -> str:
        return position_category(self.position)


@dataclass(frozen=True)
class Team:
    key: str
    name: str
    group: Optional[str]
    squad: Tuple[Player, ...] = ()

    def player(self, number: int) -> Optional[Player]:
        for p in self.squad:
            if p.number == number:
                return p
        return None

    def find_player(self, name: str) -> Optional[Player]:
        target = name.casefold()
        for p in self.squad:
            if p.name.casefold() == target:
                return p
        return None


@dataclass(frozen=True)
class GoalEvent:
    team: str
    player: str
    minute: str
    type: Optional[str] = None

    @property
    def is_own_goal(self) -> bool:
        return (self.type or "").casefold() == OWN_GOAL.casefold()


@dataclass(frozen=True)
class CardEvent:
    team: str
    player: str
    card: str
    minute: str

    @property
    def is_red(self) -> bool:
        return self.card.casefold() == "red"


@dataclass(frozen=True)
class Lineup:
    team: str
    formation: str
    starters: Tuple[int, ...]
    subs: Tuple[int, ...] = ()


@dataclass(frozen=True)
class Match:
    """A scheduled fixture and, once played, its result.

    Scores are "A-B" strings from team1's point of view. `penalties` holds the
    shootout as "<identity> <a>-<b> <identity>", where an identity is either a
    team key or a display name.
    """

    match_id: str
    round: str
    group: Optional[str]
    team1: str
    team2: str
    score: str
    half_time_score: Optional[str] = None
    extra_time_score: Optional[str] = None
    penalties: Optional[str] = None
    date: Optional[str] = None
    venue: Optional[str] = None
    goals: Tuple[GoalEvent, ...] = ()
    cards: Tuple[CardEvent, ...] = ()
    lineups: Tuple[Lineup, ...] = ()

    @property
    def number(self) -> int:
        return match_number(self.match_id)

    @property
    def is_group_stage(self) -> bool:
        return self.round == GROUP_STAGE

    @property
    def teams(self) -> Tuple[str, str]:
        return self.team1, self.team2

    def involves(self, team_key: str) -> bool:
        return team_key in (self.team1, self.team2)

    def opponent_of(self, team_key: str) -> Optional[str]:
        if team_key == self.team1:
            return self.team2
        if team_key == self.team2:
            return self.team1
        return None

    def lineup_for(self, team_key: str) -> Optional[Lineup]:
        for lineup in self.lineups:
            if lineup.team == team_key:
                return lineup
        return None


@dataclass(frozen=True)
class GameRound:
    order: int
    name: str
    match_ids: Tuple[str, ...]
    is_group_stage: bool


@dataclass(frozen=True)
class FormationRequirements:
    name: str
    gk: int
    df: int
    mf: int
    fw: int
    description: str = ""

    def counts(self) -> Dict[str, int]:
        return {"GK": self.gk, "DF": self.df, "MF": self.mf, "FW": self.fw}

    @property
    def total(self) -> int:
        return self.gk + self.df + self.mf + self.fw


@dataclass(frozen=True)
class RoundOf16Slot:
    match_id: str
    team1_slot: str
    team2_slot: str
    team1_historical: str
    team2_historical: str


@dataclass
class ReferenceData:
    teams: Dict[str, Team]
    groups: Dict[str, Tuple[str, ...]]
    formations: Dict[str, FormationRequirements]
    matches: Tuple[Match, ...]
    game_rounds: Tuple[GameRound, ...]
    round_of_16_slots: Dict[str, RoundOf16Slot]
    _matches_by_id: Dict[str, Match] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self._matches_by_id = {m.match_id: m for m in self.matches}

    def match_by_id(self, match_id: str) -> Match:
        try:
            return self._matches_by_id[match_id]
        except KeyError:
            raise KeyError(f"Unknown match id: {match_id}") from None

    def has_match(self, match_id: str) -> bool:
        return match_id in self._matches_by_id

    def team_name(self, team_key: Optional[str]) -> str:
        if team_key is None:
            return ""
        team = self.teams.get(team_key)
        return team.name if team else team_key

    def group_of(self, team_key: str) -> Optional[str]:
        team = self.teams.get(team_key)
        return team.group if team else None

    def round_index_of(self, match_id: str) -> Optional[int]:
        for idx, game_round in enumerate(self.game_rounds):
            if match_id in game_round.match_ids:
                return idx
        return None

    def matches_for_round(self, round_index: int) -> List[Match]:
        if round_index < 0 or round_index >= len(self.game_rounds):
            return []
        return [self.match_by_id(mid) for mid in self.game_rounds[round_index].match_ids]

    def user_match_for_round(self, round_index: int, team_key: str) -> Optional[Match]:
        for match in self.matches_for_round(round_index):
            if match.involves(team_key):
                return match
        return None

    def group_matches(self, group: str) -> List[Match]:
        return [m for m in self.matches if m.is_group_stage and m.group == group]

    @property
    def last_group_round_index(self) -> int:
        indices = [i for i, r in enumerate(self.game_rounds) if r.is_group_stage]
        return max(indices) if indices else -1


def _read_csv(path: Path, required: Iterable[str]) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing reference data file: {path}")
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    missing = set(required).difference(df.columns)
    if missing:
        raise ReferenceDataError(f"{path.name} missing columns: {sorted(missing)}")
    for col in df.columns:
        df[col] = df[col].str.strip()
    return df


def _optional(value: str) -> Optional[str]:
    return value if value else None


def _parse_numbers(text: str, source: str) -> Tuple[int, ...]:
    try:
        return tuple(int(tok) for tok in str(text).split())
    except ValueError:
        raise ReferenceDataError(f"Invalid jersey numbers in {source}: {text!r}") from None


def _parse_bool(val: str) -> bool:
    return str(val).strip().lower() in {"1", "true", "yes", "y"}


def load_players(path: Path) -> Dict[str, List[Player]]:
    df = _read_csv(path, {"team", "number", "name", "position"})
    squads: Dict[str, List[Player]] = {}
    for row in df.to_dict(orient="records"):
        try:
            number = int(row["number"])
        except ValueError:
            raise ReferenceDataError(
                f"Invalid jersey number for {row['name']}: {row['number']!r}"
            ) from None
        squad = squads.setdefault(row["team"], [])
        if any(p.number == number for p in squad):
            raise ReferenceDataError(f"Duplicate jersey number {number} for {row['team']}")
        squad.append(Player(number=number, name=row["name"], position=row["position"]))
    return squads


def load_teams(path: Path, squads: Dict[str, List[Player]]) -> Dict[str, Team]:
    df = _read_csv(path, {"key", "name", "group"})
    if df["key"].duplicated().any():
        dupes = df.loc[df["key"].duplicated(), "key"].unique().tolist()
        raise ReferenceDataError(f"Duplicate team keys: {sorted(dupes)}")
    teams: Dict[str, Team] = {}
    for row in df.to_dict(orient="records"):
        key = row["key"]
        teams[key] = Team(
            key=key,
            name=row["name"],
            group=_optional(row["group"]),
            squad=tuple(squads.get(key, [])),
        )
    unknown = set(squads).difference(teams)
    if unknown:
        raise ReferenceDataError(f"Players reference unknown teams: {sorted(unknown)}")
    return teams


def load_formations(path: Path) -> Dict[str, FormationRequirements]:
    df = _read_csv(path, {"formation", "GK", "DF", "MF", "FW"})
    formations: Dict[str, FormationRequirements] = {}
    for row in df.to_dict(orient="records"):
        try:
            req = FormationRequirements(
                name=row["formation"],
                gk=int(row["GK"]),
                df=int(row["DF"]),
                mf=int(row["MF"]),
                fw=int(row["FW"]),
                description=row.get("description", ""),
            )
        except ValueError:
            raise ReferenceDataError(f"Invalid counts for formation {row['formation']}") from None
        if req.total != 11:
            raise ReferenceDataError(
                f"Formation {req.name} lists {req.total} players, expected 11"
            )
        formations[req.name] = req
    return formations


def load_goals(path: Path) -> Dict[str, List[GoalEvent]]:
    df = _read_csv(path, {"match_id", "team", "player", "minute"})
    goals: Dict[str, List[GoalEvent]] = {}
    for row in df.to_dict(orient="records"):
        goals.setdefault(row["match_id"], []).append(
            GoalEvent(
                team=row["team"],
                player=row["player"],
                minute=row["minute"],
                type=_optional(row.get("type", "")),
            )
        )
    return goals


def load_cards(path: Path) -> Dict[str, List[CardEvent]]:
    if not path.exists():
        return {}
    df = _read_csv(path, {"match_id", "team", "player", "card", "minute"})
    cards: Dict[str, List[CardEvent]] = {}
    for row in df.to_dict(orient="records"):
        cards.setdefault(row["match_id"], []).append(
            CardEvent(
                team=row["team"],
                player=row["player"],
                card=row["card"],
                minute=row["minute"],
            )
        )
    return cards


def load_lineups(path: Path) -> Dict[str, List[Lineup]]:
    if not path.exists():
        return {}
    df = _read_csv(path, {"match_id", "team", "formation", "starters"})
    lineups: Dict[str, List[Lineup]] = {}
    for row in df.to_dict(orient="records"):
        source = f"lineup {row['match_id']}/{row['team']}"
        lineups.setdefault(row["match_id"], []).append(
            Lineup(
                team=row["team"],
                formation=row["formation"],
                starters=_parse_numbers(row["starters"], source),
                subs=_parse_numbers(row.get("subs", ""), source),
            )
        )
    return lineups


def load_matches(
    path: Path,
    goals: Dict[str, List[GoalEvent]],
    cards: Dict[str, List[CardEvent]],
    lineups: Dict[str, List[Lineup]],
) -> Tuple[Match, ...]:
    required = {"match_id", "round", "group", "team1", "team2", "score"}
    df = _read_csv(path, required)
    if df["match_id"].duplicated().any():
        dupes = df.loc[df["match_id"].duplicated(), "match_id"].unique().tolist()
        raise ReferenceDataError(f"Duplicate match ids: {sorted(dupes)}")
    matches: List[Match] = []
    for row in df.to_dict(orient="records"):
        match_id = row["match_id"]
        try:
            parse_score(row["score"])
        except ValueError:
            raise ReferenceDataError(f"Invalid score for {match_id}: {row['score']!r}") from None
        matches.append(
            Match(
                match_id=match_id,
                round=row["round"],
                group=_optional(row["group"]),
                team1=row["team1"],
                team2=row["team2"],
                score=row["score"],
                half_time_score=_optional(row.get("half_time_score", "")),
                extra_time_score=_optional(row.get("extra_time_score", "")),
                penalties=_optional(row.get("penalties", "")),
                date=_optional(row.get("date", "")),
                venue=_optional(row.get("venue", "")),
                goals=tuple(goals.get(match_id, [])),
                cards=tuple(cards.get(match_id, [])),
                lineups=tuple(lineups.get(match_id, [])),
            )
        )
    return tuple(sorted(matches, key=lambda m: m.number))


def load_game_rounds(path: Path) -> Tuple[GameRound, ...]:
    df = _read_csv(path, {"order", "name", "is_group_stage", "match_ids"})
    rounds = [
        GameRound(
            order=int(row["order"]),
            name=row["name"],
            match_ids=tuple(row["match_ids"].split()),
            is_group_stage=_parse_bool(row["is_group_stage"]),
        )
        for row in df.to_dict(orient="records")
    ]
    return tuple(sorted(rounds, key=lambda r: r.order))


def load_round_of_16_slots(path: Path) -> Dict[str, RoundOf16Slot]:
    required = {"match_id", "team1_slot", "team2_slot", "team1_historical", "team2_historical"}
    df = _read_csv(path, required)
    return {
        row["match_id"]: RoundOf16Slot(
            match_id=row["match_id"],
            team1_slot=row["team1_slot"],
            team2_slot=row["team2_slot"],
            team1_historical=row["team1_historical"],
            team2_historical=row["team2_historical"],
        )
        for row in df.to_dict(orient="records")
    }


def _validate(reference: ReferenceData) -> None:
    for match in reference.matches:
        for key in match.teams:
            if key not in reference.teams:
                raise ReferenceDataError(f"Match {match.match_id} references unknown team {key}")
    for game_round in reference.game_rounds:
        for match_id in game_round.match_ids:
            if not reference.has_match(match_id):
                raise ReferenceDataError(
                    f"Round {game_round.name} references unknown match {match_id}"
                )
    for group, keys in reference.groups.items():
        if len(keys) != TEAMS_PER_GROUP:
            raise ReferenceDataError(f"Group {group} must have {TEAMS_PER_GROUP} teams")
    for match_id, slot in reference.round_of_16_slots.items():
        match = reference.match_by_id(match_id)
        if (slot.team1_historical, slot.team2_historical) != match.teams:
            logger.warning(
                "Slot table for %s lists %s-%s but the schedule has %s-%s",
                match_id,
                slot.team1_historical,
                slot.team2_historical,
                match.team1,
                match.team2,
            )


def load_reference_data(path: Optional[Path] = None) -> ReferenceData:
    base = Path(path) if path is not None else REFERENCE_DATA_DIR
    squads = load_players(base / PLAYERS_FILE)
    teams = load_teams(base / TEAMS_FILE, squads)
    groups: Dict[str, List[str]] = {}
    for team in teams.values():
        if team.group:
            groups.setdefault(team.group, []).append(team.key)
    matches = load_matches(
        base / MATCHES_FILE,
        load_goals(base / GOALS_FILE),
        load_cards(base / CARDS_FILE),
        load_lineups(base / LINEUPS_FILE),
    )
    reference = ReferenceData(
        teams=teams,
        groups={g: tuple(keys) for g, keys in sorted(groups.items())},
        formations=load_formations(base / FORMATIONS_FILE),
        matches=matches,
        game_rounds=load_game_rounds(base / GAME_ROUNDS_FILE),
        round_of_16_slots=load_round_of_16_slots(base / ROUND_OF_16_SLOTS_FILE),
    )
    _validate(reference)
    logger.debug(
        "Loaded %d teams, %d matches and %d rounds from %s",
        len(reference.teams),
        len(reference.matches),
        len(reference.game_rounds),
        base,
    )
    return reference
