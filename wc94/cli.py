from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from wc94.bracket import bracket_frame
from wc94.outcome import final_score
from wc94.progression import HISTORICAL, MODES, Phase, RoundProgressionController, SessionState
from wc94.reference import REFERENCE_DATA_DIR, ReferenceData, load_reference_data
from wc94.squad import auto_fill_by_formation, auto_fill_historical
from wc94.standings import standings_frame
from wc94.stats import top_scorers, tournament_pulse

TOP_SCORERS_SHOWN = 5


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="wc94",
        description="Manage one nation through the 1994 World Cup",
    )
    p.add_argument("--team", default=None, help="Key of the team to manage, e.g. BRA")
    p.add_argument(
        "--mode",
        choices=MODES,
        default=HISTORICAL,
        help="Replay history where possible or simulate every match (default: historical)",
    )
    p.add_argument("--seed", type=int, default=None, help="Seed for lots and simulation")
    p.add_argument("--formation", default="4-4-2", help="Formation for your team (default: 4-4-2)")
    p.add_argument(
        "--data-dir",
        default=str(REFERENCE_DATA_DIR),
        help="Directory holding the reference CSV files",
    )
    p.add_argument("--list-teams", action="store_true", help="List team keys and exit")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return p


def _describe(reference: ReferenceData, match) -> str:
    line = (
        f"{match.match_id:>4}  {reference.team_name(match.team1)} {final_score(match)} "
        f"{reference.team_name(match.team2)}"
    )
    if match.extra_time_score:
        line += " (a.e.t.)"
    if match.penalties:
        line += f", pens {match.penalties}"
    return line


def _print_match_report(reference: ReferenceData, match) -> None:
    print(_describe(reference, match))
    for goal in match.goals:
        suffix = f" ({goal.type})" if goal.type else ""
        print(f"      {goal.minute:>5}'  {goal.player} [{goal.team}]{suffix}")


def _pick_squad(controller: RoundProgressionController, state: SessionState, formation: str):
    reference = controller.reference
    team = reference.teams[state.user_team_key]
    fixture = state.current_match
    if controller.mode == HISTORICAL and fixture is not None:
        historical = reference.match_by_id(fixture.match_id)
        if historical.involves(team.key):
            selection = auto_fill_historical(historical, team)
            if selection is not None:
                return selection
    return auto_fill_by_formation(team, formation, reference.formations)


def play_session(
    controller: RoundProgressionController,
    state: SessionState,
    formation: str,
) -> SessionState:
    reference = controller.reference
    while state.phase is not Phase.GAME_OVER:
        phase = state.phase
        if phase is Phase.AWAITING_ROUND_START:
            state = controller.dispatch(state, "start_tournament")
        elif phase is Phase.FIXTURES_SHOWN:
            print(f"\n=== {controller.current_round(state).name} ===")
            for fixture in controller.current_fixtures(state):
                print(
                    f"{fixture.match_id:>4}  {reference.team_name(fixture.team1)} v "
                    f"{reference.team_name(fixture.team2)}"
                )
            state = controller.dispatch(state, "go_to_match")
            if state.phase is Phase.FIXTURES_SHOWN:
                if state.notice:
                    print(state.notice)
                state = controller.dispatch(state, "simulate_round")
        elif phase is Phase.PRE_GAME:
            state = controller.dispatch(state, "go_to_squad_selection")
        elif phase is Phase.SQUAD_SELECT:
            selection = _pick_squad(controller, state, formation)
            state = controller.dispatch(state, "confirm_squad", selection=selection)
        elif phase is Phase.IN_PROGRESS:
            state = controller.dispatch(state, "finish_match")
        elif phase is Phase.AFTERMATH:
            print("\nYour match:")
            for record in state.pending_results:
                _print_match_report(reference, record)
            state = controller.dispatch(state, "continue_to_results")
        elif phase is Phase.ROUND_RESULTS:
            print("\nResults:")
            for record in controller.round_results(state):
                print(_describe(reference, record))
            state = controller.dispatch(state, "continue_")
        elif phase is Phase.STANDINGS:
            table = standings_frame(state.standings, state.processed_matches)
            print()
            print(table.drop(columns=["team_key"]).to_string(index=False))
            state = controller.dispatch(state, "continue_")
        elif phase is Phase.TOP_SCORERS:
            scorers = top_scorers(state.processed_matches, reference.teams)
            print("\nTop scorers:")
            print(scorers.head(TOP_SCORERS_SHOWN).to_string(index=False))
            state = controller.dispatch(state, "continue_")
        elif phase is Phase.PULSE:
            pulse = tournament_pulse(state.processed_matches, reference.teams)
            print(
                f"\n{pulse.matches_played} matches, {pulse.total_goals} goals "
                f"({pulse.average_goals} per match), {pulse.red_cards} red cards"
            )
            state = controller.dispatch(state, "continue_")
        elif phase is Phase.BRACKET:
            print("\nKnockout bracket:")
            print(bracket_frame(state.bracket).to_string(index=False))
            state = controller.dispatch(state, "continue_")
        else:
            state = controller.dispatch(state, "continue_")
        if state.phase is Phase.AWAITING_ROUND_START and phase is not Phase.AWAITING_ROUND_START:
            raise RuntimeError(f"Session was reset while in phase {phase.name}")
    return state


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    reference = load_reference_data(Path(args.data_dir))
    if args.list_teams:
        for key, team in sorted(reference.teams.items()):
            print(f"{key}  {team.name} (Group {team.group})")
        return 0
    if args.team is None:
        parser.error("--team is required unless --list-teams is given")
    team_key = args.team.strip().upper()
    if team_key not in reference.teams:
        parser.error(f"unknown team {args.team!r}; see --list-teams")
    if args.formation not in reference.formations:
        parser.error(
            f"unknown formation {args.formation!r}; choose from {sorted(reference.formations)}"
        )

    controller = RoundProgressionController(reference, mode=args.mode, seed=args.seed)
    state = controller.new_session(team_key)
    state = play_session(controller, state, args.formation)

    title, message = controller.game_over_details(state)
    print(f"\n{title}\n{message}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
