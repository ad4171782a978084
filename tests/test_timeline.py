from __future__ import annotations

import pytest
from conftest import make_match

from wc94.timeline import (
    PlaybackPhase,
    parse_minute,
    penalty_kick_sequence,
    playback,
    score_from_events,
)


def test_parse_minute() -> None:
    assert parse_minute("61") == 61
    assert parse_minute("45+2") == 45
    assert parse_minute("90'") == 90
    assert parse_minute("") is None
    assert parse_minute(None) is None


def test_own_goal_counts_for_the_opponent(reference) -> None:
    m15 = reference.match_by_id("M15")
    assert score_from_events("USA", "COL", m15.goals) == (2, 1)
    assert score_from_events("USA", "COL", m15.goals, up_to_minute=45) == (1, 0)


def test_regulation_playback(reference) -> None:
    ticks = list(playback(reference.match_by_id("M1")))
    assert len(ticks) == 151
    assert all(t.phase is PlaybackPhase.REGULATION for t in ticks[:-1])
    assert ticks[-1].phase is PlaybackPhase.ENDED
    assert ticks[-1].score == (1, 0)
    assert ticks[-2].elapsed_ms == 15000

    goal_ticks = [i for i, t in enumerate(ticks) if t.goals]
    assert len(goal_ticks) == 1
    i = goal_ticks[0]
    assert ticks[i].minute >= 61
    assert ticks[i - 1].score == (0, 0)
    assert ticks[i].score == (1, 0)
    assert [c.player for t in ticks for c in t.cards] == ["Marco Etcheverry"]


def test_playback_rate(reference) -> None:
    ticks = list(playback(reference.match_by_id("M1"), base_duration_ms=3000, updates_per_second=5))
    assert len(ticks) == 16
    with pytest.raises(ValueError):
        list(playback(reference.match_by_id("M1"), base_duration_ms=0))
    with pytest.raises(ValueError):
        list(playback(reference.match_by_id("M1"), updates_per_second=0))


def test_extra_time_playback(reference) -> None:
    ticks = list(playback(reference.match_by_id("M43")))
    phases = [t.phase for t in ticks]
    assert phases.count(PlaybackPhase.REGULATION) == 150
    assert phases.count(PlaybackPhase.EXTRA_TIME) == 50
    assert PlaybackPhase.PENALTIES not in phases
    regulation_end = [t for t in ticks if t.phase is PlaybackPhase.REGULATION][-1]
    assert regulation_end.score == (1, 1)
    assert ticks[-1].minute == 120
    assert ticks[-1].score == (1, 2)


def test_shootout_playback(reference) -> None:
    ticks = list(playback(reference.match_by_id("M48")))
    kicks = [t.kick for t in ticks if t.phase is PlaybackPhase.PENALTIES]
    assert len(kicks) >= 10
    assert kicks[0].team_key == "ROU"
    assert kicks[1].team_key == "SWE"
    assert kicks[-1].shootout_score == (4, 5)
    assert all(t.score == (2, 2) for t in ticks if t.phase is PlaybackPhase.PENALTIES)
    assert ticks[-1].phase is PlaybackPhase.ENDED
    assert ticks[-1].score == (2, 2)


def test_kick_sequence_respects_early_stop(reference) -> None:
    kicks = penalty_kick_sequence(reference.match_by_id("M52"))
    assert kicks[-1].shootout_score == (3, 2)
    assert [k.order for k in kicks] == list(range(1, len(kicks) + 1))
    assert {k.outcome for k in kicks} <= {"SCORED", "MISSED"}
    # Settled inside the first five kicks each.
    assert len(kicks) <= 10


def test_kick_sequence_with_display_names(reference, caplog) -> None:
    m44 = reference.match_by_id("M44")
    kicks = penalty_kick_sequence(m44, reference.teams)
    assert kicks[-1].shootout_score == (1, 3)
    assert penalty_kick_sequence(m44) == []
    assert any("Cannot replay shootout" in r.getMessage() for r in caplog.records)


def test_unreachable_shootout_is_skipped() -> None:
    match = make_match(
        "AAA", "BBB", "0-0", round="Final", extra_time_score="0-0", penalties="AAA 5-0 BBB"
    )
    assert penalty_kick_sequence(match) == []
    assert penalty_kick_sequence(make_match()) == []
