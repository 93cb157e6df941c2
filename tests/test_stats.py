"""
Unit tests for standings and progress.
"""

from domain.enums import MatchStatus
from services.stats_service import StatsService

from conftest import build, names, report


def test_standings_before_any_report():
    state = build("single_elimination", names(4))
    rows = StatsService().compute_standings(state)
    assert [r.participant.seed_position for r in rows] == [1, 2, 3, 4]
    assert all(r.played == 0 and r.win_rate == 0.0 for r in rows)


def test_byes_do_not_count_as_played():
    state = build("single_elimination", names(5))
    rows = StatsService().compute_standings(state)
    assert all(r.played == 0 for r in rows)

    progress = StatsService().compute_progress(state)
    assert (progress.total, progress.completed, progress.played, progress.byes) == (7, 3, 0, 3)
    assert progress.pending == 4
    assert progress.percent == round(3 * 100 / 7, 2)


def test_standings_order_wins_then_rate_then_seed():
    state = build("round_robin", ["A", "B", "C", "D"])
    # D beats everyone, then A beats B and C; C beats B
    winners = {frozenset("AD"): "D", frozenset("BD"): "D", frozenset("CD"): "D",
               frozenset("AB"): "A", frozenset("AC"): "A", frozenset("BC"): "C"}
    for m in list(state.matches.values()):
        n1 = state.participant_name(m.slot1.participant_id)
        n2 = state.participant_name(m.slot2.participant_id)
        w = winners[frozenset(n1 + n2)]
        report(state, m.id, 1 if w == n1 else 2)

    rows = StatsService().compute_standings(state)
    assert [(r.participant.name, r.wins, r.losses, r.played) for r in rows] == [
        ("D", 3, 0, 3),
        ("A", 2, 1, 3),
        ("C", 1, 2, 3),
        ("B", 0, 3, 3),
    ]
    assert rows[1].win_rate == 2 / 3
    assert state.participant_name(state.stage.winner_id) == "D"


def test_win_rate_breaks_equal_wins():
    state = build("single_elimination", names(4))
    report(state, 1, 1)  # P1 beats P4
    report(state, 2, 1)  # P2 beats P3
    report(state, 3, 2)  # P2 beats P1

    rows = StatsService().compute_standings(state)
    assert rows[0].participant.name == "P2"
    assert (rows[0].wins, rows[0].played) == (2, 2)
    # P1 has one win from two games; losers with no wins sort by seed
    assert rows[1].participant.name == "P1" and rows[1].win_rate == 0.5
    assert [r.participant.name for r in rows[2:]] == ["P3", "P4"]


def test_round_progress():
    state = build("single_elimination", names(4))
    r1 = state.matches[1].round_id
    assert StatsService().round_progress(state, r1).completed == 0
    report(state, 1, 1)
    rp = StatsService().round_progress(state, r1)
    assert (rp.completed, rp.total, rp.percent) == (1, 2, 50.0)


def test_progress_as_dict_keys():
    state = build("double_elimination", names(4))
    d = StatsService().compute_progress(state).as_dict()
    assert d["totalMatches"] == 7
    assert d["completedMatches"] == 0
    assert d["pendingMatches"] == 7
    assert sum(1 for m in state.matches.values() if m.status == MatchStatus.READY) == 2
