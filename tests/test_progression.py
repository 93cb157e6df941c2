"""
Unit tests for result reporting and propagation on in-memory stages.
"""

import pytest

from domain.enums import GroupKind, MatchResult, MatchStatus, StageStatus
from domain.errors import InvalidResult, MatchNotFound, MatchNotReady, StageCompleted
from domain.models import MatchUpdate, SideUpdate
from services.progression_service import ProgressionService, decide_winner

from conftest import build, names, play_out, ready, report


def _by_name(state, name):
    return next(p.id for p in state.participants if p.name == name)


def _match_of(state, pid):
    return next(m for m in ready(state) if m.involves(pid))


def _beat(state, winner, loser=None):
    """Report `winner` beating their current READY opponent."""
    wid = _by_name(state, winner)
    m = _match_of(state, wid)
    if loser is not None:
        assert m.involves(_by_name(state, loser))
    return report(state, m.id, 1 if m.slot1.participant_id == wid else 2)


def test_four_player_single_elimination_scenario():
    state = build("single_elimination", ["A", "B", "C", "D"])

    _beat(state, "A")
    _beat(state, "C")
    final = state.matches[3]
    assert final.status == MatchStatus.READY
    assert {state.participant_name(final.slot1.participant_id), state.participant_name(final.slot2.participant_id)} == {"A", "C"}
    assert state.stage.status == StageStatus.RUNNING

    prog = _beat(state, "A", "C")
    assert prog.completed
    assert state.stage.status == StageStatus.COMPLETED
    assert state.participant_name(state.stage.winner_id) == "A"


def test_first_report_moves_stage_to_running():
    state = build("single_elimination", names(4))
    assert state.stage.status == StageStatus.PENDING
    prog = report(state, 1, 1)
    assert prog.stage_changed
    assert state.stage.status == StageStatus.RUNNING


def test_report_touches_only_the_match_and_its_targets():
    state = build("double_elimination", names(8))
    m = state.matches[1]
    prog = report(state, 1, 2)
    assert prog.touched == {1, m.forward_winner.match_id, m.forward_loser.match_id}
    assert m.score1 == 1 and m.score2 == 2 and m.winner_slot == 2


def test_round_progress_counts_byes():
    state = build("single_elimination", names(5))
    r1 = state.matches[2].round_id  # W1-02 is the only real first-round match
    prog = report(state, 2, 1)
    assert prog.round_progress.round_id == r1
    assert (prog.round_progress.completed, prog.round_progress.total) == (4, 4)
    assert prog.round_progress.percent == 100.0


@pytest.mark.parametrize("n", range(2, 20))
def test_single_elimination_completes_only_on_the_last_report(n):
    state = build("single_elimination", names(n))
    engine = ProgressionService()
    while True:
        rs = ready(state)
        assert rs, "ran out of matches before the stage completed"
        prog = report(state, rs[0].id, 2, engine)
        if prog.completed:
            break
        assert state.stage.status != StageStatus.COMPLETED
    assert state.stage.winner_id is not None
    assert not ready(state)


@pytest.mark.parametrize("n", range(2, 18))
@pytest.mark.parametrize("slot", [1, 2])
def test_double_elimination_always_finishes(n, slot):
    state = build("double_elimination", names(n))
    play_out(state, pick=lambda m: slot)
    assert state.stage.status == StageStatus.COMPLETED
    assert state.stage.winner_id is not None
    assert all(m.status in (MatchStatus.COMPLETED, MatchStatus.BYE) for m in state.matches.values())


def _grand_finals(state):
    gf = state.group_by_kind(GroupKind.GF)
    rounds = state.rounds_of(gf.id)
    return state.round_matches(rounds[0].id)[0], state.round_matches(rounds[1].id)[0]


def _play_to_grand_final(state):
    engine = ProgressionService()
    gf1, _ = _grand_finals(state)
    while gf1.status != MatchStatus.READY:
        report(state, ready(state)[0].id, 1, engine)
    return gf1


def test_grand_final_reset_when_losers_side_wins():
    state = build("double_elimination", ["A", "B", "C", "D"], grand_final="double")
    gf1 = _play_to_grand_final(state)
    _, reset = _grand_finals(state)

    wb_champ, lb_champ = gf1.slot1.participant_id, gf1.slot2.participant_id
    prog = report(state, gf1.id, 2)

    assert prog.reset_activated and not prog.completed
    assert state.stage.status == StageStatus.RUNNING
    assert reset.status == MatchStatus.READY
    assert (reset.slot1.participant_id, reset.slot2.participant_id) == (wb_champ, lb_champ)

    prog = report(state, reset.id, 2)
    assert prog.completed
    assert state.stage.winner_id == lb_champ


def test_grand_final_ends_stage_when_winners_side_wins():
    state = build("double_elimination", ["A", "B", "C", "D"], grand_final="double")
    gf1 = _play_to_grand_final(state)
    _, reset = _grand_finals(state)

    prog = report(state, gf1.id, 1)

    assert prog.completed
    assert state.stage.winner_id == gf1.slot1.participant_id
    assert reset.status == MatchStatus.BYE
    assert reset.winner_id is None
    assert reset.id in prog.touched


def test_simple_grand_final_never_resets():
    state = build("double_elimination", ["A", "B", "C", "D"], grand_final="simple")
    gf = state.group_by_kind(GroupKind.GF)
    gf1 = state.round_matches(state.rounds_of(gf.id)[0].id)[0]
    while gf1.status != MatchStatus.READY:
        report(state, ready(state)[0].id, 1)

    prog = report(state, gf1.id, 2)
    assert prog.completed
    assert state.stage.winner_id == gf1.slot2.participant_id


def test_loser_drops_into_losers_bracket():
    state = build("double_elimination", names(4))
    m1 = state.matches[1]
    loser = m1.slot2.participant_id
    report(state, 1, 1)
    target = state.matches[m1.forward_loser.match_id]
    assert target.slot(m1.forward_loser.slot).participant_id == loser
    assert state.group(target.group_id).kind == GroupKind.L


def test_round_robin_completes_when_every_match_is_played():
    state = build("round_robin", ["A", "B", "C", "D"])
    # the lowest-id participant in each match wins, so A goes 3-0
    engine = ProgressionService()
    ids = sorted(state.matches)
    for mid in ids[:-1]:
        m = state.matches[mid]
        prog = report(state, mid, 1 if m.slot1.participant_id < m.slot2.participant_id else 2, engine)
        assert not prog.completed
    last = state.matches[ids[-1]]
    prog = report(state, last.id, 1 if last.slot1.participant_id < last.slot2.participant_id else 2, engine)
    assert prog.completed
    assert state.participant_name(state.stage.winner_id) == "A"


# -------------------------
# Failure modes
# -------------------------

def test_unknown_match():
    state = build("single_elimination", names(4))
    with pytest.raises(MatchNotFound) as ei:
        report(state, 42, 1)
    assert ei.value.match_id == 42 and ei.value.stage_id == 1


def test_waiting_match_is_not_ready():
    state = build("single_elimination", names(4))
    with pytest.raises(MatchNotReady):
        report(state, 3, 1)


def test_completed_match_cannot_be_reported_twice():
    state = build("single_elimination", names(4))
    report(state, 1, 1)
    with pytest.raises(MatchNotReady):
        report(state, 1, 2)


def test_completed_stage_rejects_reports():
    state = build("single_elimination", names(2))
    report(state, 1, 1)
    with pytest.raises(StageCompleted):
        report(state, 1, 1)


def test_failed_report_leaves_match_untouched():
    state = build("single_elimination", names(4))
    with pytest.raises(InvalidResult):
        ProgressionService().apply(state, 1, MatchUpdate.scores(1, 1))
    m = state.matches[1]
    assert m.status == MatchStatus.READY and m.score1 is None and m.winner_slot is None
    assert state.stage.status == StageStatus.PENDING


@pytest.mark.parametrize(
    "update, expected",
    [
        (MatchUpdate.scores(3, 1), 1),
        (MatchUpdate.scores(0, 2), 2),
        (MatchUpdate.winner(2), 2),
        (MatchUpdate.winner(1, score1=1, score2=1), 1),
        (MatchUpdate(SideUpdate(result=MatchResult.LOSS), SideUpdate()), 2),
        # explicit results win over scores
        (MatchUpdate(SideUpdate(0, MatchResult.WIN), SideUpdate(5)), 1),
    ],
)
def test_decide_winner(update, expected):
    assert decide_winner(update, stage_id=1, match_id=1) == expected


@pytest.mark.parametrize(
    "update",
    [
        MatchUpdate.scores(2, 2),
        MatchUpdate(SideUpdate(score=1), SideUpdate()),
        MatchUpdate(),
        MatchUpdate(SideUpdate(result=MatchResult.WIN), SideUpdate(result=MatchResult.WIN)),
        MatchUpdate.scores(-1, 0),
    ],
)
def test_decide_winner_rejects(update):
    with pytest.raises(InvalidResult):
        decide_winner(update, stage_id=1, match_id=1)


def test_update_from_mapping():
    upd = MatchUpdate.from_mapping({"opponent1": {"score": "3", "result": "WIN"}, "opponent2": {"score": 0}})
    assert upd.opponent1 == SideUpdate(3, MatchResult.WIN)
    with pytest.raises(InvalidResult):
        MatchUpdate.from_mapping({"opponent1": {"result": "draw"}})
