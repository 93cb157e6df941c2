"""
Unit tests for the text renderers and embed builders.
"""

from domain.errors import AliasCollision, MatchNotReady, StageNotFound
from renderers.bracket_view import BracketView
from renderers.embeds import Embeds
from renderers.leaderboard_view import LeaderboardOptions, LeaderboardView
from services import notify_service as events
from services.stats_service import StatsService

from conftest import build, names, play_out, report


def test_bracket_view_sections_and_codes():
    state = build("double_elimination", ["Ann", "Bob", "Cy", "Dee"])
    out = BracketView().render(state)

    assert out.startswith("```text\n=== T (pending) ===")
    assert out.endswith("\n```")
    for section in ("-- WINNERS --", "-- LOSERS --", "-- GRAND FINALS --"):
        assert section in out
    assert "W1-01  [1] Ann" in out
    assert "[4] Dee" in out
    assert "GF-02" in out


def test_bracket_view_marks_results_and_hides_unused_reset():
    state = build("double_elimination", names(4))
    report(state, 1, 1)
    mid = BracketView().render(state)
    assert "✅ W:P1 2-1" in mid
    assert "TBD" in mid

    play_out(state)
    done = BracketView().render(state, include_losers=False)
    assert "(completed)" in done
    assert "-- LOSERS --" not in done
    assert "GF-01" in done
    assert "GF-02" not in done


def test_bracket_view_shows_byes():
    state = build("single_elimination", names(5))
    out = BracketView(name_width=10).render(state, title="Five")
    assert "=== Five (pending) ===" in out
    assert "BYE" in out
    assert "⏭" in out


def test_bracket_view_trims_long_output():
    state = build("round_robin", names(12))
    out = BracketView().render(state, max_lines=30)
    lines = out.splitlines()
    assert "..." in lines
    # fence lines plus the trimmed body
    assert len(lines) <= 32


def test_leaderboard_table():
    state = build("single_elimination", names(4))
    report(state, 1, 1)
    rows = StatsService().compute_standings(state)
    progress = StatsService().compute_progress(state)

    out = LeaderboardView().render(rows, progress=progress)
    lines = out.splitlines()
    assert lines[1] == "=== Standings ==="
    assert lines[2].startswith("#   Seed  Name")
    assert lines[4].startswith("1   [1]   P1")
    assert "100%" in lines[4]
    assert "Matches: 1/3 settled (1 played, 0 byes)" in out


def test_leaderboard_row_limit_without_seed():
    state = build("round_robin", names(6))
    rows = StatsService().compute_standings(state)
    out = LeaderboardView().render(rows, opts=LeaderboardOptions(max_rows=4, show_seed=False, title="Pool"))
    assert "=== Pool ===" in out
    assert "Seed" not in out
    assert "… +2 more" in out


def test_error_embeds_by_kind():
    em = Embeds()
    assert em.for_error(StageNotFound("Stage 3 not found.")).title == "Not found"
    assert em.for_error(MatchNotReady("Match W2-01 is waiting, not ready.")).title == "Not allowed right now"
    e = em.for_error(AliasCollision("taken"))
    assert e.title == "Bracket error"
    assert e.description == "taken"
    assert e.footer.text == "Bracket Engine"


def test_event_embeds():
    state = build("single_elimination", ["Ann", "Bob"])
    em = Embeds()

    created = em.for_event(events.tournament_created(state))
    assert created.title == "New bracket: T"
    assert created.fields[0].name == "Participants (2)"
    assert created.fields[0].value == "1. Ann\n2. Bob"

    report(state, 1, 2)
    m = state.matches[1]
    updated = em.for_event(events.match_updated(state, m))
    assert updated.title == "Match W1-01 reported"
    assert updated.description == "**Ann** 1 - 2 **Bob**"
    assert updated.fields[0].value == "Bob"

    completed = em.for_event(events.tournament_completed(state))
    assert "Bob" in completed.description

    err = em.for_event(events.tournament_error(1, "boom"))
    assert err.title == "Stage 1 error"
    assert err.description == "boom"
