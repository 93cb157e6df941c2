"""
End-to-end tests for BracketService over the in-memory store.
"""

import asyncio

import pytest

from domain import graph
from domain.enums import MatchStatus, StageStatus
from domain.errors import (
    AliasCollision,
    InvalidResult,
    MalformedBracket,
    MatchNotFound,
    MatchNotReady,
    StageNotFound,
    UnknownFormat,
    ValidationError,
)
from domain.models import MatchUpdate
from services.bracket_service import BracketService
from services.notify_service import Notifier

from conftest import FailingSink, RecordingSink


def _win(slot):
    return {"opponent1": {"score": 2 if slot == 1 else 0}, "opponent2": {"score": 0 if slot == 1 else 2}}


def test_create_and_read_back(service, sink):
    async def run():
        view = await service.create_bracket("Spring Cup", "single_elimination", ["A", "B", "C", "D"], external_id="cup")
        await service.notifier.drain()

        d = (await service.get_stage(view.id)).as_dict()
        assert d == view.as_dict()
        assert d["stage"]["externalId"] == "cup"
        assert d["stage"]["status"] == "pending"
        assert [m["code"] for m in d["matches"]] == ["W1-01", "W1-02", "W2-01"]
        assert (d["matches"][0]["opponent1"]["name"], d["matches"][0]["opponent2"]["name"]) == ("A", "D")

        assert sink.names() == ["tournament-created"]
        assert sink.events[0].payload["participants"] == ["A", "B", "C", "D"]
        assert await service.resolve_stage("cup") == view.id
        assert await service.list_stages() == [view.id]

    asyncio.run(run())


def test_report_emits_update_then_progression(service, sink):
    async def run():
        view = await service.create_bracket("Cup", "single_elimination", ["A", "B", "C", "D"])
        match = await service.report_result(view.id, 1, _win(1))
        await service.notifier.drain()

        assert match.status == MatchStatus.COMPLETED
        assert sink.names() == ["tournament-created", "match-updated", "bracket-progression"]

        upd = sink.of("match-updated")[0].payload
        assert upd["match"] == "W1-01"
        assert upd["slot1Update"] == {"id": 1, "name": "A", "score": 2, "result": "win"}
        assert upd["slot2Update"]["result"] == "loss"

        prog = sink.of("bracket-progression")[0].payload
        assert (prog["completedMatches"], prog["totalMatches"], prog["progressPercent"]) == (1, 2, 50.0)

        _, final = await service.get_match(view.id, "W2-01")
        assert final.slot1.participant_id == 1
        assert (await service.get_stage(view.id)).state.stage.status == StageStatus.RUNNING

    asyncio.run(run())


def test_full_run_emits_completion(service, sink):
    async def run():
        view = await service.create_bracket("Duel", "single_elimination", ["A", "B"])
        await service.report_result(view.id, 1, MatchUpdate.winner(2))
        await service.notifier.drain()

        assert sink.names()[-1] == "tournament-completed"
        assert sink.of("tournament-completed")[0].payload["winner"] == {"id": 2, "name": "B"}

        stage = (await service.get_stage(view.id)).state.stage
        assert stage.status == StageStatus.COMPLETED
        assert stage.winner_id == 2

    asyncio.run(run())


def test_same_match_reported_twice_concurrently(service):
    async def run():
        view = await service.create_bracket("Cup", "double_elimination", ["A", "B", "C", "D"])
        results = await asyncio.gather(
            service.report_result(view.id, 1, _win(1)),
            service.report_result(view.id, 1, _win(2)),
            return_exceptions=True,
        )
        assert sum(1 for r in results if isinstance(r, MatchNotReady)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1

        _, m = await service.get_match(view.id, 1)
        assert m.winner_slot == 1

    asyncio.run(run())


def test_different_matches_reported_concurrently(service):
    async def run():
        view = await service.create_bracket("Cup", "double_elimination", ["A", "B", "C", "D"])
        await asyncio.gather(
            service.report_result(view.id, 1, _win(1)),
            service.report_result(view.id, 2, _win(2)),
        )
        _, w2 = await service.get_match(view.id, "W2-01")
        _, l1 = await service.get_match(view.id, "L1-01")
        assert (w2.slot1.participant_id, w2.slot2.participant_id) == (1, 3)
        assert (l1.slot1.participant_id, l1.slot2.participant_id) == (4, 2)
        assert w2.status == MatchStatus.READY and l1.status == MatchStatus.READY

    asyncio.run(run())


def test_failed_propagation_writes_nothing(service, sink, monkeypatch):
    async def run():
        view = await service.create_bracket("Cup", "single_elimination", ["A", "B", "C", "D"])
        before = (await service.get_stage(view.id)).as_dict()

        def broken(*args, **kwargs):
            raise MalformedBracket("forward target vanished", stage_id=view.id)

        monkeypatch.setattr(graph, "place", broken)
        with pytest.raises(MalformedBracket):
            await service.report_result(view.id, 1, _win(1))
        await service.notifier.drain()

        assert (await service.get_stage(view.id)).as_dict() == before
        errors = sink.of("tournament-error")
        assert len(errors) == 1
        assert errors[0].payload == {"stageId": view.id, "message": "forward target vanished"}

    asyncio.run(run())


def test_bad_results_are_rejected(service, sink):
    async def run():
        view = await service.create_bracket("Cup", "single_elimination", ["A", "B", "C", "D"])
        with pytest.raises(InvalidResult):
            await service.report_result(view.id, 1, {"opponent1": {"score": 1}, "opponent2": {"score": 1}})
        with pytest.raises(MatchNotReady):
            await service.report_result(view.id, 3, _win(1))
        with pytest.raises(MatchNotFound):
            await service.report_result(view.id, 99, _win(1))
        with pytest.raises(StageNotFound):
            await service.report_result(view.id + 1, 1, _win(1))
        before = (await service.get_stage(view.id)).as_dict()
        with pytest.raises(StageNotFound):
            await service.reset_stage(view.id + 1)
        assert (await service.get_stage(view.id)).as_dict() == before
        assert await service.list_stages() == [view.id]
        await service.notifier.drain()
        assert len(sink.of("tournament-error")) == 4
        assert not sink.of("match-updated")

    asyncio.run(run())


def test_failing_sink_does_not_fail_reports(store):
    async def run():
        failing, recording = FailingSink(), RecordingSink()
        svc = BracketService(store, notifier=Notifier(failing, recording))
        view = await svc.create_bracket("Cup", "single_elimination", ["A", "B"])
        await svc.report_result(view.id, 1, _win(1))
        await svc.notifier.drain()

        assert failing.calls == len(recording.events) == 4
        assert (await svc.get_stage(view.id)).state.stage.status == StageStatus.COMPLETED

    asyncio.run(run())


def test_external_id_collision_creates_nothing(service, store):
    async def run():
        await service.create_bracket("One", "round_robin", ["A", "B", "C"], external_id="cup")
        with pytest.raises(AliasCollision):
            await service.create_bracket("Two", "round_robin", ["A", "B", "C"], external_id="cup")
        assert store.count("stage") == 1
        assert store.count("stage_match") == 3

    asyncio.run(run())


def test_invalid_create_requests(service, store):
    async def run():
        with pytest.raises(ValidationError):
            await service.create_bracket("  ", "single_elimination", ["A", "B"])
        with pytest.raises(UnknownFormat):
            await service.create_bracket("Cup", "swiss", ["A", "B"])
        with pytest.raises(ValidationError):
            await service.create_bracket("Cup", "single_elimination", ["A"])
        assert store.count("stage") == 0

    asyncio.run(run())


def test_reset_returns_to_fresh_view(service):
    async def run():
        view = await service.create_bracket("Cup", "double_elimination", ["A", "B", "C", "D", "E"], external_id="de")
        fresh = view.as_dict()

        for _ in range(3):
            ready = [m for m in await service.get_matches(view.id) if m.status == MatchStatus.READY]
            await service.report_result(view.id, ready[0].id, _win(2))
        assert (await service.get_stage(view.id)).as_dict() != fresh

        await service.reset_stage(view.id)
        assert (await service.get_stage(view.id)).as_dict() == fresh

    asyncio.run(run())


def test_match_lookup(service):
    async def run():
        view = await service.create_bracket("Cup", "double_elimination", ["A", "B", "C", "D"])
        _, by_code = await service.get_match(view.id, "l1-01")
        _, by_id = await service.get_match(view.id, str(by_code.id))
        assert by_code == by_id

        _, gf = await service.get_match(view.id, "GF-01")
        assert gf.slot1.source_match_id == 3

        for ref in ("W9-01", "nonsense", 999):
            with pytest.raises(MatchNotFound):
                await service.get_match(view.id, ref)
        with pytest.raises(StageNotFound):
            await service.get_stage(view.id + 1)

    asyncio.run(run())


def test_reads_through_service(service):
    async def run():
        view = await service.create_bracket("Pool", "round_robin", ["A", "B", "C", "D"])
        matches = await service.get_matches(view.id)
        assert len(matches) == 6

        await service.report_result(view.id, matches[0].id, _win(1))
        progress = await service.compute_progress(view.id)
        assert (progress.completed, progress.total) == (1, 6)

        rows = await service.compute_standings(view.id)
        assert rows[0].wins == 1
        assert sum(r.played for r in rows) == 2

    asyncio.run(run())


def test_stage_locks_are_released(service):
    async def run():
        for missing in range(100, 150):
            with pytest.raises(StageNotFound):
                await service.report_result(missing, 1, _win(1))
        assert len(service.locks) == 0

        view = await service.create_bracket("Cup", "double_elimination", ["A", "B", "C", "D"])
        await asyncio.gather(
            service.report_result(view.id, 1, _win(1)),
            service.report_result(view.id, 1, _win(2)),
            service.report_result(view.id, 2, _win(1)),
            return_exceptions=True,
        )
        await service.reset_stage(view.id)
        assert len(service.locks) == 0

    asyncio.run(run())
