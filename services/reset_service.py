# services/reset_service.py
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field

from domain.enums import StageStatus
from domain.errors import MalformedBracket
from domain.models import Match, StageState
from services.bracket_factory import BracketFactory

log = logging.getLogger(__name__)

# fields a played stage may differ on; everything else is structure
_MUTABLE = ("slot1", "slot2", "status", "score1", "score2", "winner_slot")


@dataclass
class ResetOutcome:
    touched: set[int] = field(default_factory=set)
    stage_changed: bool = False


def _mutable_view(m: Match) -> tuple:
    return tuple(getattr(m, f) for f in _MUTABLE)


class ResetService:
    """
    Puts a stage back to its unplayed state without touching its structure.

    The pristine state comes from rebuilding the stage with the same
    factory, participants and settings, so byes are re-applied exactly as
    at creation.
    """

    def __init__(self, factory: BracketFactory | None = None) -> None:
        self._factory = factory or BracketFactory()

    def reset(self, state: StageState) -> ResetOutcome:
        fresh = self._factory.rebuild(state)
        if set(fresh.matches) != set(state.matches):
            raise MalformedBracket(
                f"Stage {state.stage.id} no longer matches its generated structure.",
                stage_id=state.stage.id,
            )

        out = ResetOutcome()
        for mid, pristine in fresh.matches.items():
            cur = state.matches[mid]
            if (cur.forward_winner, cur.forward_loser) != (pristine.forward_winner, pristine.forward_loser):
                raise MalformedBracket(f"Match {mid} wiring differs from its generated structure.", stage_id=state.stage.id, match_id=mid)
            if _mutable_view(cur) == _mutable_view(pristine):
                continue
            for f in _MUTABLE:
                setattr(cur, f, copy.deepcopy(getattr(pristine, f)))
            out.touched.add(mid)

        stage = state.stage
        if stage.status != StageStatus.PENDING or stage.winner_id is not None:
            stage.status = StageStatus.PENDING
            stage.winner_id = None
            out.stage_changed = True

        log.info("Stage %s reset: %d matches restored", stage.id, len(out.touched))
        return out
