# domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional

from domain.enums import (
    GrandFinalType,
    GroupKind,
    MatchResult,
    MatchStatus,
    SlotOrigin,
    StageFormat,
    StageStatus,
)
from domain.errors import InvalidResult, InvalidSettings


def match_code(bracket: str, round_no: int, match_no: int) -> str:
    b = bracket.upper()
    if b == "GF":
        return f"GF-{round_no:02d}"
    return f"{b}{round_no}-{match_no:02d}"


def parse_match_code(code: str) -> tuple[str, int, int]:
    """
    Inverse of match_code(): "W1-02" -> ("W", 1, 2), "GF-02" -> ("GF", 2, 1).
    Raises ValueError on anything else.
    """
    c = (code or "").strip().upper()
    if c.startswith("GF"):
        return "GF", int(c[2:].lstrip("-")), 1
    for kind in ("RR", "W", "L"):
        if c.startswith(kind):
            round_s, match_s = c[len(kind):].split("-", 1)
            return kind, int(round_s), int(match_s)
    raise ValueError(f"Unrecognised match code: {code!r}")


def next_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    p = 1
    while p < n:
        p <<= 1
    return p


def seeded_positions(n: int) -> list[int]:
    """
    Standard tournament seeding positions list (length n, n is power of two).
    Example n=8 => [1,8,4,5,2,7,3,6]
    """
    if n <= 1:
        return [1]
    if n == 2:
        return [1, 2]
    prev = seeded_positions(n // 2)
    out: list[int] = []
    for s in prev:
        out.append(s)
        out.append(n + 1 - s)
    return out


# -------------------------
# Participants / stage
# -------------------------

@dataclass(frozen=True)
class Participant:
    id: int
    name: str
    seed_position: int


def _bool(v: Any, name: str) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().lower() in ("true", "false", "1", "0", "yes", "no"):
        return v.strip().lower() in ("true", "1", "yes")
    if isinstance(v, int):
        return bool(v)
    raise InvalidSettings(f"{name} must be a boolean, got: {v!r}")


@dataclass(frozen=True)
class StageSettings:
    """
    Per-stage build options.

    `skip_first_round` is accepted for compatibility with callers of other
    bracket tools and is stored with the stage, but it does not change the
    structure: byes already settle at construction, so a first round of
    byes never waits on a report.
    """

    seed_ordering: Optional[tuple[int, ...]] = None
    balance_byes: bool = True
    grand_final: GrandFinalType = GrandFinalType.DOUBLE
    skip_first_round: bool = False
    matches_per_pair: int = 1

    # accepted spellings -> attribute
    _ALIASES = {
        "seed_ordering": "seed_ordering",
        "seedOrdering": "seed_ordering",
        "balance_byes": "balance_byes",
        "balanceByes": "balance_byes",
        "grand_final": "grand_final",
        "grandFinal": "grand_final",
        "grand_final_type": "grand_final",
        "grandFinalType": "grand_final",
        "skip_first_round": "skip_first_round",
        "skipFirstRound": "skip_first_round",
        "matches_per_pair": "matches_per_pair",
        "matchesPerPair": "matches_per_pair",
        "matchesChildCount": "matches_per_pair",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "StageSettings":
        if not data:
            return cls()

        values: dict[str, Any] = {}
        for key, raw in data.items():
            attr = cls._ALIASES.get(key)
            if attr is None:
                raise InvalidSettings(f"Unknown stage setting: {key!r}")
            if raw is None:
                continue
            values[attr] = raw

        if "seed_ordering" in values:
            try:
                values["seed_ordering"] = tuple(int(i) for i in values["seed_ordering"])
            except (TypeError, ValueError) as e:
                raise InvalidSettings("seed_ordering must be a list of integers") from e
        if "balance_byes" in values:
            values["balance_byes"] = _bool(values["balance_byes"], "balance_byes")
        if "skip_first_round" in values:
            values["skip_first_round"] = _bool(values["skip_first_round"], "skip_first_round")
        if "grand_final" in values:
            try:
                values["grand_final"] = GrandFinalType(str(values["grand_final"]).strip().lower())
            except ValueError as e:
                raise InvalidSettings(f"grand_final must be 'simple' or 'double', got: {values['grand_final']!r}") from e
        if "matches_per_pair" in values:
            try:
                mpp = int(values["matches_per_pair"])
            except (TypeError, ValueError) as e:
                raise InvalidSettings("matches_per_pair must be an integer") from e
            if mpp < 1:
                raise InvalidSettings("matches_per_pair must be >= 1")
            values["matches_per_pair"] = mpp

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "seed_ordering": list(self.seed_ordering) if self.seed_ordering is not None else None,
            "balance_byes": self.balance_byes,
            "grand_final": self.grand_final.value,
            "skip_first_round": self.skip_first_round,
            "matches_per_pair": self.matches_per_pair,
        }


@dataclass
class Stage:
    id: int
    name: str
    format: StageFormat
    participant_count: int
    settings: StageSettings
    seeding: str = "natural"
    status: StageStatus = StageStatus.PENDING
    winner_id: Optional[int] = None


@dataclass(frozen=True)
class Group:
    id: int
    kind: GroupKind
    number: int


@dataclass(frozen=True)
class Round:
    id: int
    group_id: int
    number: int


# -------------------------
# Matches
# -------------------------

@dataclass(frozen=True)
class Forward:
    match_id: int
    slot: int  # 1 or 2


@dataclass
class Slot:
    origin: SlotOrigin
    source_match_id: Optional[int] = None
    participant_id: Optional[int] = None
    settled: bool = False

    @classmethod
    def seed(cls, participant_id: int) -> "Slot":
        return cls(SlotOrigin.SEED, participant_id=participant_id, settled=True)

    @classmethod
    def bye(cls) -> "Slot":
        return cls(SlotOrigin.BYE, settled=True)

    @classmethod
    def winner_of(cls, match_id: int) -> "Slot":
        return cls(SlotOrigin.WINNER_OF, source_match_id=match_id)

    @classmethod
    def loser_of(cls, match_id: int) -> "Slot":
        return cls(SlotOrigin.LOSER_OF, source_match_id=match_id)

    @property
    def occupied(self) -> bool:
        return self.participant_id is not None

    def fill(self, participant_id: Optional[int]) -> None:
        """Resolve the slot; None means the source produced nobody (a bye)."""
        self.participant_id = participant_id
        self.settled = True


@dataclass
class Match:
    id: int
    group_id: int
    round_id: int
    position: int
    slot1: Slot
    slot2: Slot
    status: MatchStatus = MatchStatus.WAITING
    score1: Optional[int] = None
    score2: Optional[int] = None
    winner_slot: Optional[int] = None
    forward_winner: Optional[Forward] = None
    forward_loser: Optional[Forward] = None

    def slot(self, index: int) -> Slot:
        if index == 1:
            return self.slot1
        if index == 2:
            return self.slot2
        raise ValueError(f"slot index must be 1 or 2, got {index}")

    @property
    def is_settled(self) -> bool:
        return self.status in (MatchStatus.COMPLETED, MatchStatus.BYE)

    @property
    def winner_id(self) -> Optional[int]:
        if self.winner_slot is None:
            return None
        return self.slot(self.winner_slot).participant_id

    @property
    def loser_id(self) -> Optional[int]:
        if self.winner_slot is None:
            return None
        return self.slot(3 - self.winner_slot).participant_id

    def involves(self, participant_id: int) -> bool:
        return participant_id in (self.slot1.participant_id, self.slot2.participant_id)


@dataclass
class StageState:
    """
    Everything that makes up one stage, loaded in memory.

    Matches are addressed by their stage-local id; forward references are
    (match id, slot index) pairs, never object references.
    """

    stage: Stage
    participants: list[Participant]
    groups: list[Group]
    rounds: list[Round]
    matches: dict[int, Match] = field(default_factory=dict)

    def participant(self, participant_id: Optional[int]) -> Optional[Participant]:
        if participant_id is None:
            return None
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    def participant_name(self, participant_id: Optional[int]) -> Optional[str]:
        p = self.participant(participant_id)
        return p.name if p else None

    def group(self, group_id: int) -> Group:
        return next(g for g in self.groups if g.id == group_id)

    def group_by_kind(self, kind: GroupKind) -> Optional[Group]:
        return next((g for g in self.groups if g.kind == kind), None)

    def round(self, round_id: int) -> Round:
        return next(r for r in self.rounds if r.id == round_id)

    def rounds_of(self, group_id: int) -> list[Round]:
        return sorted((r for r in self.rounds if r.group_id == group_id), key=lambda r: r.number)

    def round_matches(self, round_id: int) -> list[Match]:
        return sorted((m for m in self.matches.values() if m.round_id == round_id), key=lambda m: m.position)

    def ordered_matches(self) -> Iterator[Match]:
        for g in sorted(self.groups, key=lambda g: g.number):
            for r in self.rounds_of(g.id):
                yield from self.round_matches(r.id)

    def code(self, match: Match) -> str:
        g = self.group(match.group_id)
        r = self.round(match.round_id)
        return match_code(g.kind.value, r.number, match.position + 1)

    def find_by_code(self, code: str) -> Optional[Match]:
        kind, round_no, match_no = parse_match_code(code)
        for g in self.groups:
            if g.kind.value != kind:
                continue
            for r in self.rounds_of(g.id):
                if r.number != round_no:
                    continue
                for m in self.round_matches(r.id):
                    if m.position + 1 == match_no:
                        return m
        return None


# -------------------------
# Result input
# -------------------------

def _optional_int(v: Any, name: str) -> Optional[int]:
    if v is None:
        return None
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise InvalidResult(f"{name} must be an integer, got: {v!r}") from e


@dataclass(frozen=True)
class SideUpdate:
    score: Optional[int] = None
    result: Optional[MatchResult] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None, name: str) -> "SideUpdate":
        if not data:
            return cls()
        result = data.get("result")
        if result is not None:
            try:
                result = MatchResult(str(result).strip().lower())
            except ValueError as e:
                raise InvalidResult(f"{name}.result must be 'win' or 'loss', got: {result!r}") from e
        return cls(score=_optional_int(data.get("score"), f"{name}.score"), result=result)

    def as_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.score is not None:
            out["score"] = self.score
        if self.result is not None:
            out["result"] = self.result.value
        return out


@dataclass(frozen=True)
class MatchUpdate:
    opponent1: SideUpdate = SideUpdate()
    opponent2: SideUpdate = SideUpdate()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MatchUpdate":
        return cls(
            opponent1=SideUpdate.from_mapping(data.get("opponent1"), "opponent1"),
            opponent2=SideUpdate.from_mapping(data.get("opponent2"), "opponent2"),
        )

    @classmethod
    def scores(cls, score1: int, score2: int) -> "MatchUpdate":
        return cls(SideUpdate(score=score1), SideUpdate(score=score2))

    @classmethod
    def winner(cls, slot: int, *, score1: Optional[int] = None, score2: Optional[int] = None) -> "MatchUpdate":
        r1 = MatchResult.WIN if slot == 1 else MatchResult.LOSS
        r2 = MatchResult.LOSS if slot == 1 else MatchResult.WIN
        return cls(SideUpdate(score1, r1), SideUpdate(score2, r2))
