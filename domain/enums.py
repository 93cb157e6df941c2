# domain/enums.py
from __future__ import annotations

from enum import Enum


class GroupKind(str, Enum):
    W = "W"     # Winners
    L = "L"     # Losers
    GF = "GF"   # Grand Finals
    RR = "RR"   # Round-robin pool


class StageFormat(str, Enum):
    SINGLE = "single_elimination"
    DOUBLE = "double_elimination"
    ROUND_ROBIN = "round_robin"


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    WAITING = "waiting"
    READY = "ready"
    COMPLETED = "completed"
    BYE = "bye"


class GrandFinalType(str, Enum):
    SIMPLE = "simple"
    DOUBLE = "double"


class SlotOrigin(str, Enum):
    SEED = "seed"
    WINNER_OF = "winner_of"
    LOSER_OF = "loser_of"
    BYE = "bye"


class SeedingStrategy(str, Enum):
    NATURAL = "natural"
    REVERSE = "reverse"
    HALF_SHIFT = "half_shift"
    REVERSE_HALF_SHIFT = "reverse_half_shift"
    PAIR_FLIP = "pair_flip"
    INNER_OUTER = "inner_outer"
    RANDOM = "random"


class MatchResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
