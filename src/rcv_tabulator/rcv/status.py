"""
Tabulation error and the closed sets of candidate/ballot states used by the RCV class and its mixins.
"""
import enum


class TabulationError(RuntimeError):
    pass


class CandidateStatus(enum.Enum):
    CONTINUING = "continuing"
    WINNER = "winner"
    ELIMINATED = "eliminated"
    INVALID = "invalid"


class OvervoteDecision(enum.Enum):
    NONE = "none"
    EXHAUST = "exhaust"
    IGNORE = "ignore"
    SKIP_TO_NEXT_RANK = "skip_to_next_rank"


class TabulationState(enum.Enum):
    RUNNING = "running"
    COMPLETE = "complete"
