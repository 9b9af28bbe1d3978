from rcv_tabulator.cvr import CastVoteRecord, VoteOutcome, VoteOutcomeType
from rcv_tabulator.marks import BallotMarks
from rcv_tabulator.rcv import RCV, CandidateStatus, OvervoteDecision, TabulationError, TabulationState
from rcv_tabulator.rules import OvervoteRule, Rules, RulesError, TieBreakMode
from rcv_tabulator.tiebreak import TieBreak

__version__ = "0.1.0"
