from rcv_tabulator.rcv.base import RCV
from rcv_tabulator.rcv.status import CandidateStatus, OvervoteDecision, TabulationError, TabulationState
