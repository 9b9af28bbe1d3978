"""
Contains the CastVoteRecord class, the per ballot record used during tabulation.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

import decimal
import enum
import logging

from rcv_tabulator.marks import BallotMarks
from rcv_tabulator.util import DL2LD

if TYPE_CHECKING:
    from rcv_tabulator.rules import Rules

decimal.getcontext().prec = 30

# audit lines are kept apart from the round summaries so they can be routed to their own file
_audit_log = logging.getLogger("rcv_tabulator.audit")

ONE = decimal.Decimal(1)


class VoteOutcomeType(enum.Enum):
    COUNTED = "counted"
    IGNORED = "ignored"
    EXHAUSTED = "exhausted"


class VoteOutcome:
    """What happened to a ballot in one round."""

    def __init__(
        self, round_num: int, outcome_type: VoteOutcomeType, detail: str, value: Optional[decimal.Decimal]
    ) -> None:
        self.round_num = round_num
        self.outcome_type = outcome_type
        self.detail = detail
        self.value = value

    def __eq__(self, other) -> bool:
        if not isinstance(other, VoteOutcome):
            return NotImplemented
        return (self.round_num, self.outcome_type, self.detail, self.value) == (
            other.round_num,
            other.outcome_type,
            other.detail,
            other.value,
        )

    def __repr__(self) -> str:
        return f"VoteOutcome({self.round_num}, {self.outcome_type.name}, {self.detail!r}, {self.value})"

    def to_dict(self) -> Dict:
        return {
            "round": self.round_num,
            "outcome": self.outcome_type.value,
            "detail": self.detail,
            "value": self.value,
        }


class CastVoteRecord:
    """One ballot. Ranking data is fixed at construction, everything else is
    tabulation state that is reset at the start of each tabulation.
    """

    @staticmethod
    def from_dict_of_lists(parsed_cvr: Dict[str, List], source_name: str = "cvr") -> List[CastVoteRecord]:
        """Build a list of CastVoteRecord objects from the dictionary of lists returned by a parser function.

        :param parsed_cvr: Dictionary with a required 'ranks' key and optional 'id', 'precinct' and 'batch' keys. All lists are index-matched, one entry per ballot.
        :type parsed_cvr: Dict[str, List]
        :param source_name: Used to compute ballot ids as '{source_name}-{row number}', defaults to "cvr"
        :type source_name: str, optional
        :raises RuntimeError: Raised if the 'ranks' key is missing.
        :return: List of ballots, in row order.
        :rtype: List[CastVoteRecord]
        """
        if "ranks" not in parsed_cvr:
            raise RuntimeError("parsed cvr must contain a 'ranks' key")

        cvrs = []
        for row_num, row in enumerate(DL2LD(parsed_cvr), start=1):
            cvrs.append(
                CastVoteRecord(
                    row["ranks"],
                    computed_id=f"{source_name}-{row_num}",
                    supplied_id=row.get("id"),
                    precinct=row.get("precinct"),
                    batch=row.get("batch"),
                )
            )
        return cvrs

    def __init__(
        self,
        marks: Union[BallotMarks, List, Dict[int, List[str]]],
        computed_id: Optional[str] = None,
        supplied_id: Optional[str] = None,
        precinct: Optional[str] = None,
        batch: Optional[str] = None,
    ) -> None:
        """Constructor

        :param marks: Ballot rankings. Either a BallotMarks object, a list of ranking positions or a dictionary of rank to candidates.
        :type marks: Union[BallotMarks, List, Dict[int, List[str]]]
        :param computed_id: Identifier derived from the ballot source and position, defaults to None
        :type computed_id: Optional[str], optional
        :param supplied_id: Identifier supplied with the ballot data, preferred over `computed_id`, defaults to None
        :type supplied_id: Optional[str], optional
        :param precinct: Precinct label, defaults to None
        :type precinct: Optional[str], optional
        :param batch: Batch label, defaults to None
        :type batch: Optional[str], optional
        """
        if isinstance(marks, BallotMarks):
            self.ballot_marks = marks
        elif isinstance(marks, dict):
            self.ballot_marks = BallotMarks.from_rankings(marks)
        else:
            self.ballot_marks = BallotMarks(marks)

        self.computed_id = computed_id
        self.supplied_id = None if _is_blank(supplied_id) else str(supplied_id)
        self.precinct = None if _is_blank(precinct) else str(precinct)
        self.batch = None if _is_blank(batch) else str(batch)

        self.reset()

    def __repr__(self) -> str:
        return f"CastVoteRecord({self.id!r}, {self.ballot_marks!r})"

    @property
    def id(self) -> Optional[str]:
        return self.supplied_id if self.supplied_id is not None else self.computed_id

    @property
    def rankings(self) -> Dict[int, frozenset]:
        return self.ballot_marks.rankings

    @property
    def fractional_transfer_value(self) -> decimal.Decimal:
        """Portion of this ballot not yet credited to any winner. Starts at 1."""
        remaining = ONE
        for credited in self.winner_credits.values():
            remaining -= credited
        return remaining

    def reset(self) -> None:
        """Put tabulation state back to its init state."""
        self.exhausted = False
        self.exhaust_reason = None
        self.current_recipient = None
        self.winner_credits = {}
        self.outcomes = []
        self.snapshots = {}

    def exhaust(self, round_num: int, reason: str) -> None:
        """Mark this ballot inactive for the rest of the tabulation.

        :raises RuntimeError: Raised if the ballot is already exhausted.
        """
        if self.exhausted:
            raise RuntimeError(f"ballot {self.id} exhausted twice (round {round_num}, reason: {reason})")

        self.exhausted = True
        self.exhaust_reason = reason
        self.current_recipient = None
        self.log_round_outcome(round_num, VoteOutcomeType.EXHAUSTED, reason)

    def log_round_outcome(
        self,
        round_num: int,
        outcome_type: VoteOutcomeType,
        detail: str,
        value: Optional[decimal.Decimal] = None,
        previous_recipient: Optional[str] = None,
    ) -> VoteOutcome:
        """Append an outcome to the ballot history and write the audit line."""
        if value is None:
            value = self.fractional_transfer_value

        outcome = VoteOutcome(round_num, outcome_type, detail, value)
        self.outcomes.append(outcome)

        if _audit_log.isEnabledFor(logging.DEBUG):
            _audit_log.debug(self.audit_string(outcome, previous_recipient=previous_recipient))

        return outcome

    def audit_string(self, outcome: VoteOutcome, previous_recipient: Optional[str] = None) -> str:
        """Format an outcome as a single audit log line,
        e.g. '[Round] 2 [CVR] cvr-7 [transferred to] B [value] 0.5'
        """
        if outcome.outcome_type == VoteOutcomeType.IGNORED:
            action = "[was ignored]"
        elif outcome.outcome_type == VoteOutcomeType.EXHAUSTED:
            action = "[became inactive]"
        elif outcome.outcome_type == VoteOutcomeType.COUNTED:
            if outcome.round_num == 1 or previous_recipient == outcome.detail:
                action = "[counted for]"
            else:
                action = "[transferred to]"
        else:
            raise RuntimeError(f"unrecognized outcome type: {outcome.outcome_type}")

        line = f"[Round] {outcome.round_num} [CVR] {self.id} {action} {outcome.detail}"
        if outcome.value is not None and outcome.value != ONE:
            line += f" [value] {outcome.value}"
        return line

    def record_current_recipient_as_winner(self, surplus_fraction: decimal.Decimal, rules: Rules) -> decimal.Decimal:
        """Credit the current recipient, who just won, with the part of this ballot that stays with them.

        The ballot keeps `surplus_fraction` of its current value for transfer to its next choice.

        :param surplus_fraction: Share of the ballot value to keep for transfer.
        :type surplus_fraction: decimal.Decimal
        :param rules: Rules providing the rounded multiplication.
        :type rules: Rules
        :return: The value credited to the winner.
        :rtype: decimal.Decimal
        """
        if self.current_recipient is None:
            raise RuntimeError(f"ballot {self.id} has no current recipient to record as winner")

        value = self.fractional_transfer_value
        transfer_value = rules.multiply(value, surplus_fraction)
        credited = value - transfer_value

        winner = self.current_recipient
        self.winner_credits[winner] = self.winner_credits.get(winner, decimal.Decimal(0)) + credited
        return credited

    def record_snapshot(self, round_num: int) -> None:
        """Store the round allocation of this ballot: winner credits plus the current recipient."""
        data = [(winner, credited) for winner, credited in self.winner_credits.items()]
        if self.current_recipient is not None:
            data.append((self.current_recipient, self.fractional_transfer_value))
        self.snapshots[round_num] = data

    def get_outcomes(self) -> List[VoteOutcome]:
        return list(self.outcomes)

    def get_snapshot(self, round_num: int) -> List[Tuple[str, decimal.Decimal]]:
        return list(self.snapshots.get(round_num, []))


def _is_blank(value) -> bool:
    if value is None:
        return True
    # pandas reads empty cells as float nan
    if isinstance(value, float) and value != value:
        return True
    return str(value).strip() == ""
