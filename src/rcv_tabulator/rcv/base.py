"""
Contains the RCV class.
Defines the round controller and vote-transfer walk and adds in methods from rcv/elimination.py and rcv/tables.py files.
"""
from __future__ import annotations
from typing import Dict, FrozenSet, List, Optional, Set

import collections
import decimal
import logging

from rcv_tabulator.cvr import CastVoteRecord, VoteOutcomeType
from rcv_tabulator.marks import BallotMarks
from rcv_tabulator.package_types import RoundTally
from rcv_tabulator.rcv.elimination import RCV_elimination
from rcv_tabulator.rcv.status import CandidateStatus, OvervoteDecision, TabulationError, TabulationState
from rcv_tabulator.rcv.tables import RCV_tables
from rcv_tabulator.rules import OvervoteRule, Rules
from rcv_tabulator.tiebreak import Selector

_log = logging.getLogger(__name__)

ZERO = decimal.Decimal(0)

# transfer sources/targets that are not candidates
UNCOUNTED = "uncounted"
EXHAUSTED = "exhausted"
IGNORED = "ignored"
RESIDUAL_SURPLUS = "residual surplus"


class RCV(RCV_elimination, RCV_tables):
    """
    Round controller. Owns all tabulation state for one contest: round tallies, winners, eliminations and tie-breaks.
    Ballot state lives on each CastVoteRecord and is reset when tabulation starts.
    """

    def __init__(self, rules: Rules, cvrs: List[CastVoteRecord], tiebreak_selector: Optional[Selector] = None) -> None:
        """Constructor

        :param rules: Contest rules.
        :type rules: Rules
        :param cvrs: Ballots to tabulate.
        :type cvrs: List[CastVoteRecord]
        :param tiebreak_selector: Callback used by the interactive tie-break modes, defaults to a terminal prompt.
        :type tiebreak_selector: Optional[Selector], optional
        """
        self.rules = rules
        self.cvrs = list(cvrs)
        self._tiebreak_selector = tiebreak_selector

        self._state = None
        self._reset_results()

    def _reset_results(self) -> None:
        self._round_num = 0
        self._win_threshold = None
        self._round_thresholds = {}

        self._round_tallies = {}
        self._precinct_round_tallies = {}
        self._round_transfers = {}
        self._round_residual_surplus = {}
        self._round_inactive = {}

        self._won = {}
        self._eliminated = {}
        self._eliminations = []
        self._surplus_fractions = {}
        self._tiebreaks = []

    #############################################
    # tabulation

    def tabulate(self) -> Set[str]:
        """Run rounds until the contest is complete. Repeated calls return the stored result.

        :raises TabulationError: Raised if there are no ballots or if the rules lead to a round without any elimination.
        :return: Set of winners.
        :rtype: Set[str]
        """
        if self._state == TabulationState.COMPLETE:
            return self.get_winners()

        if not self.cvrs:
            raise TabulationError("no ballots to tabulate")

        self._reset_results()
        for cvr in self.cvrs:
            cvr.reset()

        if self.rules.tabulate_by_precinct:
            precincts = sorted({cvr.precinct for cvr in self.cvrs if cvr.precinct is not None})
            self._precinct_round_tallies = {precinct: {} for precinct in precincts}

        self._tabulate()
        return self.get_winners()

    def _tabulate(self) -> None:
        """
        Run the rounds of rcv contest.
        """
        self._state = TabulationState.RUNNING

        while self._state == TabulationState.RUNNING:
            self._round_num += 1
            _log.info("Round: %d", self._round_num)

            #############################################
            # COUNT ROUND RESULTS
            round_tally = self._compute_tallies_for_round()

            #############################################
            # SET WIN THRESHOLD
            self._set_win_threshold(round_tally)
            self._round_thresholds[self._round_num] = self._win_threshold

            for cand, tally in sorted(round_tally.items(), key=lambda x: (-x[1], x[0])):
                _log.info("Candidate %s got %s vote(s).", cand, tally)

            #############################################
            # CHECK FOR ROUND WINNERS
            round_winners = []
            if len(self._won) < self.rules.number_of_winners:
                round_winners = self._identify_round_winners(round_tally)

            for winner in round_winners:
                self._won[winner] = self._round_num
                _log.info("%s won in round %d with %s votes.", winner, self._round_num, round_tally[winner])

            #############################################
            # TRANSFER SURPLUS
            # only while seats remain
            if round_winners and len(self._won) < self.rules.number_of_winners:
                for winner in round_winners:
                    self._transfer_surplus(winner, round_tally[winner])

            #############################################
            # IDENTIFY ROUND LOSERS
            if not round_winners and self._contest_not_complete():
                losers = self._identify_round_losers(round_tally)
                for loser in losers:
                    self._eliminated[loser] = self._round_num

            #############################################
            # SNAPSHOT BALLOT ALLOCATIONS
            for cvr in self.cvrs:
                cvr.record_snapshot(self._round_num)

            if not self._contest_not_complete():
                self._state = TabulationState.COMPLETE

        _log.info("Tabulation complete after %d round(s). Winner(s): %s", self._round_num, ", ".join(self._won))

    def _contest_not_complete(self) -> bool:
        """Seats remain open, or a single winner contest is continuing until two candidates remain.
        After the last elimination one more round is counted so the final two are shown.
        """
        if len(self._won) < self.rules.number_of_winners:
            return True
        if not self.rules.continue_until_two_candidates_remain:
            return False
        n_decided = len(self._eliminated) + len(self._won)
        return n_decided + 1 < len(self.rules.candidate_codes) or self._round_num in self._eliminated.values()

    def _set_win_threshold(self, round_tally: RoundTally) -> None:
        """Active votes divided by the seats still open plus one. Past winners' held votes are not active."""
        total_votes = sum((tally for cand, tally in round_tally.items() if self._is_candidate_continuing(cand)), ZERO)
        seats_remaining = self.rules.number_of_winners - len(self._won)
        self._win_threshold = self.rules.divide(total_votes, seats_remaining + 1)
        _log.info("Winning threshold set to %s.", self._win_threshold)

    def _identify_round_winners(self, round_tally: RoundTally) -> List[str]:
        continuing = [cand for cand in round_tally if self.get_candidate_status(cand) == CandidateStatus.CONTINUING]
        winners = [cand for cand in continuing if round_tally[cand] > self._win_threshold]

        return sorted(winners, key=lambda cand: (-round_tally[cand], cand))

    def _transfer_surplus(self, winner: str, winner_tally: decimal.Decimal) -> None:
        """Credit each ballot held by `winner` to the winner, keeping the surplus share for transfer."""
        surplus = winner_tally - self._win_threshold
        if surplus > 0:
            surplus_fraction = self.rules.divide(surplus, winner_tally)
        else:
            surplus_fraction = ZERO

        self._surplus_fractions[winner] = surplus_fraction
        _log.info("%s has surplus %s, surplus fraction %s.", winner, max(surplus, ZERO), surplus_fraction)

        for cvr in self.cvrs:
            if cvr.current_recipient == winner:
                cvr.record_current_recipient_as_winner(surplus_fraction, self.rules)

    #############################################
    # vote-transfer walk

    def get_candidate_status(self, candidate: str) -> CandidateStatus:
        if candidate in self._won:
            return CandidateStatus.WINNER
        if candidate in self._eliminated:
            return CandidateStatus.ELIMINATED
        if candidate == BallotMarks.OVERVOTE or not self.rules.is_candidate_code(candidate):
            return CandidateStatus.INVALID
        return CandidateStatus.CONTINUING

    def _is_candidate_continuing(self, candidate: str) -> bool:
        status = self.get_candidate_status(candidate)
        if status == CandidateStatus.CONTINUING:
            return True
        return status == CandidateStatus.WINNER and self.rules.continue_until_two_candidates_remain

    def _get_overvote_decision(self, candidate_set: FrozenSet[str]) -> OvervoteDecision:
        """Decide how the ballot walk treats a rank given the candidates marked there."""
        rule = self.rules.overvote_rule

        if BallotMarks.OVERVOTE in candidate_set:
            if rule == OvervoteRule.EXHAUST_IMMEDIATELY:
                return OvervoteDecision.EXHAUST
            elif rule == OvervoteRule.ALWAYS_SKIP_TO_NEXT_RANK:
                return OvervoteDecision.SKIP_TO_NEXT_RANK
            raise RuntimeError(f"overvote mark found but overvote rule is {rule.value}")

        if len(candidate_set) <= 1:
            return OvervoteDecision.NONE

        if rule == OvervoteRule.EXHAUST_IMMEDIATELY:
            return OvervoteDecision.EXHAUST
        elif rule == OvervoteRule.ALWAYS_SKIP_TO_NEXT_RANK:
            return OvervoteDecision.SKIP_TO_NEXT_RANK

        n_continuing = len([cand for cand in candidate_set if self._is_candidate_continuing(cand)])
        if n_continuing == 0:
            return OvervoteDecision.NONE

        if rule == OvervoteRule.EXHAUST_IF_ANY_CONTINUING:
            return OvervoteDecision.EXHAUST
        elif rule == OvervoteRule.IGNORE_IF_ANY_CONTINUING:
            return OvervoteDecision.IGNORE
        elif rule == OvervoteRule.EXHAUST_IF_MULTIPLE_CONTINUING:
            return OvervoteDecision.EXHAUST if n_continuing > 1 else OvervoteDecision.NONE
        elif rule == OvervoteRule.IGNORE_IF_MULTIPLE_CONTINUING:
            return OvervoteDecision.IGNORE if n_continuing > 1 else OvervoteDecision.NONE

        raise RuntimeError(f"unrecognized overvote rule: {rule}")

    def _new_tally(self) -> RoundTally:
        return {cand: ZERO for cand in self.rules.candidate_codes if self._is_candidate_continuing(cand)}

    def _compute_tallies_for_round(self) -> RoundTally:
        """Walk every active ballot to its next continuing candidate and return the round tally.
        Past winners (multi winner) are added back from the credits they hold.
        """
        round_tally = self._new_tally()
        precinct_tallies = {precinct: self._new_tally() for precinct in self._precinct_round_tallies}
        transfers = collections.defaultdict(lambda: collections.defaultdict(lambda: ZERO))

        for cvr in self.cvrs:

            previous_recipient = cvr.current_recipient
            cvr.current_recipient = None

            if cvr.exhausted:
                continue

            ignored = self._walk_ballot(cvr, round_tally, precinct_tallies, previous_recipient)

            # record where the ballot value moved this round
            value = cvr.fractional_transfer_value
            if value > 0:
                source = previous_recipient if previous_recipient is not None else UNCOUNTED
                if cvr.current_recipient is not None:
                    if cvr.current_recipient != previous_recipient:
                        transfers[source][cvr.current_recipient] += value
                elif ignored:
                    if previous_recipient is not None:
                        transfers[source][IGNORED] += value
                else:
                    transfers[source][EXHAUSTED] += value

        self._round_residual_surplus[self._round_num] = ZERO
        self._add_past_winner_tallies(round_tally, precinct_tallies, transfers)

        self._round_inactive[self._round_num] = sum(
            (cvr.fractional_transfer_value for cvr in self.cvrs if cvr.current_recipient is None), ZERO
        )
        self._round_transfers[self._round_num] = {src: dict(targets) for src, targets in transfers.items()}
        self._round_tallies[self._round_num] = round_tally
        for precinct, tally in precinct_tallies.items():
            self._precinct_round_tallies[precinct][self._round_num] = tally

        return round_tally

    def _walk_ballot(
        self,
        cvr: CastVoteRecord,
        round_tally: RoundTally,
        precinct_tallies: Dict[str, RoundTally],
        previous_recipient: Optional[str],
    ) -> bool:
        """Find the ballot's next continuing candidate and credit it. Exhausts the ballot when none can be used.

        :return: True if the ballot was ignored this round.
        :rtype: bool
        """
        if not len(cvr.ballot_marks):
            cvr.exhaust(self._round_num, "undervote")
            return False

        if not any(self._is_candidate_continuing(cand) for cand in cvr.ballot_marks.unique_candidates):
            cvr.exhaust(self._round_num, "no continuing candidates")
            return False

        max_skipped = self.rules.max_skipped_ranks_allowed
        last_rank = 0
        candidates_seen = set()

        for rank, candidate_set in cvr.ballot_marks:

            # too many consecutive skipped ranks
            if max_skipped is not None and rank - last_rank > max_skipped + 1:
                cvr.exhaust(self._round_num, "undervote")
                return False
            last_rank = rank

            if self.rules.exhaust_on_duplicate_candidate:
                real_candidates = candidate_set - {BallotMarks.OVERVOTE}
                duplicates = sorted(real_candidates & candidates_seen)
                if duplicates:
                    cvr.exhaust(self._round_num, f"duplicate candidate: {duplicates[0]}")
                    return False
                candidates_seen.update(real_candidates)

            overvote_decision = self._get_overvote_decision(candidate_set)
            if overvote_decision == OvervoteDecision.EXHAUST:
                cvr.exhaust(self._round_num, "overvote")
                return False
            elif overvote_decision == OvervoteDecision.IGNORE:
                cvr.log_round_outcome(self._round_num, VoteOutcomeType.IGNORED, "overvote")
                return True
            elif overvote_decision == OvervoteDecision.SKIP_TO_NEXT_RANK:
                continue
            elif overvote_decision != OvervoteDecision.NONE:
                raise RuntimeError(f"unrecognized overvote decision: {overvote_decision}")

            continuing = sorted(cand for cand in candidate_set if self._is_candidate_continuing(cand))
            if len(continuing) > 1:
                raise RuntimeError(f"ballot {cvr.id} reached rank {rank} with multiple continuing candidates")

            if continuing:
                selected = continuing[0]
                value = cvr.fractional_transfer_value
                cvr.current_recipient = selected

                round_tally[selected] += value
                if cvr.precinct is not None and cvr.precinct in precinct_tallies:
                    precinct_tallies[cvr.precinct][selected] += value

                cvr.log_round_outcome(
                    self._round_num,
                    VoteOutcomeType.COUNTED,
                    selected,
                    value=value,
                    previous_recipient=previous_recipient,
                )
                return False

        # ran out of rankings
        if max_skipped is not None and self.rules.effective_max_rankings_allowed - last_rank > max_skipped:
            cvr.exhaust(self._round_num, "undervote")
        else:
            cvr.exhaust(self._round_num, "no continuing candidates")
        return False

    def _add_past_winner_tallies(
        self,
        round_tally: RoundTally,
        precinct_tallies: Dict[str, RoundTally],
        transfers: Dict[str, RoundTally],
    ) -> None:
        """Put winners from earlier rounds back into the tally using the credits they hold.
        Anything above the threshold could not be transferred due to rounding and is recorded as residual surplus.
        """
        past_winners = {
            winner
            for winner, round_won in self._won.items()
            if round_won < self._round_num and not self._is_candidate_continuing(winner)
        }
        if not past_winners:
            return

        for winner in sorted(past_winners):
            round_tally[winner] = ZERO
            for tally in precinct_tallies.values():
                tally[winner] = ZERO

        for cvr in self.cvrs:
            for winner, credited in cvr.winner_credits.items():
                if winner not in past_winners:
                    continue
                round_tally[winner] += credited
                if cvr.precinct is not None and cvr.precinct in precinct_tallies:
                    precinct_tallies[cvr.precinct][winner] += credited

        # winners hold at most the threshold of the round they won in
        for winner in sorted(past_winners):
            winning_threshold = self._round_thresholds[self._won[winner]]
            residual = round_tally[winner] - winning_threshold
            if residual > 0:
                _log.info("%s had residual surplus of %s.", winner, residual)
                self._round_residual_surplus[self._round_num] += residual
                round_tally[winner] = winning_threshold
                transfers[winner][RESIDUAL_SURPLUS] += residual

    #############################################
    # results

    def n_rounds(self) -> int:
        return self._round_num

    def get_win_threshold(self, round_num: Optional[int] = None) -> Optional[decimal.Decimal]:
        """Threshold used in `round_num`, or the final threshold if None."""
        if round_num is None:
            return self._win_threshold
        return self._round_thresholds.get(round_num)

    def get_winners(self) -> Set[str]:
        return set(self._won)

    def get_round_tally(self, round_num: int) -> RoundTally:
        """Return a copy of the unsorted tally for a round."""
        if round_num not in self._round_tallies:
            raise RuntimeError(f"round {round_num} has not been tabulated")
        return dict(self._round_tallies[round_num])

    def get_precinct_round_tally_dict(self, precinct: str, round_num: int) -> RoundTally:
        if precinct not in self._precinct_round_tallies:
            raise RuntimeError(f"no precinct tally for {precinct}. Is tabulate_by_precinct enabled?")
        return dict(self._precinct_round_tallies[precinct][round_num])

    def get_precincts(self) -> List[str]:
        return list(self._precinct_round_tallies)

    def get_residual_surplus(self, round_num: Optional[int] = None) -> decimal.Decimal:
        """Residual surplus recorded in `round_num`, or the total over all rounds if None."""
        if round_num is None:
            return sum(self._round_residual_surplus.values(), ZERO)
        return self._round_residual_surplus.get(round_num, ZERO)

    def get_inactive_votes(self, round_num: int) -> decimal.Decimal:
        """Ballot value not counted for any candidate in `round_num` (exhausted or ignored)."""
        return self._round_inactive[round_num]

    def get_round_transfer_dict(self, round_num: int) -> Dict[str, RoundTally]:
        """Vote flows into `round_num`, keyed by source then target. Round 1 flows come from 'uncounted'."""
        return {src: dict(targets) for src, targets in self._round_transfers.get(round_num, {}).items()}

    def get_surplus_fractions(self) -> Dict[str, decimal.Decimal]:
        return dict(self._surplus_fractions)

    def get_candidate_outcomes(self) -> List[Dict]:
        """Return a list of dictionaries containing candidate outcome information. Keys are name, round_elected,
        and round_eliminated. Values for round_elected and round_eliminated are either integers indicating round numbers or None.
        """
        return [
            {
                "name": cand,
                "round_elected": self._won.get(cand),
                "round_eliminated": self._eliminated.get(cand),
            }
            for cand in self.rules.candidate_codes
        ]

    def get_eliminations(self) -> List[Dict]:
        return [dict(d) for d in self._eliminations]

    def get_tiebreaks(self) -> List:
        return list(self._tiebreaks)
