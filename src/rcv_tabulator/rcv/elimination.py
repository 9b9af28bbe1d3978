"""Contains RCV_elimination class which is added into RCV.
"""

from typing import Dict, List, Tuple

import decimal
import logging

from rcv_tabulator.rcv.status import CandidateStatus, TabulationError
from rcv_tabulator.tiebreak import TieBreak

_log = logging.getLogger(__name__)

# (candidate, running total, next lowest tally)
BatchElimination = Tuple[str, decimal.Decimal, decimal.Decimal]


class RCV_elimination:
    """Elimination methods added into RCV class. Rules are tried in order and the first one
    that eliminates anybody is used for the round.
    """

    def _identify_round_losers(self, round_tally: Dict[str, decimal.Decimal]) -> List[str]:
        """
        Find candidates to eliminate this round.

        :param round_tally: Current round tally.
        :type round_tally: Dict[str, decimal.Decimal]
        :raises TabulationError: Raised if no candidate could be eliminated.
        :return: Eliminated candidates.
        :rtype: List[str]
        """
        tally_to_candidates = self._build_tally_to_candidates(round_tally)

        eliminations = self._drop_undeclared_write_in(round_tally)

        if not eliminations:
            eliminations = self._drop_below_minimum_threshold(tally_to_candidates)

        if not eliminations and self.rules.batch_elimination:
            eliminations = self._do_batch_elimination(tally_to_candidates)

        if not eliminations:
            eliminations = self._do_regular_elimination(tally_to_candidates)

        if not eliminations:
            raise TabulationError(f"no candidates to eliminate in round {self._round_num}")

        for candidate, reason in eliminations:
            self._eliminations.append(
                {
                    "round": self._round_num,
                    "candidate": candidate,
                    "tally": round_tally.get(candidate, decimal.Decimal(0)),
                    "reason": reason,
                }
            )

        return [candidate for candidate, _ in eliminations]

    def _build_tally_to_candidates(self, round_tally: Dict[str, decimal.Decimal]) -> Dict[decimal.Decimal, List[str]]:
        """Group eliminable candidates by tally, in ascending tally order. Winners are never eliminated."""
        tally_to_candidates = {}
        for cand, tally in round_tally.items():
            if self.get_candidate_status(cand) != CandidateStatus.CONTINUING:
                continue
            tally_to_candidates.setdefault(tally, []).append(cand)

        return {tally: sorted(tally_to_candidates[tally]) for tally in sorted(tally_to_candidates)}

    def _drop_undeclared_write_in(self, round_tally: Dict[str, decimal.Decimal]) -> List[Tuple[str, str]]:
        label = self.rules.undeclared_write_in_label

        if self._round_num != 1 or not label or not self.rules.is_candidate_code(label):
            return []

        uwi_tally = round_tally.get(label, decimal.Decimal(0))
        if uwi_tally <= 0:
            return []

        _log.info(
            "Eliminated %s in round %d because it represents undeclared write-ins. It had %s votes.",
            label,
            self._round_num,
            uwi_tally,
        )
        return [(label, "undeclared write-ins")]

    def _drop_below_minimum_threshold(
        self, tally_to_candidates: Dict[decimal.Decimal, List[str]]
    ) -> List[Tuple[str, str]]:
        threshold = self.rules.minimum_vote_threshold

        if threshold <= 0 or not tally_to_candidates or min(tally_to_candidates) >= threshold:
            return []

        losers = [cand for tally, cands in tally_to_candidates.items() if tally < threshold for cand in cands]
        n_eliminable = sum(len(cands) for cands in tally_to_candidates.values())
        if len(losers) == n_eliminable:
            raise TabulationError(
                f"every remaining candidate is below the minimum vote threshold ({threshold}) in round {self._round_num}"
            )

        for loser in losers:
            _log.info(
                "Eliminated %s in round %d because they only had %s votes, below the minimum threshold of %s.",
                loser,
                self._round_num,
                self._round_tallies[self._round_num][loser],
                threshold,
            )
        return [(loser, f"below minimum vote threshold ({threshold})") for loser in losers]

    def _run_batch_elimination(
        self, tally_to_candidates: Dict[decimal.Decimal, List[str]], min_remaining: int = 1
    ) -> List[BatchElimination]:
        """Find every candidate who could not catch up with the next candidate even with all lower votes combined.
        If the full batch would leave fewer than `min_remaining` candidates, the largest earlier batch that does not is used.

        :param tally_to_candidates: Candidates grouped by tally, in ascending tally order.
        :type tally_to_candidates: Dict[decimal.Decimal, List[str]]
        :param min_remaining: Fewest candidates allowed to survive the batch, defaults to 1
        :type min_remaining: int, optional
        :return: List of (candidate, running total, next tally) tuples.
        :rtype: List[BatchElimination]
        """
        running_total = decimal.Decimal(0)
        candidates_seen = []
        eliminated = set()
        batches = [[]]

        for tally in sorted(tally_to_candidates):
            if running_total < tally:
                new_eliminations = [(cand, running_total, tally) for cand in candidates_seen if cand not in eliminated]
                if new_eliminations:
                    eliminated.update(cand for cand, _, _ in new_eliminations)
                    batches.append(batches[-1] + new_eliminations)

            cands = tally_to_candidates[tally]
            running_total += tally * len(cands)
            candidates_seen.extend(cands)

        n_candidates = len(candidates_seen)
        for batch in reversed(batches):
            if n_candidates - len(batch) >= min_remaining:
                return batch
        return []

    def _do_batch_elimination(self, tally_to_candidates: Dict[decimal.Decimal, List[str]]) -> List[Tuple[str, str]]:
        seats_open = self.rules.number_of_winners - len(self._won)
        batch = self._run_batch_elimination(tally_to_candidates, min_remaining=max(seats_open, 1))

        # a single candidate batch is a regular elimination
        if len(batch) <= 1:
            return []

        eliminations = []
        for cand, running_total, next_tally in batch:
            _log.info(
                "Batch-eliminated %s in round %d. The running total was %s vote(s) and the next-lowest count was %s vote(s).",
                cand,
                self._round_num,
                running_total,
                next_tally,
            )
            eliminations.append((cand, f"batch elimination (running total {running_total} < {next_tally})"))
        return eliminations

    def _do_regular_elimination(self, tally_to_candidates: Dict[decimal.Decimal, List[str]]) -> List[Tuple[str, str]]:
        if not tally_to_candidates:
            return []

        min_votes = min(tally_to_candidates)
        lowest = tally_to_candidates[min_votes]

        if len(lowest) == 1:
            loser = lowest[0]
            _log.info("Eliminated %s in round %d with fewest votes (%s).", loser, self._round_num, min_votes)
            return [(loser, f"fewest votes ({min_votes})")]

        tie_break = TieBreak(
            lowest,
            self.rules.tiebreak_mode,
            self._round_num,
            min_votes,
            self._round_tallies,
            candidate_permutation=self.rules.candidate_permutation,
            random_generator=self.rules.random_generator,
            selector=self._tiebreak_selector,
        )
        loser = tie_break.select_loser()
        self._tiebreaks.append(tie_break)
        return [(loser, f"lost tie-break ({tie_break.explanation})")]
