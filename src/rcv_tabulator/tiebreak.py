"""
Contains the TieBreak class, which selects a loser among candidates tied for last place.
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional

import decimal
import logging
import random

from rcv_tabulator.package_types import RoundTallies
from rcv_tabulator.rules import TieBreakMode

_log = logging.getLogger(__name__)

# called with the unresolved TieBreak, returns the selected candidate
Selector = Callable[["TieBreak"], str]


def prompt_console_selection(tie_break: TieBreak) -> str:
    """Default interactive selector, asks on the terminal."""
    print(f"Tie in round {tie_break.round_num} for {tie_break.num_votes} votes between:")
    for idx, candidate in enumerate(tie_break.tied_candidates, start=1):
        print(f"  {idx}. {candidate}")

    answer = input("Enter the number or name of the candidate to eliminate: ").strip()
    if answer.isdigit() and 1 <= int(answer) <= len(tie_break.tied_candidates):
        return tie_break.tied_candidates[int(answer) - 1]
    return answer


def non_losing_candidate_description(candidates: List[str]) -> str:
    """Join names for the audit text: 'A', 'A and B' or 'A, B, and C'."""
    if not candidates:
        return ""
    if len(candidates) == 1:
        return candidates[0]
    if len(candidates) == 2:
        return f"{candidates[0]} and {candidates[1]}"
    return ", ".join(candidates[:-1]) + f", and {candidates[-1]}"


class TieBreak:
    """Record of one tie-break. The loser and explanation are set by :meth:`select_loser`
    and are fixed afterwards.
    """

    def __init__(
        self,
        tied_candidates: List[str],
        tiebreak_mode: TieBreakMode,
        round_num: int,
        num_votes: decimal.Decimal,
        round_tallies: RoundTallies,
        candidate_permutation: Optional[List[str]] = None,
        random_generator: Optional[random.Random] = None,
        selector: Optional[Selector] = None,
    ) -> None:
        """Constructor

        :param tied_candidates: Candidates tied for the lowest tally.
        :type tied_candidates: List[str]
        :param tiebreak_mode: Resolution method.
        :type tiebreak_mode: TieBreakMode
        :param round_num: Round in which the tie occurred.
        :type round_num: int
        :param num_votes: The tied tally.
        :type num_votes: decimal.Decimal
        :param round_tallies: Tallies of all rounds so far, keyed by round number.
        :type round_tallies: Dict[int, Dict[str, decimal.Decimal]]
        :param candidate_permutation: Candidate ordering for the permutation modes, defaults to None
        :type candidate_permutation: Optional[List[str]], optional
        :param random_generator: Source of randomness for the random modes, defaults to a new unseeded generator
        :type random_generator: Optional[random.Random], optional
        :param selector: Callback for the interactive modes, defaults to :func:`prompt_console_selection`
        :type selector: Optional[Selector], optional
        """
        self.tied_candidates = sorted(tied_candidates)
        self.tiebreak_mode = tiebreak_mode
        self.round_num = round_num
        self.num_votes = num_votes
        self.round_tallies = round_tallies
        self.candidate_permutation = candidate_permutation or []
        self.random_generator = random_generator or random.Random()
        self.selector = selector or prompt_console_selection

        self.loser = None
        self.explanation = None

    def select_loser(self) -> str:
        """Resolve the tie. Calling again returns the stored loser."""
        if self.loser is not None:
            return self.loser

        if self.tiebreak_mode in (TieBreakMode.USE_PERMUTATION_IN_CONFIG, TieBreakMode.GENERATE_PERMUTATION):
            loser = self._do_permutation_selection()
        elif self.tiebreak_mode == TieBreakMode.RANDOM:
            loser = self._do_random()
        elif self.tiebreak_mode == TieBreakMode.INTERACTIVE:
            loser = self._do_interactive()
        elif self.tiebreak_mode in (
            TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_RANDOM,
            TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_INTERACTIVE,
        ):
            loser = self._do_previous_round_counts()
        else:
            raise RuntimeError(f"unrecognized tie-break mode: {self.tiebreak_mode}")

        self.loser = loser
        _log.info(
            "%s lost a tie-break in round %d against %s. Each candidate had %s vote(s). %s",
            self.loser,
            self.round_num,
            self.non_losing_candidate_description(),
            self.num_votes,
            self.explanation,
        )
        return self.loser

    def non_losing_candidate_description(self) -> str:
        return non_losing_candidate_description([c for c in self.tied_candidates if c != self.loser])

    def _do_permutation_selection(self) -> str:
        # the tied candidate appearing latest in the permutation loses
        loser = None
        for candidate in reversed(self.candidate_permutation):
            if candidate in self.tied_candidates:
                loser = candidate
                break

        if loser is None:
            raise RuntimeError(f"none of the tied candidates appear in the permutation: {self.tied_candidates}")

        self.explanation = "The losing candidate appeared latest in the tie-breaking permutation list."
        return loser

    def _do_random(self) -> str:
        loser = self.random_generator.choice(self.tied_candidates)
        self.explanation = "The loser was randomly selected."
        return loser

    def _do_interactive(self) -> str:
        while True:
            try:
                selection = self.selector(self)
            except ValueError as e:
                _log.warning("Invalid tie-break selection: %s", e)
                continue

            if selection in self.tied_candidates:
                self.explanation = "The losing candidate was supplied by the operator."
                return selection

            _log.warning(
                "Invalid tie-break selection (%s). Choose one of: %s", selection, ", ".join(self.tied_candidates)
            )

    def _do_previous_round_counts(self) -> str:
        contenders = list(self.tied_candidates)

        for round_num in range(self.round_num - 1, 0, -1):
            tally = self.round_tallies.get(round_num, {})
            counts = {cand: tally.get(cand, decimal.Decimal(0)) for cand in contenders}
            min_votes = min(counts.values())
            lowest = [cand for cand in contenders if counts[cand] == min_votes]

            if len(lowest) == 1:
                loser = lowest[0]
                self.explanation = f"{loser} had the fewest votes ({min_votes}) in round {round_num}."
                return loser

            contenders = lowest

        # still tied after walking back to round 1
        if self.tiebreak_mode == TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_RANDOM:
            loser = self.random_generator.choice(sorted(contenders))
            self.explanation = "The loser was randomly selected."
            return loser
        elif self.tiebreak_mode == TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_INTERACTIVE:
            return self._do_interactive()
        else:
            raise RuntimeError(f"tie-break mode {self.tiebreak_mode} has no previous round fallback")

    def to_dict(self) -> Dict:
        return {
            "round": self.round_num,
            "tied_candidates": list(self.tied_candidates),
            "num_votes": self.num_votes,
            "loser": self.loser,
            "explanation": self.explanation,
            "mode": self.tiebreak_mode.value,
        }
