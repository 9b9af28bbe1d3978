"""
Contains BallotMarks class
"""

from __future__ import annotations
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union


class BallotMarks:
    """Wrap up the rank to candidate set mapping of a ballot with useful methods."""

    # special non-candidate marks
    SKIPPED = "skipped"
    OVERVOTE = "overvote"
    UNDERVOTE = "undervote"

    # separates candidates marked at the same rank, e.g. "A|B"
    OVERVOTE_DELIMITER = "|"

    @staticmethod
    def split_mark(mark: Union[str, Iterable[str], None]) -> FrozenSet[str]:
        """Convert a single rank position into the set of marks it holds.

        Skipped positions (None, empty string, SKIPPED or UNDERVOTE) become an empty set. Strings containing
        the overvote delimiter are split into their parts. Any other iterable is taken as a set of marks.

        :param mark: contents of one ranking position
        :type mark: Union[str, Iterable[str], None]
        :return: frozenset of marks at that rank
        :rtype: FrozenSet[str]
        """
        if mark is None:
            return frozenset()

        if isinstance(mark, str):
            parts = [part.strip() for part in mark.split(BallotMarks.OVERVOTE_DELIMITER)]
        else:
            parts = [str(part).strip() for part in mark]

        return frozenset(part for part in parts if part and part not in {BallotMarks.SKIPPED, BallotMarks.UNDERVOTE})

    @staticmethod
    def from_rankings(rankings: Dict[int, Iterable[str]]) -> BallotMarks:
        """A constructor of sorts. Build BallotMarks from an explicit rank to candidates mapping.

        :param rankings: Dictionary with positive integer ranks as keys and an iterable of candidates as values.
        :type rankings: Dict[int, Iterable[str]]
        :raises RuntimeError: Raised if any rank is not a positive integer.
        :return: New BallotMarks object.
        :rtype: BallotMarks
        """
        if not rankings:
            return BallotMarks()

        if any(not isinstance(rank, int) or rank < 1 for rank in rankings):
            raise RuntimeError(f"ranks must be positive integers: {sorted(rankings, key=str)}")

        max_rank = max(rankings)
        marks = [rankings.get(rank) or BallotMarks.SKIPPED for rank in range(1, max_rank + 1)]
        return BallotMarks(marks)

    def __init__(self, marks: Optional[List] = None) -> None:
        """Constructor

        :param marks: List of ranking positions in order of preference (first element is rank 1). Each element is a candidate name, a special mark, a "A|B" overvote string or an iterable of candidate names. Defaults to None.
        :type marks: List, optional
        """
        self.input_marks = list(marks) if marks else []

        self.rankings = {}
        self.unique_marks = set()
        self.unique_candidates = set()

        if self.input_marks:
            self.update_marks(self.input_marks)

    def __iter__(self) -> Iterator[Tuple[int, FrozenSet[str]]]:
        return iter(sorted(self.rankings.items()))

    def __len__(self) -> int:
        return len(self.rankings)

    def __repr__(self) -> str:
        ranks = ", ".join(f"{rank}: {sorted(cands)}" for rank, cands in self)
        return f"BallotMarks({{{ranks}}})"

    def copy(self) -> BallotMarks:
        """Make a copy.

        :return: Returns a copy of BallotMarks object
        :rtype: BallotMarks
        """
        return BallotMarks(self.input_marks)

    def update_marks(self, new_marks: List) -> None:
        """Update `rankings` property along with `unique_marks` and `unique_candidates`
        based on a new list of ranking positions. Skipped positions leave a gap in the rank numbers.

        :param new_marks: List of new ordered ranking positions to replace old ones.
        :type new_marks: List
        """
        self.input_marks = list(new_marks)
        self.rankings = {}
        for rank, mark in enumerate(self.input_marks, start=1):
            mark_set = self.split_mark(mark)
            if mark_set:
                self.rankings[rank] = mark_set

        self.unique_marks = set().union(*self.rankings.values()) if self.rankings else set()
        self.unique_candidates = self.unique_marks - {BallotMarks.OVERVOTE}

    def get_rankings(self) -> Dict[int, FrozenSet[str]]:
        """
        :return: Dictionary of rank to frozenset of marks, ordered by rank
        :rtype: Dict[int, FrozenSet[str]]
        """
        return dict(sorted(self.rankings.items()))

    def get_unique_marks(self) -> Set:
        """
        :return: Set of unique marks
        :rtype: Set
        """
        return self.unique_marks

    def get_unique_candidates(self) -> Set:
        """
        :return: Set of unique candidate marks
        :rtype: Set
        """
        return self.unique_candidates

    def max_rank(self) -> int:
        """
        :return: Highest rank number holding a mark, 0 if the ballot is blank.
        :rtype: int
        """
        return max(self.rankings) if self.rankings else 0

    def has_overvote(self) -> bool:
        """
        :return: True if any rank holds more than one mark or the explicit overvote mark.
        :rtype: bool
        """
        return any(len(cands) > 1 or BallotMarks.OVERVOTE in cands for cands in self.rankings.values())
