
import decimal
import random

import pytest

from rcv_tabulator.rules import TieBreakMode
from rcv_tabulator.tiebreak import TieBreak, non_losing_candidate_description

D = decimal.Decimal

ROUND_TALLIES = {
    1: {"A": D(2), "B": D(5), "C": D(5)},
    2: {"A": D(6), "B": D(6), "C": D(7)},
    3: {"A": D(6), "B": D(6), "C": D(6)},
}

params = [
    (
        {
            "input": {"tied_candidates": ["B", "A"], "round_tallies": ROUND_TALLIES},
            "expected": {"loser": "A", "explanation": "A had the fewest votes (2) in round 1."},
        }
    ),
    (
        {
            "input": {"tied_candidates": ["A", "C"], "round_tallies": ROUND_TALLIES},
            "expected": {"loser": "A", "explanation": "A had the fewest votes (6) in round 2."},
        }
    ),
]


@pytest.mark.parametrize("param_dict", params)
def test_previous_round_counts(param_dict):

    tie_break = TieBreak(
        param_dict["input"]["tied_candidates"],
        TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_RANDOM,
        3,
        D(6),
        param_dict["input"]["round_tallies"],
    )

    assert tie_break.select_loser() == param_dict["expected"]["loser"]
    assert tie_break.explanation == param_dict["expected"]["explanation"]


def test_previous_round_counts_falls_back_to_random():

    tallies = {1: {"B": D(3), "C": D(3)}, 2: {"B": D(3), "C": D(3)}}
    tie_break = TieBreak(
        ["B", "C"],
        TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_RANDOM,
        2,
        D(3),
        tallies,
        random_generator=random.Random(11),
    )

    assert tie_break.select_loser() == random.Random(11).choice(["B", "C"])
    assert tie_break.explanation == "The loser was randomly selected."


def test_previous_round_counts_falls_back_to_interactive():

    tie_break = TieBreak(
        ["B", "C"],
        TieBreakMode.PREVIOUS_ROUND_COUNTS_THEN_INTERACTIVE,
        1,
        D(3),
        {1: {"B": D(3), "C": D(3)}},
        selector=lambda tb: "C",
    )

    assert tie_break.select_loser() == "C"
    assert tie_break.explanation == "The losing candidate was supplied by the operator."


params = [
    (
        {
            "input": {"tied_candidates": ["A", "B"], "permutation": ["B", "A", "C"]},
            "expected": "A",
        }
    ),
    (
        {
            "input": {"tied_candidates": ["A", "B", "C"], "permutation": ["C", "B", "A"]},
            "expected": "A",
        }
    ),
    (
        {
            "input": {"tied_candidates": ["B", "C"], "permutation": ["C", "B", "A"]},
            "expected": "B",
        }
    ),
]


@pytest.mark.parametrize("param_dict", params)
def test_permutation(param_dict):

    tie_break = TieBreak(
        param_dict["input"]["tied_candidates"],
        TieBreakMode.USE_PERMUTATION_IN_CONFIG,
        2,
        D(1),
        {},
        candidate_permutation=param_dict["input"]["permutation"],
    )

    assert tie_break.select_loser() == param_dict["expected"]
    assert tie_break.explanation == "The losing candidate appeared latest in the tie-breaking permutation list."


def test_random_is_seeded():

    tied = ["C", "A", "B"]
    tie_break = TieBreak(tied, TieBreakMode.RANDOM, 1, D(1), {}, random_generator=random.Random(42))

    assert tie_break.select_loser() == random.Random(42).choice(sorted(tied))


def test_interactive_retries_invalid_selections():

    answers = iter(["Z", "B"])

    def selector(tb):
        answer = next(answers)
        if answer == "Z":
            raise ValueError("not a number")
        return answer

    tie_break = TieBreak(["A", "B"], TieBreakMode.INTERACTIVE, 4, D(2), {}, selector=selector)

    assert tie_break.select_loser() == "B"

    # the loser is fixed once selected
    tie_break.selector = lambda tb: "A"
    assert tie_break.select_loser() == "B"


def test_interactive_unknown_candidate():

    answers = iter(["Z", "A"])
    tie_break = TieBreak(["A", "B"], TieBreakMode.INTERACTIVE, 4, D(2), {}, selector=lambda tb: next(answers))

    assert tie_break.select_loser() == "A"


params = [
    ({"input": [], "expected": ""}),
    ({"input": ["A"], "expected": "A"}),
    ({"input": ["A", "B"], "expected": "A and B"}),
    ({"input": ["A", "B", "C"], "expected": "A, B, and C"}),
]


@pytest.mark.parametrize("param_dict", params)
def test_non_losing_candidate_description(param_dict):
    assert non_losing_candidate_description(param_dict["input"]) == param_dict["expected"]


def test_to_dict():

    tie_break = TieBreak(
        ["C", "B", "A"],
        TieBreakMode.USE_PERMUTATION_IN_CONFIG,
        2,
        D(3),
        {},
        candidate_permutation=["A", "B", "C"],
    )
    tie_break.select_loser()

    assert tie_break.non_losing_candidate_description() == "A and B"
    assert tie_break.to_dict() == {
        "round": 2,
        "tied_candidates": ["A", "B", "C"],
        "num_votes": D(3),
        "loser": "C",
        "explanation": "The losing candidate appeared latest in the tie-breaking permutation list.",
        "mode": "usePermutationInConfig",
    }
