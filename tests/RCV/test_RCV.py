
import decimal
import logging

import pytest

from rcv_tabulator.cvr import CastVoteRecord
from rcv_tabulator.marks import BallotMarks
from rcv_tabulator.rcv import RCV, TabulationError
from rcv_tabulator.rules import Rules

D = decimal.Decimal

# testing:

# tabulate
# get_round_tally_dict
# get_precinct_round_tally_dict
# get_win_threshold
# n_rounds
# get_winners
# get_candidate_outcomes
# get_eliminations
# get_residual_surplus
# get_round_transfer_dict
# get_surplus_fractions
# get_inactive_votes


def _make_rcv(param_input):
    rules = Rules(**param_input["rules"])
    cvrs = CastVoteRecord.from_dict_of_lists(param_input["parsed_cvr"])
    return RCV(rules, cvrs)


params = [
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"]},
                "parsed_cvr": {"ranks": [["A"]] * 6 + [["B"]] * 3 + [["C", "B"]]},
            },
            "expected": {
                "winners": {"A"},
                "n_rounds": 1,
                "thresholds": [D(5)],
                "rounds": [{"A": 6, "B": 3, "C": 1}],
            },
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"]},
                "parsed_cvr": {"ranks": [["A"]] * 4 + [["B", "A"]] * 3 + [["C", "B"]] * 2},
            },
            "expected": {
                "winners": {"B"},
                "n_rounds": 2,
                "thresholds": [D("4.5"), D("4.5")],
                "rounds": [{"A": 4, "B": 3, "C": 2}, {"A": 4, "B": 5}],
            },
        }
    ),
    (
        # B and C tied for last, permutation order drops C
        {
            "input": {
                "rules": {
                    "candidate_codes": ["A", "B", "C"],
                    "tiebreak_mode": "usePermutationInConfig",
                    "candidate_permutation": ["A", "B", "C"],
                },
                "parsed_cvr": {"ranks": [["A"]] * 4 + [["B"]] * 3 + [["C", "B"]] * 3},
            },
            "expected": {
                "winners": {"B"},
                "n_rounds": 2,
                "thresholds": [D(5), D(5)],
                "rounds": [{"A": 4, "B": 3, "C": 3}, {"A": 4, "B": 6}],
            },
        }
    ),
    (
        # undeclared write-in dropped in round 1 before the lower candidate C
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"], "undeclared_write_in_label": "UWI"},
                "parsed_cvr": {
                    "ranks": [["A"]] * 4 + [["B"]] * 3 + [["C", "B"]] + [["UWI", "B"]] * 2
                },
            },
            "expected": {
                "winners": {"B"},
                "n_rounds": 3,
                "thresholds": [D(5), D(5), D(5)],
                "rounds": [
                    {"A": 4, "B": 3, "C": 1, "UWI": 2},
                    {"A": 4, "B": 5, "C": 1},
                    {"A": 4, "B": 6},
                ],
            },
        }
    ),
    (
        # C and D both under the minimum
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C", "D"], "minimum_vote_threshold": 3},
                "parsed_cvr": {
                    "ranks": [["A"]] * 5 + [["B"]] * 4 + [["C", "B"]] * 2 + [["D", "B"]]
                },
            },
            "expected": {
                "winners": {"B"},
                "n_rounds": 2,
                "thresholds": [D(6), D(6)],
                "rounds": [{"A": 5, "B": 4, "C": 2, "D": 1}, {"A": 5, "B": 7}],
            },
        }
    ),
    (
        # winner keeps counting while the field narrows to two
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C", "D"], "continue_until_two_candidates_remain": True},
                "parsed_cvr": {"ranks": [["A"]] * 7 + [["B"]] * 3 + [["C", "B"]] * 2 + [["D"]]},
            },
            "expected": {
                "winners": {"A"},
                "n_rounds": 4,
                "thresholds": [D("6.5"), D(13), D(12), D(12)],
                "rounds": [
                    {"A": 7, "B": 3, "C": 2, "D": 1},
                    {"A": 7, "B": 3, "C": 2, "D": 1},
                    {"A": 7, "B": 3, "C": 2},
                    {"A": 7, "B": 5},
                ],
            },
        }
    ),
    (
        # A and B are batch eliminated together in round 1
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C", "D", "E"], "batch_elimination": True},
                "parsed_cvr": {
                    "ranks": [["A", "D"]] + [["B", "D"]] * 2 + [["C"]] * 4 + [["D"]] * 6 + [["E"]] * 7
                },
            },
            "expected": {
                "winners": {"D"},
                "n_rounds": 3,
                "thresholds": [D(10), D(10), D(8)],
                "rounds": [
                    {"A": 1, "B": 2, "C": 4, "D": 6, "E": 7},
                    {"C": 4, "D": 9, "E": 7},
                    {"D": 9, "E": 7},
                ],
            },
        }
    ),
]


@pytest.mark.parametrize("param_dict", params)
def test_single_winner(param_dict):

    rcv = _make_rcv(param_dict["input"])
    winners = rcv.tabulate()

    assert winners == param_dict["expected"]["winners"]
    assert rcv.get_winners() == param_dict["expected"]["winners"]
    assert rcv.n_rounds() == param_dict["expected"]["n_rounds"]

    for round_num, (expected_threshold, expected_tally) in enumerate(
        zip(param_dict["expected"]["thresholds"], param_dict["expected"]["rounds"]), start=1
    ):
        assert rcv.get_win_threshold(round_num) == expected_threshold
        assert rcv.get_round_tally_dict(round_num) == expected_tally


params = [
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C", "D"], "number_of_winners": 2},
                "parsed_cvr": {"ranks": [["A", "C"]] * 12 + [["B"]] * 9 + [["C"]] * 5 + [["D"]] * 4},
            },
            "expected": {
                "winners": {"A", "B"},
                "n_rounds": 3,
                "thresholds": [D(10), D("10.0002"), D("8.0002")],
                "surplus_fractions": {"A": D("0.1667")},
                "residual_surplus": D(0),
                "rounds": [
                    {"A": 12, "B": 9, "C": 5, "D": 4},
                    {"A": D("9.9996"), "B": 9, "C": D("7.0004"), "D": 4},
                    {"A": D("9.9996"), "B": 9, "C": D("7.0004")},
                ],
                "inactive": [D(0), D(0), D(4)],
            },
        }
    ),
    (
        # winner credits round to one ten-thousandth above the threshold
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"], "number_of_winners": 2},
                "parsed_cvr": {"ranks": [["A", "B"]] * 7 + [["B"]] * 2 + [["C"]]},
            },
            "expected": {
                "winners": {"A", "B"},
                "n_rounds": 2,
                "thresholds": [D("3.3333"), D("3.3333")],
                "surplus_fractions": {"A": D("0.5238")},
                "residual_surplus": D("0.0001"),
                "rounds": [
                    {"A": 7, "B": 2, "C": 1},
                    {"A": D("3.3333"), "B": D("5.6666"), "C": 1},
                ],
                "inactive": [D(0), D(0)],
            },
        }
    ),
]


@pytest.mark.parametrize("param_dict", params)
def test_multi_winner(param_dict):

    rcv = _make_rcv(param_dict["input"])
    rcv.tabulate()

    expected = param_dict["expected"]
    assert rcv.get_winners() == expected["winners"]
    assert rcv.n_rounds() == expected["n_rounds"]
    assert rcv.get_win_threshold() == expected["thresholds"][-1]
    assert rcv.get_surplus_fractions() == expected["surplus_fractions"]
    assert rcv.get_residual_surplus() == expected["residual_surplus"]

    total_ballots = len(rcv.cvrs)
    residual_so_far = D(0)
    for round_num, expected_tally in enumerate(expected["rounds"], start=1):
        tally = rcv.get_round_tally_dict(round_num)
        assert tally == expected_tally
        assert rcv.get_win_threshold(round_num) == expected["thresholds"][round_num - 1]
        assert rcv.get_inactive_votes(round_num) == expected["inactive"][round_num - 1]

        # every ballot is accounted for each round
        residual_so_far += rcv.get_residual_surplus(round_num)
        assert sum(tally.values()) + rcv.get_inactive_votes(round_num) + residual_so_far == total_ballots

    for cvr in rcv.cvrs:
        assert cvr.fractional_transfer_value + sum(cvr.winner_credits.values()) == 1


def test_surplus_transfers():

    rcv = _make_rcv(
        {
            "rules": {"candidate_codes": ["A", "B", "C"], "number_of_winners": 2},
            "parsed_cvr": {"ranks": [["A", "B"]] * 7 + [["B"]] * 2 + [["C"]]},
        }
    )
    rcv.tabulate()

    assert rcv.get_round_transfer_dict(1) == {"uncounted": {"A": 7, "B": 2, "C": 1}}
    assert rcv.get_round_transfer_dict(2) == {"A": {"B": D("3.6666"), "residual surplus": D("0.0001")}}


def test_candidate_outcomes_and_eliminations():

    rcv = _make_rcv(
        {
            "rules": {"candidate_codes": ["A", "B", "C", "D"], "minimum_vote_threshold": 3},
            "parsed_cvr": {"ranks": [["A"]] * 5 + [["B"]] * 4 + [["C", "B"]] * 2 + [["D", "B"]]},
        }
    )
    rcv.tabulate()

    assert rcv.get_candidate_outcomes() == [
        {"name": "A", "round_elected": None, "round_eliminated": None},
        {"name": "B", "round_elected": 2, "round_eliminated": None},
        {"name": "C", "round_elected": None, "round_eliminated": 1},
        {"name": "D", "round_elected": None, "round_eliminated": 1},
    ]

    eliminations = rcv.get_eliminations()
    assert [(d["round"], d["candidate"], d["tally"]) for d in eliminations] == [(1, "D", 1), (1, "C", 2)]
    assert all(d["reason"] == "below minimum vote threshold (3)" for d in eliminations)


def test_precinct_tallies():

    rules = Rules(["A", "B", "C"], tabulate_by_precinct=True)
    parsed_cvr = {
        "ranks": [["A"]] * 4 + [["B", "A"]] * 3 + [["C", "B"]] * 2,
        "precinct": ["P1", "P1", "P1", "P2", "P2", "P2", "P2", "P1", "P1"],
    }
    rcv = RCV(rules, CastVoteRecord.from_dict_of_lists(parsed_cvr))
    rcv.tabulate()

    assert rcv.get_precincts() == ["P1", "P2"]
    assert rcv.get_precinct_round_tally_dict("P1", 1) == {"A": 3, "B": 0, "C": 2}
    assert rcv.get_precinct_round_tally_dict("P2", 1) == {"A": 1, "B": 3, "C": 0}
    assert rcv.get_precinct_round_tally_dict("P1", 2) == {"A": 3, "B": 2}
    assert rcv.get_precinct_round_tally_dict("P2", 2) == {"A": 1, "B": 3}

    for round_num in range(1, rcv.n_rounds() + 1):
        tally = rcv.get_round_tally_dict(round_num)
        for cand in tally:
            precinct_sum = sum(rcv.get_precinct_round_tally_dict(p, round_num)[cand] for p in rcv.get_precincts())
            assert precinct_sum == tally[cand]


def test_precinct_tallies_off():

    rcv = _make_rcv({"rules": {"candidate_codes": ["A", "B"]}, "parsed_cvr": {"ranks": [["A"], ["A"], ["B"]]}})
    rcv.tabulate()

    assert rcv.get_precincts() == []
    with pytest.raises(RuntimeError):
        rcv.get_precinct_round_tally_dict("P1", 1)


params = [
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"], "exhaust_on_duplicate_candidate": True},
                "ranks": [["C", "C", "B"]],
            },
            "expected": {"round": 2, "reason": "duplicate candidate: C"},
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"], "max_skipped_ranks_allowed": 1},
                "ranks": [["C", BallotMarks.SKIPPED, BallotMarks.SKIPPED, "B"]],
            },
            "expected": {"round": 2, "reason": "undervote"},
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"], "overvote_rule": "exhaustImmediately"},
                "ranks": [["A|B", "C"]],
            },
            "expected": {"round": 1, "reason": "overvote"},
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"], "overvote_rule": "exhaustImmediately"},
                "ranks": [["C", BallotMarks.OVERVOTE, "B"]],
            },
            "expected": {"round": 2, "reason": "overvote"},
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"]},
                "ranks": [["C", "D"]],
            },
            "expected": {"round": 2, "reason": "no continuing candidates"},
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"]},
                "ranks": [[]],
            },
            "expected": {"round": 1, "reason": "undervote"},
        }
    ),
    (
        {
            "input": {
                "rules": {"candidate_codes": ["A", "B", "C"]},
                "ranks": [[BallotMarks.SKIPPED, BallotMarks.SKIPPED]],
            },
            "expected": {"round": 1, "reason": "undervote"},
        }
    ),
]


@pytest.mark.parametrize("param_dict", params)
def test_exhaust_reasons(param_dict):

    # the last ballot is the one under test, C is eliminated in round 1 and A wins in round 2
    ranks = [["A"]] * 4 + [["B"]] * 3 + [["C"]] + param_dict["input"]["ranks"]
    rcv = _make_rcv({"rules": param_dict["input"]["rules"], "parsed_cvr": {"ranks": ranks}})
    rcv.tabulate()

    assert rcv.get_winners() == {"A"}

    test_cvr = rcv.cvrs[-1]
    assert test_cvr.exhausted
    assert test_cvr.exhaust_reason == param_dict["expected"]["reason"]
    assert test_cvr.outcomes[-1].round_num == param_dict["expected"]["round"]


def test_ignored_overvote():

    ranks = [["A"]] * 4 + [["B"]] * 3 + [["C"]] * 2 + [["A|B", "C"]]
    rcv = _make_rcv(
        {"rules": {"candidate_codes": ["A", "B", "C"], "overvote_rule": "ignoreIfAnyContinuing"},
         "parsed_cvr": {"ranks": ranks}}
    )
    rcv.tabulate()

    assert rcv.get_winners() == {"A"}
    assert rcv.n_rounds() == 2

    # ignored ballots are not exhausted, they are walked again the next round
    test_cvr = rcv.cvrs[-1]
    assert not test_cvr.exhausted
    assert [(o.round_num, o.outcome_type.value, o.detail) for o in test_cvr.outcomes] == [
        (1, "ignored", "overvote"),
        (2, "ignored", "overvote"),
    ]
    assert rcv.get_inactive_votes(1) == 1
    assert rcv.get_inactive_votes(2) == 3


def test_unknown_candidate_is_skipped():

    ranks = [["A"]] * 3 + [["Z", "B"]] * 2
    rcv = _make_rcv({"rules": {"candidate_codes": ["A", "B"]}, "parsed_cvr": {"ranks": ranks}})
    rcv.tabulate()

    assert rcv.get_round_tally_dict(1) == {"A": 3, "B": 2}
    assert "Z" not in rcv.get_round_tally_dict(1)


def test_tabulate_is_idempotent():

    param_input = {
        "rules": {"candidate_codes": ["A", "B", "C", "D"], "number_of_winners": 2},
        "parsed_cvr": {"ranks": [["A", "C"]] * 12 + [["B"]] * 9 + [["C"]] * 5 + [["D"]] * 4},
    }
    rcv = _make_rcv(param_input)
    first = rcv.tabulate()
    first_tallies = [rcv.get_round_tally_dict(r) for r in range(1, rcv.n_rounds() + 1)]

    assert rcv.tabulate() == first

    # a fresh tabulation over the same ballots resets ballot state
    rerun = RCV(rcv.rules, rcv.cvrs)
    assert rerun.tabulate() == first
    assert [rerun.get_round_tally_dict(r) for r in range(1, rerun.n_rounds() + 1)] == first_tallies


def test_active_totals_do_not_increase():

    rcv = _make_rcv(
        {
            "rules": {"candidate_codes": ["A", "B", "C", "D", "E"]},
            "parsed_cvr": {
                "ranks": [["A", "D"]] + [["B", "D"]] * 2 + [["C"]] * 4 + [["D"]] * 6 + [["E"]] * 7
            },
        }
    )
    rcv.tabulate()

    active_totals = [sum(rcv.get_round_tally_dict(r).values()) for r in range(1, rcv.n_rounds() + 1)]
    assert all(later <= earlier for earlier, later in zip(active_totals, active_totals[1:]))


def test_no_ballots():

    rcv = RCV(Rules(["A", "B"]), [])
    with pytest.raises(TabulationError):
        rcv.tabulate()


def test_everyone_below_minimum_threshold():

    rcv = _make_rcv(
        {
            "rules": {"candidate_codes": ["A", "B"], "minimum_vote_threshold": 10},
            "parsed_cvr": {"ranks": [["A"], ["A"], ["B"], ["B"]]},
        }
    )
    with pytest.raises(TabulationError):
        rcv.tabulate()


def test_audit_log(caplog):

    caplog.set_level(logging.DEBUG, logger="rcv_tabulator.audit")

    rcv = _make_rcv(
        {
            "rules": {"candidate_codes": ["A", "B", "C"]},
            "parsed_cvr": {"ranks": [["A"]] * 4 + [["B", "A"]] * 3 + [["C", "B"]] * 2},
        }
    )
    rcv.tabulate()

    assert "[Round] 1 [CVR] cvr-1 [counted for] A" in caplog.messages
    assert "[Round] 2 [CVR] cvr-1 [counted for] A" in caplog.messages
    assert "[Round] 2 [CVR] cvr-8 [transferred to] B" in caplog.messages
