import json

import pandas as pd

import rcv_tabulator.write_out as write_out
from rcv_tabulator.cvr import CastVoteRecord
from rcv_tabulator.rcv import RCV
from rcv_tabulator.rules import Rules


def _tabulated_rcv():
    rules = Rules(["A", "B", "C"], tabulate_by_precinct=True)
    parsed_cvr = {
        "ranks": [["A"]] * 4 + [["B", "A"]] * 3 + [["C", "B"]] * 2,
        "precinct": ["P1", "P1", "P1", "P2", "P2", "P2", "P2", "P1", "P1"],
    }
    rcv = RCV(rules, CastVoteRecord.from_dict_of_lists(parsed_cvr))
    rcv.tabulate()
    return rcv


def test_write_round_by_round_table(tmp_path):

    rcv = _tabulated_rcv()
    outfile = write_out.write_round_by_round_table(rcv, tmp_path, "test contest")

    assert outfile == tmp_path / "round_by_round_table" / "test_contest.csv"
    df = pd.read_csv(outfile)
    assert df["candidate"].tolist() == ["B", "A", "C", "exhaust", "residual_surplus", "colsum"]
    assert df["r2_count"].tolist() == [5.0, 4.0, 0.0, 0.0, 0.0, 9.0]


def test_write_round_by_round_json(tmp_path):

    rcv = _tabulated_rcv()
    outfile = write_out.write_round_by_round_json(rcv, tmp_path, "test")

    with open(outfile) as json_file:
        written = json.load(json_file)

    assert written["config"]["contest"] == "test"
    assert written["config"]["winners"] == ["B"]
    assert [r["round"] for r in written["results"]] == [1, 2]


def test_write_precinct_tables(tmp_path):

    rcv = _tabulated_rcv()
    save_path = write_out.write_precinct_tables(rcv, tmp_path, "test")

    assert sorted(p.name for p in save_path.iterdir()) == ["P1.csv", "P2.csv"]
    df = pd.read_csv(save_path / "P2.csv")
    assert df["r1_count"].tolist() == [3.0, 1.0, 0.0, 4.0]


def test_write_ballot_audit(tmp_path):

    rcv = _tabulated_rcv()
    outfile = write_out.write_ballot_audit(rcv, tmp_path, "test")

    df = pd.read_csv(outfile, dtype=str, keep_default_na=False)
    assert len(df) == 18

    transferred = df[df["ballot_id"] == "cvr-8"]
    assert transferred["audit"].tolist() == [
        "[Round] 1 [CVR] cvr-8 [counted for] C",
        "[Round] 2 [CVR] cvr-8 [transferred to] B",
    ]
    assert transferred["precinct"].tolist() == ["P1", "P1"]


def test_write_ballot_snapshots_json(tmp_path):

    rcv = _tabulated_rcv()
    outfile = write_out.write_ballot_snapshots_json(rcv, tmp_path, "test")

    with open(outfile) as json_file:
        written = json.load(json_file)

    assert len(written["ballots"]) == 9
    assert written["ballots"][7] == {"ballot_id": "cvr-8", "rounds": {"1": [["C", "1"]], "2": [["B", "1"]]}}
