"""
Functions that write tabulation results to disk.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

import json
import logging
import pathlib
import re

import rcv_tabulator.util as util
from rcv_tabulator.package_types import Path

if TYPE_CHECKING:
    from rcv_tabulator.rcv import RCV

_log = logging.getLogger(__name__)


def _file_stub(name: str) -> str:
    # keep file names to alphanumerics, dashes and underscores
    return re.sub(r"[^\w\-]", "_", name)


def write_round_by_round_table(rcv_obj: RCV, save_dir: Path, uid: str) -> pathlib.Path:
    """Write `RCV.get_round_by_round_table` to '{save_dir}/round_by_round_table/{uid}.csv'

    :param rcv_obj: Tabulated RCV object
    :type rcv_obj: RCV
    :param save_dir: Output directory
    :type save_dir: Union[str, pathlib.Path]
    :param uid: Contest name used in the file name
    :type uid: str
    :return: Path written
    :rtype: pathlib.Path
    """
    save_path = pathlib.Path(save_dir) / "round_by_round_table"
    util.verifyDir(save_path)

    outfile = save_path / f"{_file_stub(uid)}.csv"
    rcv_obj.get_round_by_round_table().to_csv(outfile, index=False)
    _log.info("Wrote round by round table: %s", outfile)
    return outfile


def write_round_by_round_json(rcv_obj: RCV, save_dir: Path, uid: str) -> pathlib.Path:
    """Write `RCV.get_round_by_round_dict` to '{save_dir}/round_by_round_json/{uid}.json'"""
    save_path = pathlib.Path(save_dir) / "round_by_round_json"
    util.verifyDir(save_path)

    json_dict = rcv_obj.get_round_by_round_dict()
    json_dict["config"]["contest"] = uid

    outfile = save_path / f"{_file_stub(uid)}.json"
    with open(outfile, "w") as json_file:
        json.dump(json_dict, json_file, indent=2)

    _log.info("Wrote round by round json: %s", outfile)
    return outfile


def write_precinct_tables(rcv_obj: RCV, save_dir: Path, uid: str) -> pathlib.Path:
    """Write one round by round table per precinct to '{save_dir}/precinct_round_by_round/{uid}/{precinct}.csv'"""
    save_path = pathlib.Path(save_dir) / "precinct_round_by_round" / _file_stub(uid)
    util.verifyDir(save_path.parent)
    util.verifyDir(save_path)

    for precinct in rcv_obj.get_precincts():
        rcv_obj.get_precinct_round_by_round_table(precinct).to_csv(
            save_path / f"{_file_stub(precinct)}.csv", index=False
        )

    _log.info("Wrote %d precinct tables to: %s", len(rcv_obj.get_precincts()), save_path)
    return save_path


def write_ballot_audit(rcv_obj: RCV, save_dir: Path, uid: str) -> pathlib.Path:
    """Write every ballot outcome, one line per ballot per round, to '{save_dir}/ballot_audit/{uid}.csv'.
    The 'audit' column holds the same text as the audit log lines.
    """
    save_path = pathlib.Path(save_dir) / "ballot_audit"
    util.verifyDir(save_path)

    outfile = save_path / f"{_file_stub(uid)}.csv"
    header = ["ballot_id", "precinct", "batch", "round", "outcome", "detail", "value", "audit"]

    with util.CSVLogger(outfile, header) as audit_csv:
        for cvr in rcv_obj.cvrs:
            previous_recipient = None
            for outcome in cvr.outcomes:
                audit_csv.write(
                    [
                        cvr.id,
                        cvr.precinct or "",
                        cvr.batch or "",
                        outcome.round_num,
                        outcome.outcome_type.value,
                        outcome.detail,
                        util.decimal2str(outcome.value),
                        cvr.audit_string(outcome, previous_recipient=previous_recipient),
                    ]
                )
                previous_recipient = outcome.detail if outcome.outcome_type.value == "counted" else None

    _log.info("Wrote ballot audit: %s", outfile)
    return outfile


def write_ballot_snapshots_json(rcv_obj: RCV, save_dir: Path, uid: str) -> pathlib.Path:
    """Write each ballot's round by round allocation to '{save_dir}/ballot_snapshots/{uid}.json'.
    Each allocation is a list of [candidate, value] pairs: winner credits then the current recipient.
    """
    save_path = pathlib.Path(save_dir) / "ballot_snapshots"
    util.verifyDir(save_path)

    snapshots = []
    for cvr in rcv_obj.cvrs:
        snapshots.append(
            {
                "ballot_id": cvr.id,
                "rounds": {
                    str(round_num): [[cand, util.decimal2str(value)] for cand, value in cvr.get_snapshot(round_num)]
                    for round_num in range(1, rcv_obj.n_rounds() + 1)
                },
            }
        )

    outfile = save_path / f"{_file_stub(uid)}.json"
    with open(outfile, "w") as json_file:
        json.dump({"contest": uid, "ballots": snapshots}, json_file, indent=2)

    _log.info("Wrote ballot snapshots: %s", outfile)
    return outfile
