"""
Module that contains the command line app.

A contest directory holds rules.json (see rules_settings.json for options) and cvr.csv
(read with the rank_column_csv parser).
"""
import argparse
import logging
import os

import rcv_tabulator.parsers as parsers
import rcv_tabulator.util as util
import rcv_tabulator.write_out as write_out
from rcv_tabulator.rcv import RCV
from rcv_tabulator.rules import Rules

_log = logging.getLogger(__name__)

RULES_FILE = "rules.json"
CVR_FILE = "cvr.csv"
AUDIT_LOGGER = "rcv_tabulator.audit"


def _add_audit_handler(audit_path: str) -> logging.Handler:
    handler = logging.FileHandler(audit_path, mode="w")
    handler.setFormatter(logging.Formatter("%(message)s"))

    audit_log = logging.getLogger(AUDIT_LOGGER)
    audit_log.setLevel(logging.DEBUG)
    audit_log.addHandler(handler)
    # keep audit lines out of the console
    audit_log.propagate = False
    return handler


def _remove_audit_handler(handler: logging.Handler) -> None:
    audit_log = logging.getLogger(AUDIT_LOGGER)
    audit_log.removeHandler(handler)
    audit_log.setLevel(logging.NOTSET)
    audit_log.propagate = True
    handler.close()


def main(argv=None):

    # argument parse and valid
    p = argparse.ArgumentParser(description="Tabulate an RCV contest.")

    p.add_argument("contest_dir", help=f"Path to directory containing {RULES_FILE} and {CVR_FILE}.")
    p.add_argument("--output", help="By default all output will be written to contest_dir/results, "
                                    "provide this argument to specify an alternative.")
    p.add_argument("--audit", action="store_true", help="Write the per ballot audit log and audit table.")
    p.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")

    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    contest_dir = args.contest_dir
    if not os.path.isabs(contest_dir):
        contest_dir = f"{os.getcwd()}/{contest_dir}"

    if not os.path.isdir(contest_dir):
        raise RuntimeError(f"invalid path [contest_dir]: {contest_dir}")

    output_dir = args.output if args.output else f"{contest_dir}/results"
    util.verifyDir(output_dir)

    uid = os.path.basename(os.path.normpath(contest_dir))

    # read in contest info
    rules = Rules.from_json(f"{contest_dir}/{RULES_FILE}")
    cvrs = parsers.read_cvrs(
        f"{contest_dir}/{CVR_FILE}",
        overvote_labels=[rules.overvote_label] if rules.overvote_label else None,
        undervote_labels=[rules.undervote_label] if rules.undervote_label else None,
    )

    audit_handler = None
    if args.audit:
        audit_handler = _add_audit_handler(f"{output_dir}/{uid}_audit.log")

    try:
        rcv_obj = RCV(rules, cvrs)
        winners = rcv_obj.tabulate()
    finally:
        if audit_handler is not None:
            _remove_audit_handler(audit_handler)

    # write results
    write_out.write_round_by_round_table(rcv_obj, output_dir, uid)
    write_out.write_round_by_round_json(rcv_obj, output_dir, uid)
    if rules.tabulate_by_precinct:
        write_out.write_precinct_tables(rcv_obj, output_dir, uid)
    if args.audit:
        write_out.write_ballot_audit(rcv_obj, output_dir, uid)
        write_out.write_ballot_snapshots_json(rcv_obj, output_dir, uid)

    _log.info("Winner(s) of %s: %s", uid, ", ".join(sorted(winners)))
    return 0
