"""
Contains CVR parser functions.
"""

from typing import Iterable, List, Optional

import logging
import os
import pathlib

import pandas as pd

from rcv_tabulator.cvr import CastVoteRecord
from rcv_tabulator.marks import BallotMarks
from rcv_tabulator.package_types import BallotDictOfLists, ParserDict, Path

_log = logging.getLogger(__name__)

# column names recognized as ballot details, lower case
_ID_COLUMNS = {"id", "ballot_id", "cvr_id", "ballotid"}
_PRECINCT_COLUMNS = {"precinct", "precinct_id"}
_BATCH_COLUMNS = {"batch", "batch_id"}

_DEFAULT_SKIPPED_LABELS = {"", "nan", "under", "skipped", "undervote"}


def add_parser(new_parsers: ParserDict) -> None:
    """Add custom parser functions to the module parser dictionary.

    :param new_parsers: A dictionary containing parser functions, with their names as keys.
    :type new_parsers: Dict
    """
    parser_dict.update(new_parsers)


def get_parser_dict() -> ParserDict:
    """Returns the module parser dictionary. Including both package parsers and
    custom parsers added with :func:`add_parser`.

    :return: A dictionary of parser functions. Keys are parser name strings.
    :rtype: Dict
    """
    return parser_dict


def rank_column_csv(
    cvr_path: Path,
    overvote_labels: Optional[Iterable[str]] = None,
    undervote_labels: Optional[Iterable[str]] = None,
) -> BallotDictOfLists:
    """Reads ballot ranking information stored in csv format.
    One ballot per row, with ranking columns appearing in order and named with the word "rank"
    (e.x. "rank1", "rank2", etc). A cell may hold several candidates separated by "|", which is an overvote.

    :param cvr_path: The path to the CVR file. If a file called "candidate_codes.csv" exists in the same directory, it will be read and columns named "code" and "candidate" will be used to replace candidate codes with candidate names in the CVR file during readin.
    :type cvr_path: Union[str, pathlib.Path]
    :param overvote_labels: Cell values marking an overvote, defaults to None
    :type overvote_labels: Optional[Iterable[str]], optional
    :param undervote_labels: Extra cell values marking a skipped rank, defaults to None
    :type undervote_labels: Optional[Iterable[str]], optional
    :raises RuntimeError: Raised if the file has no rank columns.
    :return: A dictionary of lists. Rank columns are combined into per-ballot lists and stored with the key 'ranks'. Id, precinct and batch columns are stored under 'id', 'precinct' and 'batch'. All other columns are kept under their own names.
    :rtype: Dict[str, List]
    """
    cvr_path = pathlib.Path(cvr_path)
    _log.info("Reading ballots: %s", cvr_path)

    df = pd.read_csv(cvr_path, encoding="utf8", dtype=str, keep_default_na=False)

    # find rank columns
    rank_col = [col for col in df.columns if "rank" in col.lower()]
    if not rank_col:
        raise RuntimeError(f'no rank columns (names containing "rank") found in {cvr_path}')

    df[rank_col] = df[rank_col].apply(lambda col: col.str.strip())

    # if candidate codes file exist, swap in names
    candidate_codes_fpath = cvr_path.parent / "candidate_codes.csv"
    if os.path.isfile(candidate_codes_fpath):

        cand_codes = pd.read_csv(candidate_codes_fpath, encoding="utf8", dtype=str)
        cand_codes_dict = {str(code).strip(): cand for code, cand in zip(cand_codes["code"], cand_codes["candidate"])}
        df[rank_col] = df[rank_col].apply(
            lambda col: col.map(lambda cell: _replace_codes(cell, cand_codes_dict))
        )

    skipped_labels = _DEFAULT_SKIPPED_LABELS.union(undervote_labels or [])
    overvote_labels = set(overvote_labels or [])

    def clean_cell(cell):
        if cell in skipped_labels or cell.lower() in skipped_labels:
            return BallotMarks.SKIPPED
        if cell in overvote_labels:
            return BallotMarks.OVERVOTE
        return cell

    # pull out rank lists
    rank_col_list = [[clean_cell(cell) for cell in df[col].tolist()] for col in rank_col]
    rank_lists = [list(rank_tuple) for rank_tuple in zip(*rank_col_list)]

    parsed = {"ranks": rank_lists}

    for col in df.columns:
        if col in rank_col:
            continue

        key = col.lower().strip()
        if key in _ID_COLUMNS:
            key = "id"
        elif key in _PRECINCT_COLUMNS:
            key = "precinct"
        elif key in _BATCH_COLUMNS:
            key = "batch"
        else:
            key = col

        if key in parsed:
            raise RuntimeError(f'more than one column maps to "{key}" in {cvr_path}')
        parsed[key] = df[col].tolist()

    _log.info("Read %d ballots.", len(rank_lists))
    return parsed


def _replace_codes(cell: str, cand_codes_dict: dict) -> str:
    parts = [part.strip() for part in cell.split(BallotMarks.OVERVOTE_DELIMITER)]
    return BallotMarks.OVERVOTE_DELIMITER.join(cand_codes_dict.get(part, part) for part in parts)


def read_cvrs(cvr_path: Path, parser: str = "rank_column_csv", **parser_kwargs) -> List[CastVoteRecord]:
    """Parse a CVR file and build ballots. Computed ballot ids use the file name.

    :param cvr_path: Path to the CVR file.
    :type cvr_path: Union[str, pathlib.Path]
    :param parser: Name of a parser in :func:`get_parser_dict`, defaults to "rank_column_csv"
    :type parser: str, optional
    :raises RuntimeError: Raised for an unknown parser name.
    :return: List of ballots.
    :rtype: List[CastVoteRecord]
    """
    parsers = get_parser_dict()
    if parser not in parsers:
        raise RuntimeError(f"unknown parser: {parser}. Choose from: {', '.join(parsers)}")

    parsed = parsers[parser](cvr_path, **parser_kwargs)
    return CastVoteRecord.from_dict_of_lists(parsed, source_name=pathlib.Path(cvr_path).stem)


parser_dict = {
    "rank_column_csv": rank_column_csv,
}
