"""
Contains the Rules class and the enumerations used to configure a tabulation.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Union

import decimal
import enum
import json
import logging
import os
import pathlib
import random

from rcv_tabulator.marks import BallotMarks

_log = logging.getLogger(__name__)

# working precision for division and multiplication before the final rounding
_WORKING_PRECISION = 60

_ROUNDING_MODES = {
    decimal.ROUND_DOWN,
    decimal.ROUND_HALF_UP,
    decimal.ROUND_HALF_EVEN,
    decimal.ROUND_CEILING,
    decimal.ROUND_FLOOR,
    decimal.ROUND_UP,
    decimal.ROUND_HALF_DOWN,
    decimal.ROUND_05UP,
}


class RulesError(ValueError):
    pass


class OvervoteRule(enum.Enum):
    EXHAUST_IMMEDIATELY = "exhaustImmediately"
    ALWAYS_SKIP_TO_NEXT_RANK = "alwaysSkipToNextRank"
    EXHAUST_IF_ANY_CONTINUING = "exhaustIfAnyContinuing"
    IGNORE_IF_ANY_CONTINUING = "ignoreIfAnyContinuing"
    EXHAUST_IF_MULTIPLE_CONTINUING = "exhaustIfMultipleContinuing"
    IGNORE_IF_MULTIPLE_CONTINUING = "ignoreIfMultipleContinuing"


class TieBreakMode(enum.Enum):
    RANDOM = "random"
    INTERACTIVE = "interactive"
    PREVIOUS_ROUND_COUNTS_THEN_RANDOM = "previousRoundCountsThenRandom"
    PREVIOUS_ROUND_COUNTS_THEN_INTERACTIVE = "previousRoundCountsThenInteractive"
    USE_PERMUTATION_IN_CONFIG = "usePermutationInConfig"
    GENERATE_PERMUTATION = "generatePermutation"


def _to_enum(enum_cls, value):
    """Accept an enum member, its value label or its member name."""
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if value in (member.value, member.name):
            return member
    valid = ", ".join(member.value for member in enum_cls)
    raise RulesError(f"invalid {enum_cls.__name__} ({value}). Must be one of: {valid}")


def _cast_int(i):
    if i is None or isinstance(i, int):
        return i
    return int(str(i).strip())


def _cast_bool(s):
    if isinstance(s, bool):
        return s
    if str(s).strip().lower() in {"true", "1", "yes"}:
        return True
    if str(s).strip().lower() in {"false", "0", "no", ""}:
        return False
    raise RulesError(f'invalid bool value "{s}". Must be "true" or "false".')


def _cast_list(lst):
    if lst is None or lst == "":
        return []
    if isinstance(lst, str):
        return [i.strip() for i in lst.strip("\n").split(",") if i.strip()]
    return [str(i) for i in lst]


def _cast_str(s):
    if s is None:
        return None
    return str(s)


def _cast_decimal(d):
    try:
        return decimal.Decimal(str(d))
    except decimal.InvalidOperation:
        raise RulesError(f"invalid decimal value: {d}")


_cast_dict = {
    "str": _cast_str,
    "int": _cast_int,
    "bool": _cast_bool,
    "list": _cast_list,
    "decimal": _cast_decimal,
}


def get_rules_settings() -> Dict:
    """Read the packaged option table. Each option maps to a dictionary with 'type' and 'default' keys."""
    rules_settings_fpath = f"{os.path.dirname(__file__)}/rules_settings.json"
    if os.path.isfile(rules_settings_fpath) is False:
        raise RuntimeError(
            f"(developer error) Looking for rules_settings.json. Not a valid file path: {rules_settings_fpath}"
        )

    with open(rules_settings_fpath) as rules_settings_file:
        return json.load(rules_settings_file)


class Rules:
    """Read-only configuration consumed by the tabulation. Also owns the rounding policy
    (`divide` and `multiply`) and the random generator used for tie-breaks.
    """

    @staticmethod
    def from_dict(rules_dict: Dict) -> Rules:
        """Build Rules from a dictionary of option names and values. Missing options take their default from
        rules_settings.json. Unrecognized options are logged and ignored.

        :param rules_dict: Dictionary of options.
        :type rules_dict: Dict
        :return: Validated Rules object.
        :rtype: Rules
        """
        rules_settings = get_rules_settings()

        kwargs = {}
        for option, value in rules_dict.items():
            if option not in rules_settings:
                _log.warning('"%s" is an unrecognized rules option, it will be ignored.', option)
                continue
            if value is None:
                kwargs[option] = None
            else:
                kwargs[option] = _cast_dict[rules_settings[option]["type"]](value)

        # add in defaults for missing options
        for option in rules_settings:
            if option not in kwargs:
                default = rules_settings[option]["default"]
                kwargs[option] = None if default is None else _cast_dict[rules_settings[option]["type"]](default)

        return Rules(**kwargs)

    @staticmethod
    def from_json(rules_path: Union[str, pathlib.Path]) -> Rules:
        """Read a rules json file. See :meth:`Rules.from_dict`."""
        rules_path = pathlib.Path(rules_path)
        if os.path.isfile(rules_path) is False:
            raise RuntimeError(f"not a valid file path: {rules_path}")

        with open(rules_path) as rules_file:
            rules_dict = json.load(rules_file)

        _log.info("Read rules: %s", rules_path)
        return Rules.from_dict(rules_dict)

    def __init__(
        self,
        candidate_codes: List[str],
        number_of_winners: int = 1,
        overvote_rule: Union[OvervoteRule, str] = OvervoteRule.ALWAYS_SKIP_TO_NEXT_RANK,
        tiebreak_mode: Union[TieBreakMode, str] = TieBreakMode.RANDOM,
        candidate_permutation: Optional[List[str]] = None,
        random_seed: Optional[int] = None,
        max_skipped_ranks_allowed: Optional[int] = None,
        max_rankings_allowed: Optional[int] = None,
        batch_elimination: bool = False,
        minimum_vote_threshold: Union[decimal.Decimal, int, str] = 0,
        continue_until_two_candidates_remain: bool = False,
        exhaust_on_duplicate_candidate: bool = False,
        tabulate_by_precinct: bool = False,
        undeclared_write_in_label: Optional[str] = None,
        overvote_label: Optional[str] = None,
        undervote_label: Optional[str] = None,
        decimal_places_for_vote_arithmetic: int = 4,
        rounding: str = decimal.ROUND_HALF_EVEN,
        validate: bool = True,
    ) -> None:
        """Constructor

        :param candidate_codes: Declared candidates. The undeclared write-in label, if given, is added as a pseudo-candidate.
        :param number_of_winners: Seats to fill, defaults to 1
        :param overvote_rule: How ranks holding several candidates are handled, defaults to ALWAYS_SKIP_TO_NEXT_RANK
        :param tiebreak_mode: How tied losers are resolved, defaults to RANDOM
        :param candidate_permutation: Candidate ordering for USE_PERMUTATION_IN_CONFIG, defaults to None
        :param random_seed: Seed for random tie-breaks and generated permutations. Unseeded if None.
        :param max_skipped_ranks_allowed: Consecutive skipped ranks tolerated before a ballot exhausts. Unlimited if None.
        :param max_rankings_allowed: Number of rankings on the ballot. Number of candidate codes if None.
        :param batch_elimination: Eliminate all mathematically defeated candidates together, defaults to False
        :param minimum_vote_threshold: Candidates under this tally are dropped together, defaults to 0 (off)
        :param continue_until_two_candidates_remain: Keep eliminating after the winner is found until two candidates remain. Single winner contests only.
        :param exhaust_on_duplicate_candidate: Exhaust a ballot that ranks a candidate twice, defaults to False
        :param tabulate_by_precinct: Keep a tally per precinct, defaults to False
        :param undeclared_write_in_label: Label of the undeclared write-in pseudo-candidate, defaults to None
        :param overvote_label: Source data label marking an overvoted rank, defaults to None
        :param undervote_label: Source data label marking a skipped rank, defaults to None
        :param decimal_places_for_vote_arithmetic: Places kept by `divide` and `multiply`, defaults to 4
        :param rounding: decimal module rounding mode used by `divide` and `multiply`, defaults to ROUND_HALF_EVEN
        :param validate: Run :meth:`validate` at the end of construction, defaults to True
        """
        self.candidate_codes = [str(c) for c in candidate_codes]
        self.undeclared_write_in_label = undeclared_write_in_label or None
        if self.undeclared_write_in_label and self.undeclared_write_in_label not in self.candidate_codes:
            self.candidate_codes.append(self.undeclared_write_in_label)

        self.number_of_winners = number_of_winners
        self.overvote_rule = _to_enum(OvervoteRule, overvote_rule)
        self.tiebreak_mode = _to_enum(TieBreakMode, tiebreak_mode)
        self.random_seed = random_seed
        self.max_skipped_ranks_allowed = max_skipped_ranks_allowed
        self.max_rankings_allowed = max_rankings_allowed
        self.batch_elimination = batch_elimination
        self.minimum_vote_threshold = decimal.Decimal(str(minimum_vote_threshold or 0))
        self.continue_until_two_candidates_remain = continue_until_two_candidates_remain
        self.exhaust_on_duplicate_candidate = exhaust_on_duplicate_candidate
        self.tabulate_by_precinct = tabulate_by_precinct
        self.overvote_label = overvote_label or None
        self.undervote_label = undervote_label or None
        self.decimal_places_for_vote_arithmetic = decimal_places_for_vote_arithmetic
        self.rounding = rounding

        self.random_generator = random.Random(random_seed)

        if self.tiebreak_mode == TieBreakMode.GENERATE_PERMUTATION:
            self.candidate_permutation = sorted(self.candidate_codes)
            self.random_generator.shuffle(self.candidate_permutation)
            _log.info("Generated candidate permutation for tie-breaks: %s", ", ".join(self.candidate_permutation))
        else:
            self.candidate_permutation = [str(c) for c in candidate_permutation] if candidate_permutation else []

        if validate:
            self.validate()

    def validate(self) -> None:
        """Check option values and combinations.

        :raises RulesError: Raised on the first invalid option found.
        """
        if not self.candidate_codes:
            raise RulesError("at least one candidate code must be declared")

        if len(set(self.candidate_codes)) != len(self.candidate_codes):
            raise RulesError(f"candidate codes must be unique: {self.candidate_codes}")

        reserved = {BallotMarks.OVERVOTE, BallotMarks.SKIPPED, BallotMarks.UNDERVOTE}
        if reserved.intersection(self.candidate_codes):
            raise RulesError(f"candidate codes may not use reserved marks: {sorted(reserved)}")

        if not isinstance(self.number_of_winners, int) or self.number_of_winners < 1:
            raise RulesError(f"number_of_winners must be at least 1: {self.number_of_winners}")

        n_declared = len([c for c in self.candidate_codes if c != self.undeclared_write_in_label])
        if self.number_of_winners > n_declared:
            raise RulesError(
                f"number_of_winners ({self.number_of_winners}) exceeds the number of declared candidates ({n_declared})"
            )

        if not 1 <= self.decimal_places_for_vote_arithmetic <= 20:
            raise RulesError(
                f"decimal_places_for_vote_arithmetic must be between 1 and 20: {self.decimal_places_for_vote_arithmetic}"
            )

        if self.rounding not in _ROUNDING_MODES:
            raise RulesError(f"invalid rounding mode: {self.rounding}")

        if self.max_skipped_ranks_allowed is not None and self.max_skipped_ranks_allowed < 0:
            raise RulesError(f"max_skipped_ranks_allowed must be 0 or higher: {self.max_skipped_ranks_allowed}")

        if self.max_rankings_allowed is not None and self.max_rankings_allowed < 1:
            raise RulesError(f"max_rankings_allowed must be 1 or higher: {self.max_rankings_allowed}")

        if self.minimum_vote_threshold < 0:
            raise RulesError(f"minimum_vote_threshold must be 0 or higher: {self.minimum_vote_threshold}")

        if self.continue_until_two_candidates_remain and self.number_of_winners > 1:
            raise RulesError("continue_until_two_candidates_remain is only allowed in single winner contests")

        if self.overvote_label and self.overvote_rule not in (
            OvervoteRule.EXHAUST_IMMEDIATELY,
            OvervoteRule.ALWAYS_SKIP_TO_NEXT_RANK,
        ):
            raise RulesError(
                "when an overvote label is used, overvote_rule must be "
                f"{OvervoteRule.EXHAUST_IMMEDIATELY.value} or {OvervoteRule.ALWAYS_SKIP_TO_NEXT_RANK.value}"
            )

        if self.tiebreak_mode == TieBreakMode.USE_PERMUTATION_IN_CONFIG:
            missing = set(self.candidate_codes) - set(self.candidate_permutation)
            if missing:
                raise RulesError(f"candidate_permutation is missing candidates: {sorted(missing)}")

    @property
    def quantum(self) -> decimal.Decimal:
        return decimal.Decimal(1).scaleb(-self.decimal_places_for_vote_arithmetic)

    @property
    def effective_max_rankings_allowed(self) -> int:
        if self.max_rankings_allowed is None:
            return len(self.candidate_codes)
        return self.max_rankings_allowed

    def _round(self, value: decimal.Decimal) -> decimal.Decimal:
        return value.quantize(self.quantum, rounding=self.rounding, context=decimal.Context(prec=_WORKING_PRECISION))

    def divide(self, numerator, denominator) -> decimal.Decimal:
        """Divide and round to `decimal_places_for_vote_arithmetic` places with the configured rounding mode.
        The quotient is rounded once.
        """
        # ROUND_05UP keeps a sticky last digit so the second rounding is exact
        working = decimal.Context(prec=_WORKING_PRECISION, rounding=decimal.ROUND_05UP)
        quotient = working.divide(decimal.Decimal(numerator), decimal.Decimal(denominator))
        return self._round(quotient)

    def multiply(self, a, b) -> decimal.Decimal:
        """Multiply and round like :meth:`divide`."""
        working = decimal.Context(prec=_WORKING_PRECISION, rounding=decimal.ROUND_05UP)
        product = working.multiply(decimal.Decimal(a), decimal.Decimal(b))
        return self._round(product)

    def is_candidate_code(self, candidate: str) -> bool:
        return candidate in self.candidate_codes

    def to_dict(self) -> Dict:
        return {
            "candidate_codes": list(self.candidate_codes),
            "number_of_winners": self.number_of_winners,
            "overvote_rule": self.overvote_rule.value,
            "tiebreak_mode": self.tiebreak_mode.value,
            "candidate_permutation": list(self.candidate_permutation),
            "random_seed": self.random_seed,
            "max_skipped_ranks_allowed": self.max_skipped_ranks_allowed,
            "max_rankings_allowed": self.max_rankings_allowed,
            "batch_elimination": self.batch_elimination,
            "minimum_vote_threshold": str(self.minimum_vote_threshold),
            "continue_until_two_candidates_remain": self.continue_until_two_candidates_remain,
            "exhaust_on_duplicate_candidate": self.exhaust_on_duplicate_candidate,
            "tabulate_by_precinct": self.tabulate_by_precinct,
            "undeclared_write_in_label": self.undeclared_write_in_label,
            "overvote_label": self.overvote_label,
            "undervote_label": self.undervote_label,
            "decimal_places_for_vote_arithmetic": self.decimal_places_for_vote_arithmetic,
            "rounding": self.rounding,
        }
