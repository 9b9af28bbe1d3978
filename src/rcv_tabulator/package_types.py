import decimal
import pathlib

from typing import Callable, Dict, List, Union

# used in parser and writer functions
Path = Union[str, pathlib.Path]

# ballot columns in dict-of-list form, 'ranks' holds one list of rank positions per ballot
BallotDictOfLists = Dict[str, List]

# parser name -> parser function
ParserDict = Dict[str, Callable[..., BallotDictOfLists]]

# candidate -> votes for one round
RoundTally = Dict[str, decimal.Decimal]

# round number -> tally
RoundTallies = Dict[int, RoundTally]
