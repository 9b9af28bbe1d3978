import csv
import decimal
import os
import pathlib

########################
# helper funcs


class CSVLogger:
    """Write rows to a csv file one at a time. Every row must match the header length."""

    def __init__(self, path, header_list):
        self.row_length = len(header_list)
        self.path = pathlib.Path(path)
        self.file = open(self.path, "w", newline="")
        self.writer = csv.writer(self.file, delimiter=",", quotechar='"', quoting=csv.QUOTE_ALL)
        self.rows_written = 0
        self.writer.writerow(header_list)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def write(self, row_list):
        if len(row_list) != self.row_length:
            msg = f"CSVLogger.write ({self.path.name}) row list has length {len(row_list)}, "
            msg += f"doesn't match header list length ({self.row_length})"
            raise RuntimeError(msg)
        self.writer.writerow(row_list)
        self.rows_written += 1

    def close(self):
        self.file.flush()
        self.file.close()


def verifyDir(dir_path, make_if_missing=True, error_msg_tail="is not an existing folder"):
    """
    Check that a directory exists and if missing, either error or create it.

    :param dir_path: directory path to verify
    :param make_if_missing: if True, create directory if missing
    :param error_msg_tail: if make_if_missing is False and directory missing,
     use this error message after the dir_path.
    """
    if os.path.isdir(dir_path) is False:
        if make_if_missing:
            os.makedirs(dir_path)
        else:
            raise RuntimeError(f"{dir_path} {error_msg_tail}")


def decimal2float(stat, round_places=3):
    """Convert any decimal objects used internally into float for reporting.

    Args:
        stat (any): Any value.

    Returns:
        any type not Decimal: If the stat passed is type Decimal, it is converted to float.
    """

    if isinstance(stat, decimal.Decimal):
        return round(float(stat), round_places)
    else:
        return stat


def decimal2str(stat):
    # exact text for json output, NaN and None pass through as None
    if stat is None:
        return None
    if isinstance(stat, decimal.Decimal):
        if stat.is_nan():
            return None
        return str(stat.to_integral_value()) if stat == stat.to_integral_value() else str(stat)
    return stat


def DL2LD(dl):
    return [dict(zip(dl, t)) for t in zip(*dl.values())]

