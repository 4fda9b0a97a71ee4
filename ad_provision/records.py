"""
Input record acquisition.

Reads the batch CSV and yields one positional field list per row, without the
header row. Field cleaning is left to the normalizer.
"""

import csv
import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)


class InputUnavailableError(Exception):
    """Raised when the input file cannot be opened or decoded."""
    pass


def read_records(path: str, encoding: str = 'utf-8-sig', delimiter: str = ',') -> List[List[str]]:
    """
    Read all records from a CSV file.

    The file is read completely before processing starts, so an unreadable or
    undecodable file fails the run before any directory change is made.

    Args:
        path: CSV file path
        encoding: File encoding (the default strips a UTF-8 byte order mark)
        delimiter: Field delimiter

    Returns:
        List of records, each a list of raw field strings

    Raises:
        InputUnavailableError: If the file cannot be read
    """
    try:
        with open(path, 'r', encoding=encoding, newline='') as f:
            records, blank_rows = _split_rows(csv.reader(f, delimiter=delimiter))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise InputUnavailableError(f"Cannot read input file {path}: {e}")

    if blank_rows:
        logger.info(f"Read {len(records)} records from {path} ({blank_rows} blank rows ignored)")
    else:
        logger.info(f"Read {len(records)} records from {path}")
    return records


def _split_rows(reader) -> Tuple[List[List[str]], int]:
    """Drop the header row and blank rows, returning the records and the blank row count."""
    records = []
    blank_rows = 0
    header_seen = False
    for row in reader:
        if not any(field.strip() for field in row):
            blank_rows += 1
            continue
        if not header_seen:
            header_seen = True
            logger.debug(f"Skipping header row: {row}")
            continue
        records.append(row)
    return records, blank_rows
