"""CSV ingestion for bulk imports.

Provisioning sheets come from spreadsheets exported with whatever
delimiter the operator's locale uses, so the delimiter is detected from
the header line unless forced.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")

DELIMITER_NAMES = {",": "comma", ";": "semicolon", "\t": "tab", "|": "pipe"}


class CsvError(ValueError):
    """Base class for CSV input errors."""


class EmptyFileError(CsvError):
    pass


class NoColumnsError(CsvError):
    pass


class CsvParseError(CsvError):
    pass


@dataclass
class ParsedCSV:
    headers: list[str]
    rows: list[dict[str, str]]
    delimiter: str


def detect_delimiter(first_line: str) -> str:
    """Pick the candidate delimiter occurring most often in the header line.

    Ties and lines without any candidate resolve to comma.
    """
    detected = ","
    max_count = 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = first_line.count(delimiter)
        if count > max_count:
            max_count = count
            detected = delimiter
    return detected


def delimiter_name(delimiter: str) -> str:
    return DELIMITER_NAMES.get(delimiter, f'"{delimiter}"')


def _tokenize(line: str, delimiter: str, line_number: int) -> list[str]:
    """Split one line, honouring double quotes; a quote left open ends with the line."""
    try:
        return next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [])
    except csv.Error as e:
        raise CsvParseError(f"Line {line_number}: {e}") from e


def parse_csv(file_path: Path, delimiter: str | None = None) -> ParsedCSV:
    """Parse a delimited text file into headers and rows of trimmed strings.

    Every line is tokenized on its own, so a stray quote only affects the
    row it appears in.

    Args:
        file_path: Path to the CSV file
        delimiter: Force this delimiter instead of detecting it

    Returns:
        ParsedCSV with rows keyed by header name

    Raises:
        FileNotFoundError: If the file doesn't exist
        EmptyFileError: If the file has no non-blank lines
        NoColumnsError: If the header line yields no columns
        CsvParseError: If the file is not UTF-8, the delimiter is not a
            single character, or a line cannot be tokenized
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"CSV file not found: {file_path}")

    try:
        content = file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvParseError(f"File is not valid UTF-8 text: {e}") from e

    lines = [line for line in content.splitlines() if line.strip()]
    if not lines:
        raise EmptyFileError("CSV file is empty")

    delimiter = delimiter or detect_delimiter(lines[0])
    if len(delimiter) != 1:
        raise CsvParseError(f'Delimiter must be a single character, got "{delimiter}"')

    headers = [h.strip() for h in _tokenize(lines[0], delimiter, 1)]
    if not any(headers):
        raise NoColumnsError("No columns found in CSV header")

    width = len(headers)

    records = []
    for line_number, line in enumerate(lines[1:], 2):
        fields = _tokenize(line, delimiter, line_number)[:width]
        records.append(fields + [""] * (width - len(fields)))

    df = pd.DataFrame(records, columns=list(range(width)), dtype=str).fillna("")

    rows: list[dict[str, str]] = []
    for values in df.itertuples(index=False, name=None):
        row: dict[str, str] = {}
        for header, value in zip(headers, values):
            row[header] = str(value).strip()
        rows.append(row)

    logger.info(
        "Parsed %d rows with %d columns from %s (delimiter: %s)",
        len(rows),
        len(headers),
        file_path,
        delimiter_name(delimiter),
    )
    return ParsedCSV(headers=headers, rows=rows, delimiter=delimiter)
