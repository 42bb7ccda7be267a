"""
csv_table.py — Parse merged CSV text into an ordered, header-keyed table.

The merge service returns its output as a single CSV string. Rows come back
as plain dicts (header → trimmed cell), in file order, the same shape the
rest of the pipeline passes around.

Parsing is forgiving on purpose:
  - doubled quotes inside a quoted field are a literal quote
  - commas and newlines inside quotes are literal content
  - bare carriage returns are dropped
  - blank lines are skipped
  - short rows are padded with "", extra trailing fields are ignored

pandas.read_csv is not used here: it raises on ragged rows and turns empty
cells into NaN, and this table has to survive whatever a user exported.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field

import pandas as pd

QUOTE     = '"'
DELIMITER = ","
NEWLINE   = "\n"


@dataclass
class CsvTable:
    header: list[str]           = field(default_factory=list)
    rows:   list[dict[str, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def empty(self) -> bool:
        return not self.rows

    def to_frame(self) -> pd.DataFrame:
        """Rows as a DataFrame of strings, columns in header order."""
        columns = list(dict.fromkeys(self.header))
        return pd.DataFrame(self.rows, columns=columns, dtype=str)

    def to_csv(self) -> str:
        buf = io.StringIO()
        buf.write(DELIMITER.join(_quote(h) for h in self.header))
        buf.write(NEWLINE)
        for row in self.rows:
            buf.write(DELIMITER.join(_quote(row.get(h, "")) for h in self.header))
            buf.write(NEWLINE)
        return buf.getvalue()


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

def _quote(value: str) -> str:
    if any(ch in value for ch in (QUOTE, DELIMITER, NEWLINE)):
        return QUOTE + value.replace(QUOTE, QUOTE * 2) + QUOTE
    return value


def iter_records(text: str):
    """
    Yield each non-blank record of `text` as a list of raw (untrimmed) fields.

    A record is blank when its source line holds nothing but whitespace.
    """
    text = text.replace("\r", "")
    fields: list[str] = []
    cur: list[str]    = []
    in_quotes   = False
    has_content = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch == QUOTE:
            has_content = True
            if in_quotes and i + 1 < n and text[i + 1] == QUOTE:
                cur.append(QUOTE)
                i += 2
                continue
            in_quotes = not in_quotes
            i += 1
            continue

        if ch == DELIMITER and not in_quotes:
            has_content = True
            fields.append("".join(cur))
            cur = []
            i += 1
            continue

        if ch == NEWLINE and not in_quotes:
            fields.append("".join(cur))
            if has_content:
                yield fields
            fields, cur = [], []
            has_content = False
            i += 1
            continue

        if not ch.isspace():
            has_content = True
        cur.append(ch)
        i += 1

    if has_content:
        fields.append("".join(cur))
        yield fields


def parse_csv(text: str | None) -> CsvTable:
    """Parse CSV text. Never raises on malformed input; empty text gives an empty table."""
    records = iter_records(text or "")
    first = next(records, None)
    if first is None:
        return CsvTable()

    header = [h.strip() for h in first]
    rows: list[dict[str, str]] = []
    for fields in records:
        row: dict[str, str] = {}
        for j, name in enumerate(header):
            row[name] = fields[j].strip() if j < len(fields) else ""
        rows.append(row)

    return CsvTable(header=header, rows=rows)
