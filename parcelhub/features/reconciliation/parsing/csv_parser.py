"""
CSV parsing for parcel status exports.

The exports come from several courier portals and are only loosely
RFC4180: quoting is inconsistent, columns move around between exports and
trailing blank lines are common. Parsing is therefore line based and
forgiving. Nothing in this module raises on bad input; callers decide
whether a partial result is good enough.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from parcelhub.models.domain.parcel_domain import UpdateRecord

# Semantic column -> accepted header names. The first entry is the canonical
# header; later entries are looser variants seen in other exports.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "tracking_number": ("trackingnumber", "tracking_number", "tracking number"),
    "status": ("tplstatus", "status"),
    "updated_by": ("laststatusupdatedbyname",),
    "updated_at": ("laststatusupdatedat",),
    "direction": ("subdirection", "sub_direction", "direction"),
}


@dataclass(slots=True)
class UpdateColumns:
    """Column indices for one export; -1 means the column is absent."""

    tracking_number: int = 0
    status: int = -1
    updated_by: int = -1
    updated_at: int = -1
    direction: int = -1

    def as_dict(self) -> dict[str, int]:
        return {
            "tracking_number": self.tracking_number,
            "status": self.status,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at,
            "direction": self.direction,
        }


@dataclass(slots=True)
class ParsedUpdateFile:
    line_count: int
    headers: list[str] = field(default_factory=list)
    columns: UpdateColumns = field(default_factory=UpdateColumns)
    records: list[UpdateRecord] = field(default_factory=list)

    @property
    def has_data_rows(self) -> bool:
        return self.line_count >= 2


def parse_csv_line(line: str) -> list[str]:
    """
    Split one CSV line into trimmed fields.

    Commas inside double quotes do not split, and a doubled quote inside a
    quoted span is an escaped literal quote. An unmatched quote just leaves
    the rest of the line in quote mode.

        >>> parse_csv_line('"a,b","c""d"')
        ['a,b', 'c"d']
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < length and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def split_lines(text: str) -> list[str]:
    """Split raw file content into non-blank lines (CRLF tolerant)."""
    return [line for line in text.splitlines() if line.strip()]


def normalize_header(header: str) -> str:
    return header.replace('"', "").strip().lower()


def find_column(headers: list[str], aliases: tuple[str, ...], *, substring: bool = False) -> int:
    """
    Locate a column by exact header match, trying aliases in order.

    With substring=True a header that merely contains the canonical name
    also matches, after all exact matches failed.
    """
    for alias in aliases:
        if alias in headers:
            return headers.index(alias)

    if substring and aliases:
        canonical = aliases[0]
        for index, header in enumerate(headers):
            if canonical in header:
                return index

    return -1


def resolve_update_columns(header_line: str) -> tuple[list[str], UpdateColumns]:
    headers = [normalize_header(h) for h in parse_csv_line(header_line)]

    tracking_index = find_column(headers, COLUMN_ALIASES["tracking_number"])
    columns = UpdateColumns(
        # Tracking number is column 0 when no header names it
        tracking_number=tracking_index if tracking_index >= 0 else 0,
        status=find_column(headers, COLUMN_ALIASES["status"]),
        updated_by=find_column(headers, COLUMN_ALIASES["updated_by"]),
        updated_at=find_column(headers, COLUMN_ALIASES["updated_at"]),
        direction=find_column(headers, COLUMN_ALIASES["direction"], substring=True),
    )
    return headers, columns


def clean_value(value: str | None) -> str | None:
    """Strip stray quotes and whitespace; empty becomes None."""
    if value is None:
        return None
    cleaned = value.replace('"', "").strip()
    return cleaned or None


def _cell(values: list[str], index: int) -> str | None:
    if index < 0 or index >= len(values):
        return None
    return clean_value(values[index])


def parse_update_row(values: list[str], columns: UpdateColumns) -> UpdateRecord:
    return UpdateRecord(
        tracking_number=_cell(values, columns.tracking_number) or "",
        status=_cell(values, columns.status),
        direction=_cell(values, columns.direction),
        updated_by=_cell(values, columns.updated_by),
        updated_at=_cell(values, columns.updated_at),
    )


def parse_update_csv(text: str) -> ParsedUpdateFile:
    """
    Parse a status export into update records.

    The first non-blank line is the header. Every data line yields a
    record; a row without a tracking number gets an empty one, which the
    engine skips without counting it as found or missing.
    """
    lines = split_lines(text)
    if not lines:
        return ParsedUpdateFile(line_count=0)

    headers, columns = resolve_update_columns(lines[0])
    parsed = ParsedUpdateFile(line_count=len(lines), headers=headers, columns=columns)
    parsed.records = [parse_update_row(parse_csv_line(line), columns) for line in lines[1:]]
    return parsed
