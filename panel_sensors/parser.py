from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_SEPARATOR = ";"


@dataclass
class ParsedTable:
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class ParsedLines:
    lines: list[str] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return len(self.lines)


def _non_blank_lines(output: str) -> list[str]:
    return [line for line in output.strip().split("\n") if line.strip()]


def split_fields(line: str, separator: str = DEFAULT_SEPARATOR) -> list[str]:
    """Split one delimited line, honouring double-quoted regions.

    A ``"`` toggles a region in which the separator is taken literally. The
    quote characters themselves are dropped and every field is trimmed.
    Escaped quotes (``""``) are not recognised.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == separator and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def parse_table(output: str, separator: str = DEFAULT_SEPARATOR) -> ParsedTable:
    """Parse header-delimited command output.

    The first non-blank line names the columns. Short rows are padded with
    empty strings and surplus fields are dropped. When a header name repeats,
    the right-most column's value wins in the row mapping.
    """
    lines = _non_blank_lines(output)
    if not lines:
        return ParsedTable()
    headers = split_fields(lines[0], separator)
    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        values = split_fields(line, separator)
        row: dict[str, str] = {}
        for idx, header in enumerate(headers):
            row[header] = values[idx] if idx < len(values) else ""
        rows.append(row)
    return ParsedTable(headers=headers, rows=rows)


def parse_lines(output: str, max_lines: int = 0) -> ParsedLines:
    lines = [line.strip() for line in _non_blank_lines(output)]
    if max_lines > 0:
        lines = lines[-max_lines:]
    return ParsedLines(lines=lines)
