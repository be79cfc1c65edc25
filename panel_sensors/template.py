"""Placeholder substitution for sensor format strings.

A format string contains ``{token}`` placeholders. Each token is resolved
independently against the current sensor state; tokens that do not resolve
render as an empty string and literal text is left as it is. There is no
nesting or recursive expansion.

Three grammars exist:

* tabular (``exec`` with ``csv`` enabled): ``success``, ``exit_code``,
  ``columns``, ``rows``, ``headers``, ``json``, ``N`` and ``N.column``
* line (``exec`` without ``csv``): ``success``, ``exit_code``, ``lines``,
  ``all``, ``json`` and ``N``
* aggregate (``systemd``): numeric tokens only, see ``render_services``
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Sequence

from panel_sensors.parser import ParsedLines, ParsedTable
from panel_sensors.systemd import ServiceState, ServiceStatus

TOKEN_PATTERN = re.compile(r"\{([A-Za-z0-9_.]+)\}")

# Aggregate tokens 0-9 are fixed; per-service fields start here.
SERVICE_BLOCK_START = 10
SERVICE_BLOCK_FIELDS = ("display_name", "status", "elapsed", "label", "symbol")


def to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def render(fmt: str, resolve: Callable[[str], str | None]) -> str:
    def _substitute(match: re.Match[str]) -> str:
        value = resolve(match.group(1))
        return "" if value is None else value

    return TOKEN_PATTERN.sub(_substitute, fmt)


def _index(token: str) -> int | None:
    return int(token) if token.isdigit() else None


def _bool(value: bool) -> str:
    return "true" if value else "false"


def render_table(
    fmt: str,
    table: ParsedTable,
    separator: str,
    success: bool,
    exit_code: int,
) -> str:
    def _resolve(token: str) -> str | None:
        if token == "success":
            return _bool(success)
        if token == "exit_code":
            return str(exit_code)
        if token == "columns":
            return str(len(table.headers))
        if token == "rows":
            return str(table.row_count)
        if token == "headers":
            return ",".join(table.headers)
        if token == "json":
            return to_json(table.rows)
        if "." in token:
            row_token, column = token.split(".", 1)
            row_idx = _index(row_token)
            if row_idx is None or row_idx >= table.row_count:
                return None
            return table.rows[row_idx].get(column)
        row_idx = _index(token)
        if row_idx is None or row_idx >= table.row_count:
            return None
        row = table.rows[row_idx]
        return separator.join(row.get(header, "") for header in table.headers)

    return render(fmt, _resolve)


def render_lines(fmt: str, parsed: ParsedLines, success: bool, exit_code: int) -> str:
    def _resolve(token: str) -> str | None:
        if token == "success":
            return _bool(success)
        if token == "exit_code":
            return str(exit_code)
        if token == "lines":
            return str(parsed.line_count)
        if token == "all":
            return "\n".join(parsed.lines)
        if token == "json":
            return to_json(parsed.lines)
        line_idx = _index(token)
        if line_idx is None or line_idx >= parsed.line_count:
            return None
        return parsed.lines[line_idx]

    return render(fmt, _resolve)


def summary_line(statuses: Sequence[ServiceStatus]) -> str:
    running = sum(1 for s in statuses if s.status is ServiceState.ACTIVE)
    failed = sum(1 for s in statuses if s.status is ServiceState.FAILED)
    summary = f"{running}/{len(statuses)} running"
    if failed > 0:
        summary += f", {failed} failed"
    return summary


def render_services(fmt: str, statuses: Sequence[ServiceStatus]) -> str:
    """Render the aggregate grammar.

    ``{0}`` JSON of every record, ``{1}`` service count, ``{2}``/``{3}``/``{4}``
    active/failed/inactive counts, ``{5}`` ``name:label`` list, ``{6}``
    ``name:elapsed`` list, ``{7}`` ``symbol name`` list, ``{8}`` summary line.
    ``{10 + 5*i + f}`` addresses field ``f`` of service ``i`` in the order
    display name, state, elapsed, label, symbol.
    """

    def _count(state: ServiceState) -> str:
        return str(sum(1 for s in statuses if s.status is state))

    def _resolve(token: str) -> str | None:
        index = _index(token)
        if index is None:
            return None
        if index == 0:
            return to_json([s.to_dict() for s in statuses])
        if index == 1:
            return str(len(statuses))
        if index == 2:
            return _count(ServiceState.ACTIVE)
        if index == 3:
            return _count(ServiceState.FAILED)
        if index == 4:
            return _count(ServiceState.INACTIVE)
        if index == 5:
            return ",".join(f"{s.display_name}:{s.label}" for s in statuses)
        if index == 6:
            return ",".join(f"{s.display_name}:{s.elapsed}" for s in statuses)
        if index == 7:
            return ", ".join(f"{s.symbol} {s.display_name}" for s in statuses)
        if index == 8:
            return summary_line(statuses)
        if index < SERVICE_BLOCK_START:
            return None
        service_idx, field_idx = divmod(index - SERVICE_BLOCK_START, len(SERVICE_BLOCK_FIELDS))
        if service_idx >= len(statuses):
            return None
        value = getattr(statuses[service_idx], SERVICE_BLOCK_FIELDS[field_idx])
        return value.value if isinstance(value, ServiceState) else str(value)

    return render(fmt, _resolve)
