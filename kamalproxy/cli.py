"""Command-line helpers: table output and environment settings."""

from __future__ import annotations

import os
import re
import sys
from enum import Enum
from typing import Any, Iterable, Mapping

ENV_PREFIX = "KAMAL_PROXY_"

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class _Style(str, Enum):
    PLAIN = ""
    BOLD = "1;34"
    ITALIC = "3;94"

    def format(self, value: str) -> str:
        return f"\033[{self.value}m{value}\033[0m"


class Table:
    """Rows of text printed in aligned, styled columns; the first row is the heading."""

    def __init__(self) -> None:
        self.column_widths: dict[int, int] = {}
        self.rows: list[list[str]] = []

    def add_row(self, row: Iterable[str]) -> None:
        row = list(row)
        for index, cell in enumerate(row):
            self.column_widths[index] = max(self.column_widths.get(index, 0), len(cell))
        self.rows.append(row)

    def render(self) -> str:
        lines = []
        for row_number, row in enumerate(self.rows):
            cells = []
            for index, cell in enumerate(row):
                if row_number == 0:
                    style = _Style.ITALIC
                elif index == 0:
                    style = _Style.BOLD
                else:
                    style = _Style.PLAIN
                pad = " " * (self.column_widths.get(index, 0) - len(cell))
                cells.append(f"{style.format(cell)}{pad}  ")
            lines.append("".join(cells) + "\n")
        return "".join(lines)

    def print(self) -> None:
        """Write the rendered table to standard output."""
        sys.stdout.write(self.render())
        sys.stdout.flush()


def find_env(key: str) -> str | None:
    """Look up ``KAMAL_PROXY_<key>``, then ``<key>``; None when neither is set."""
    value = os.environ.get(ENV_PREFIX + key)
    if value is not None:
        return value
    return os.environ.get(key)


def get_env_int(key: str, default: int) -> int:
    value = find_env(key)
    if value is None or not _INT_PATTERN.fullmatch(value):
        return default
    return int(value)


def get_env_bool(key: str, default: bool) -> bool:
    value = find_env(key)
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def service_table(services: Mapping[str, Mapping[str, Any]]) -> Table:
    """Build the table of active services, sorted by name.

    Each service maps ``host``, ``path``, ``target``, ``state`` and ``tls``.
    """
    table = Table()
    table.add_row(["Service", "Host", "Path", "Target", "State", "TLS"])
    for name in sorted(services):
        service = services[name]
        table.add_row(
            [
                name,
                service.get("host", ""),
                service.get("path", ""),
                service.get("target", ""),
                service.get("state", ""),
                "yes" if service.get("tls") else "no",
            ]
        )
    return table