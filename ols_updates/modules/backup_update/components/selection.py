"""
HOMESERVER Update Management System
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Selection Component

Parses the operator's answer to "which changes should be applied?":

    ""  / a / A     everything
    n / N           nothing
    2,4-6,9         single numbers and inclusive ranges, comma separated
"""

import re
from typing import List, Sequence, Tuple
from .diff_classifier import ChangeKind, ChangeRecord

_NUMBER_RE = re.compile(r"^[0-9]+$")
_RANGE_RE = re.compile(r"^([0-9]+)-([0-9]+)$")


class SelectionError(ValueError):
    """Base class for a rejected selection; carries the offending token."""

    def __init__(self, message: str, token: str):
        super().__init__(message)
        self.token = token


class InvalidRangeError(SelectionError):
    pass


class InvalidNumberError(SelectionError):
    pass


class InvalidTokenError(SelectionError):
    pass


def _parse_token(token: str, maximum: int) -> range:
    match = _RANGE_RE.match(token)
    if match:
        lo, hi = int(match.group(1)), int(match.group(2))
        if lo < 1 or hi > maximum or lo > hi:
            raise InvalidRangeError(f"Invalid range: {token}", token)
        return range(lo, hi + 1)

    if _NUMBER_RE.match(token):
        number = int(token)
        if number < 1 or number > maximum:
            raise InvalidNumberError(f"Invalid number: {token}", token)
        return range(number, number + 1)

    raise InvalidTokenError(f"Invalid input: {token!r}", token)


def parse_selection(text: str, maximum: int) -> List[int]:
    """
    Parse a selection into sorted, unique 1-based indices.

    Args:
        text: The operator's input
        maximum: Number of candidates

    Returns:
        List[int]: Ascending indices in 1..maximum

    Raises:
        SelectionError: On the first bad token; nothing is selected then
    """
    text = (text or "").strip()
    if text in ("", "a", "A"):
        return list(range(1, maximum + 1))
    if text in ("n", "N"):
        return []

    selected = set()
    for raw in text.split(","):
        selected.update(_parse_token(raw.strip(), maximum))
    return sorted(selected)


def split_selection(candidates: Sequence[ChangeRecord], indices: Sequence[int]) -> Tuple[List[str], List[str]]:
    """Selected candidates as (copy list, delete list)."""
    copy_list = []
    delete_list = []
    for index in indices:
        record = candidates[index - 1]
        if record.kind is ChangeKind.DELETED:
            delete_list.append(record.path)
        else:
            copy_list.append(record.path)
    return copy_list, delete_list
