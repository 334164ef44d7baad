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
Diff Line Classifier Component

Turns one line of an ``rsync --itemize-changes`` dry run into a ChangeRecord.

Itemized lines are fixed width::

    >f+++++++++ settings/new_file.py      new file
    >fcst...... optolinkvs2_switch.py     content changed
    cd+++++++++ newdir/                   directory (ignored)
    *deleting   old_file.py               removed upstream

Column 0 is the update type, column 1 the entry type, columns 2-10 the
attribute flags, column 11 a space and the path follows.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

PREFIX_WIDTH = 11
NEW_ATTRIBUTES = "+" * 9
DELETE_KEYWORD = "deleting"

# update types that carry a file into the destination
TRANSFER_TYPES = (">", "c")
MESSAGE_TYPE = "*"
DIRECTORY_ENTRY = "d"


class ChangeKind(Enum):
    NEW = "new"
    CHANGED = "changed"
    DELETED = "deleted"

    @property
    def tag(self) -> str:
        """Short tag used in the selection list."""
        return {"new": "NEW", "changed": "CHG", "deleted": "DEL"}[self.value]

    @property
    def description(self) -> str:
        return f"{self.value} in update"


@dataclass(frozen=True)
class ChangeRecord:
    kind: ChangeKind
    path: str


@dataclass(frozen=True)
class ItemizedLine:
    """The fixed-width fields of one itemized line."""
    update_type: str
    entry_type: str
    attributes: str
    path: str

    @classmethod
    def parse(cls, line: str) -> Optional["ItemizedLine"]:
        """Split a line into its fields; None when it is not in itemized form."""
        if len(line) <= PREFIX_WIDTH + 1 or line[PREFIX_WIDTH] != " ":
            return None
        return cls(
            update_type=line[0],
            entry_type=line[1],
            attributes=line[2:PREFIX_WIDTH],
            path=line[PREFIX_WIDTH + 1:],
        )


def _classify_deletion(line: str) -> Optional[ChangeRecord]:
    rest = line[1:]
    if not rest.startswith(DELETE_KEYWORD):
        return None
    path = rest[len(DELETE_KEYWORD):].lstrip()
    if not path or path.endswith("/"):
        return None
    return ChangeRecord(ChangeKind.DELETED, path)


def classify(line: str) -> Optional[ChangeRecord]:
    """
    Classify one itemized line.

    Args:
        line: A line of rsync dry-run output (trailing newline allowed)

    Returns:
        ChangeRecord for a new, changed or deleted file; None for directories,
        attribute-only or informational lines and anything unrecognised.
    """
    line = line.rstrip("\r\n")
    if not line:
        return None

    update_type = line[0]

    # "*deleting" puts a "d" in the entry-type column, so it is handled before that check
    if update_type == MESSAGE_TYPE:
        return _classify_deletion(line)

    if update_type not in TRANSFER_TYPES:
        return None

    item = ItemizedLine.parse(line)
    if item is None:
        return None
    if item.entry_type == DIRECTORY_ENTRY:
        return None
    if not item.path or item.path.endswith("/"):
        return None

    if item.attributes == NEW_ATTRIBUTES:
        return ChangeRecord(ChangeKind.NEW, item.path)
    return ChangeRecord(ChangeKind.CHANGED, item.path)
