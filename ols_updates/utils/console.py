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
Interactive console helpers shared by the operator tools.

Screens are printed straight to stdout; answers come from input(). Both can
be swapped out, which is how the tests drive the menus.
"""

import os
import sys
from typing import Callable, Optional

RULE = "=" * 40
THIN_RULE = "─" * 42


class Console:
    """Prompting and screen helpers with injectable input/output."""

    def __init__(self, input_func: Optional[Callable[[str], str]] = None,
                 output_func: Optional[Callable[[str], None]] = None,
                 clear_screens: Optional[bool] = None):
        self._input = input_func or input
        self._output = output_func or print
        if clear_screens is None:
            clear_screens = input_func is None and sys.stdout.isatty()
        self.clear_screens = clear_screens

    def echo(self, text: str = "") -> None:
        self._output(text)

    def clear(self) -> None:
        if self.clear_screens:
            os.system("clear")

    def header(self, title: str, clear: bool = True) -> None:
        if clear:
            self.clear()
        self.echo(RULE)
        self.echo(f"  {title}")
        self.echo(RULE)
        self.echo()

    def prompt(self, text: str) -> str:
        return self._input(text).strip()

    def choice(self, text: str) -> str:
        """Single menu choice, case folded to lower."""
        return self.prompt(text).lower()

    def confirm(self, question: str, default: bool = True) -> bool:
        """
        Yes/no question. Empty answer takes the default; anything not starting with y/n asks again.
        """
        hint = "[Y/n]" if default else "[y/N]"
        while True:
            answer = self.prompt(f"{question} {hint}: ").lower()
            if not answer:
                return default
            if answer.startswith("y"):
                return True
            if answer.startswith("n"):
                return False
            self.echo("Please answer y or n.")

    def pause(self) -> None:
        self._input("Press Enter to continue...")
        self.echo()
