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
Optolink-Splitter Installer Module

Idempotent, interactive installation of Optolink-Splitter on a systemd host.

Key Features:
- Download and unpack of the splitter sources
- Python / venv prerequisites via apt-get
- Dedicated service user with serial group membership
- Virtual environment with the splitter's Python packages
- Rendered systemd unit, daemon-reload and optional enable
- --dry-run preview printing every command
"""

import os

from .index import Installer, main
from ols_updates.utils.index import get_module_version

__version__ = get_module_version(os.path.dirname(os.path.abspath(__file__)))
__all__ = ['Installer', 'main']
