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
Optolink-Splitter Backup & Update Module

Keeps an Optolink-Splitter installation current from its GitHub repository
without overwriting local configuration.

Key Features:
- Two rsync dry runs (with and without protected patterns) per update
- Per-file selection of new, changed and deleted files
- Report of protected files the update would otherwise have touched
- Service stop / backup / apply / start with restore offer on failure
- Timestamped backups with rotation and restore

Usage:
    from ols_updates.modules.backup_update import main

    result = main(["--dry-run"])
    if result["success"]:
        print("Check finished")
"""

import os

from .index import BackupUpdateTool, main
from ols_updates.utils.index import get_module_version

__version__ = get_module_version(os.path.dirname(os.path.abspath(__file__)))
__all__ = ['BackupUpdateTool', 'main']
