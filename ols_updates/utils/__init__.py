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
Utilities shared by the Optolink-Splitter operator tools.

This module provides common utilities used by the backup & update, manager
and install tools.
"""

from .index import log_message, get_module_version
from .moduleUtils import (
    ToolConfigError,
    load_tool_config,
    validate_tool_config,
    get_config_value,
    check_dependencies,
    edit_config_file,
)
from .state_manager import BackupManager, BackupError, BackupInfo
from .service_manager import ServiceManager, ServiceError, systemd_available
from .lock import UpdateLock, UpdateLockError
from .console import Console

__all__ = [
    'log_message',
    'get_module_version',
    'ToolConfigError',
    'load_tool_config',
    'validate_tool_config',
    'get_config_value',
    'check_dependencies',
    'edit_config_file',
    'BackupManager',
    'BackupError',
    'BackupInfo',
    'ServiceManager',
    'ServiceError',
    'systemd_available',
    'UpdateLock',
    'UpdateLockError',
    'Console',
]
