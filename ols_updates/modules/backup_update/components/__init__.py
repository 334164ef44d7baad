"""
HOMESERVER Update Management System
Copyright (C) 2024 HOMESERVER LLC

Components of the backup & update tool: the dry-run change-set analyzer and
the pieces that download, select and apply an update.
"""

from .diff_classifier import ChangeKind, ChangeRecord, classify
from .change_analyzer import ChangeSet, ChangeSetAnalyzer, MirrorToolError, ProtectedConflict
from .selection import (
    SelectionError,
    InvalidRangeError,
    InvalidNumberError,
    InvalidTokenError,
    parse_selection,
    split_selection,
)
from .change_applier import ApplySummary, ChangeApplier, ChangeApplyError
from .conflict_reporter import ProtectedConflictReporter, group_conflicts
from .github_source import GitHubSource, SourceDownloadError
from .update_runner import UpdateRunner, UpdateResult

__all__ = [
    'ChangeKind',
    'ChangeRecord',
    'classify',
    'ChangeSet',
    'ChangeSetAnalyzer',
    'MirrorToolError',
    'ProtectedConflict',
    'SelectionError',
    'InvalidRangeError',
    'InvalidNumberError',
    'InvalidTokenError',
    'parse_selection',
    'split_selection',
    'ApplySummary',
    'ChangeApplier',
    'ChangeApplyError',
    'ProtectedConflictReporter',
    'group_conflicts',
    'GitHubSource',
    'SourceDownloadError',
    'UpdateRunner',
    'UpdateResult',
]
