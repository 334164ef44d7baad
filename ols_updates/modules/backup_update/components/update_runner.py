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
Update Runner Component

Main orchestrator for "Update from GitHub". Coordinates the other components:

1. download and unpack the branch tarball (GitHubSource)
2. dry-run diff against the installation (ChangeSetAnalyzer)
3. report protected files (ProtectedConflictReporter)
4. let the operator pick changes (parse_selection)
5. stop service, back up, apply (ChangeApplier), start service
6. offer to restore the backup when the service does not come back

The scratch directory is removed however the run ends.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence
from ols_updates.index import log_message
from ols_updates.utils.console import Console, THIN_RULE
from ols_updates.utils.service_manager import ServiceManager, ServiceError
from ols_updates.utils.state_manager import BackupManager, BackupError
from .diff_classifier import ChangeKind
from .change_analyzer import ChangeSet, ChangeSetAnalyzer, MirrorToolError
from .change_applier import ApplySummary, ChangeApplier, ChangeApplyError
from .conflict_reporter import ProtectedConflictReporter
from .github_source import GitHubSource, SourceDownloadError, cleanup_tmp_dir
from .selection import SelectionError, parse_selection, split_selection

# Operator scripts shipped in the upstream repository; updating them warrants a restart notice
TOOL_FILES = (
    "tools_ols_backup_update.sh",
    "tools_ols_manager.sh",
    "tools_ols_install.sh",
)

UPDATED = "updated"
UP_TO_DATE = "up_to_date"
DRY_RUN = "dry_run"
CANCELLED = "cancelled"
SERVICE_FAILED = "service_failed"
RESTORED = "restored"
FAILED = "failed"


@dataclass
class UpdateResult:
    status: str
    commit: str = "unknown"
    backup_dir: Optional[str] = None
    applied: Optional[ApplySummary] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status in (UPDATED, UP_TO_DATE, DRY_RUN, CANCELLED)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        return data


class UpdateRunner:
    """Runs one interactive update of the installation from GitHub."""

    def __init__(self, config: Dict[str, Any], console: Optional[Console] = None,
                 service: Optional[ServiceManager] = None,
                 backups: Optional[BackupManager] = None,
                 source: Optional[GitHubSource] = None,
                 analyzer: Optional[ChangeSetAnalyzer] = None,
                 applier: Optional[ChangeApplier] = None,
                 dry_run: bool = False):
        cfg = config["config"]
        self.install_dir = cfg["install_dir"]
        self.service_name = cfg["service_name"]
        self.tmp_dir = cfg["tmp_dir"]
        self.exclude_patterns: List[str] = list(cfg.get("exclude_patterns", []))
        self.github = cfg["github"]
        self.dry_run = dry_run

        self.console = console or Console()
        self.service = service or ServiceManager(self.service_name)
        self.backups = backups or BackupManager(
            self.install_dir,
            base_dir=cfg["backup"].get("base_dir", ""),
            max_backups=cfg["backup"]["max_backups"],
        )
        self.source = source or GitHubSource(self.github["user"], self.github["repo"], self.github["branch"])
        self.analyzer = analyzer or ChangeSetAnalyzer()
        self.applier = applier or ChangeApplier()
        self.reporter = ProtectedConflictReporter(self.exclude_patterns)

    def run(self) -> UpdateResult:
        """
        Execute the update flow.

        Returns:
            UpdateResult: Outcome of the run; expected failures are reported here, not raised
        """
        self._show_intro()
        try:
            return self._run()
        except (SourceDownloadError, MirrorToolError, BackupError, ServiceError) as e:
            log_message(f"[UPDATE] ✗ {e}", "ERROR")
            self.console.echo(f"ERROR: {e}")
            self.console.pause()
            return UpdateResult(FAILED, message=str(e))
        finally:
            cleanup_tmp_dir(self.tmp_dir)

    def _show_intro(self) -> None:
        c = self.console
        c.header("Update from GitHub")
        c.echo(f"Installation directory: {self.install_dir}")
        c.echo(f"Service:                {self.service_name}")
        c.echo(f"Repository:             {self.github['user']}/{self.github['repo']}")
        c.echo(f"Branch:                 {self.github['branch']}")
        if self.dry_run:
            c.echo()
            c.echo("*** DRY RUN MODE - No changes will be made ***")
        c.echo()

    def _run(self) -> UpdateResult:
        c = self.console
        new_dir = str(self.source.fetch(self.tmp_dir))

        commit = self.source.latest_commit()
        c.echo(f"    Latest commit: {commit}")
        c.echo()

        log_message("[UPDATE] Analysing changes...")
        change_set, conflicts = self.analyzer.analyze(new_dir, self.install_dir, self.exclude_patterns)
        for warning in change_set.warnings:
            c.echo(f"⚠ {warning}")

        self._show_protected(conflicts)
        self._show_summary(change_set)

        if change_set.is_empty():
            c.echo("Everything is already up to date.")
            self.backups.cleanup_old_backups()
            c.pause()
            return UpdateResult(UP_TO_DATE, commit=commit)

        if self.dry_run:
            self._show_dry_run(change_set)
            return UpdateResult(DRY_RUN, commit=commit)

        candidates = change_set.candidates()
        self._show_candidates(change_set)
        answer = c.prompt("Enter your selection [a]: ")
        if answer.lower() == "q":
            return self._cancel(commit, "Update cancelled.")

        try:
            indices = parse_selection(answer, len(candidates))
        except SelectionError as e:
            return self._cancel(commit, f"{e}. Update cancelled.")

        copy_list, delete_list = split_selection(candidates, indices)
        if not copy_list and not delete_list:
            return self._cancel(commit, "No files selected. Update cancelled.")

        self._show_confirmation(change_set, copy_list, delete_list)
        if not c.confirm("Apply these changes?", default=True):
            return self._cancel(commit, "Update cancelled.")

        return self._apply(new_dir, commit, copy_list, delete_list)

    def _cancel(self, commit: str, message: str) -> UpdateResult:
        self.console.echo(message)
        self.console.pause()
        return UpdateResult(CANCELLED, commit=commit, message=message)

    def _apply(self, new_dir: str, commit: str,
               copy_list: List[str], delete_list: List[str]) -> UpdateResult:
        c = self.console
        c.echo()
        log_message(f"[UPDATE] Stopping service {self.service_name}")
        if not self.service.stop():
            message = f"'systemctl stop {self.service_name}' failed; nothing was changed"
            log_message(f"[UPDATE] ✗ {message}", "ERROR")
            c.echo(f"ERROR: {message}")
            c.pause()
            return UpdateResult(FAILED, commit=commit, message=message)

        try:
            backup_dir = str(self.backups.create_backup())
            self.backups.cleanup_old_backups()
        except BackupError as e:
            return self._backup_failed(commit, str(e))

        log_message("[UPDATE] Applying changes...")
        try:
            applied = self.applier.apply(new_dir, self.install_dir, copy_list, delete_list)
        except ChangeApplyError as e:
            c.echo(f"✗ {e}")
            c.echo(f"  Applied before the error: {e.summary}")
            return self._recover(commit, backup_dir, e.summary, str(e))

        c.echo(f"  {applied}")
        log_message(f"[UPDATE] Starting service {self.service_name}")
        self.service.start()

        if not self.service.is_active():
            c.echo("✗ Service could not be started!")
            c.echo()
            c.echo("Status:")
            self.service.status()
            c.echo()
            c.echo("Last logs:")
            self.service.journal(lines=20)
            c.echo()
            return self._recover(commit, backup_dir, applied, "service did not start after the update")

        self._show_success(commit, backup_dir, copy_list)
        return UpdateResult(UPDATED, commit=commit, backup_dir=backup_dir, applied=applied)

    def _backup_failed(self, commit: str, reason: str) -> UpdateResult:
        """Bring the service back up after a failed backup; the install tree is untouched."""
        c = self.console
        log_message(f"[UPDATE] ✗ {reason}", "ERROR")
        c.echo(f"ERROR: {reason}")
        c.echo("No files were changed.")
        log_message(f"[UPDATE] Starting service {self.service_name}")
        if self.service.start():
            c.echo("Service has been started again.")
        else:
            c.echo(f"✗ Service is still stopped. Start it with: sudo systemctl start {self.service_name}")
        c.pause()
        return UpdateResult(FAILED, commit=commit, message=reason)

    def _recover(self, commit: str, backup_dir: str, applied: ApplySummary, reason: str) -> UpdateResult:
        c = self.console
        if c.confirm("Restore backup?", default=False):
            self.service.stop()
            try:
                self.backups.restore_backup(backup_dir)
            except BackupError as e:
                log_message(f"[UPDATE] ✗ {e}", "ERROR")
                c.echo(f"ERROR: {e}")
                c.echo("Service is still stopped.")
                c.echo(f"  Backup location: {backup_dir}")
                c.pause()
                return UpdateResult(SERVICE_FAILED, commit=commit, backup_dir=backup_dir,
                                    applied=applied, message=str(e))
            self.service.start()
            c.echo()
            c.echo("Backup has been restored.")
            c.echo(f"Run 'journalctl -u {self.service_name} -n 50' to investigate the issue.")
            status = RESTORED
        else:
            c.echo()
            c.echo("Backup NOT restored. Service is still stopped.")
            c.echo(f"  Backup location: {backup_dir}")
            c.echo(f"  Check logs: journalctl -u {self.service_name} -n 50")
            status = SERVICE_FAILED
        c.pause()
        return UpdateResult(status, commit=commit, backup_dir=backup_dir, applied=applied, message=reason)

    # --- Screens ---
    def _show_protected(self, conflicts) -> None:
        c = self.console
        lines = self.reporter.render(conflicts)
        if not lines:
            c.echo("Protected files: None affected by this update.")
            c.echo()
            return

        c.header("Protected Files - Conflict Warning", clear=False)
        for line in lines:
            c.echo(line)
        c.echo()
        c.echo("Your local versions remain untouched.")
        c.echo()
        c.pause()

    def _show_summary(self, change_set: ChangeSet) -> None:
        c = self.console
        c.echo(THIN_RULE)
        c.echo("  Change summary")
        c.echo(THIN_RULE)
        c.echo(f"  [+] New files:     {len(change_set.new):3d}")
        c.echo(f"  [~] Changed files: {len(change_set.changed):3d}")
        c.echo(f"  [-] Deleted files: {len(change_set.deleted):3d}")
        c.echo(THIN_RULE)
        c.echo()

    def _show_dry_run(self, change_set: ChangeSet) -> None:
        c = self.console
        for title, mark, paths in (("New files:", "+", change_set.new),
                                   ("Changed files:", "~", change_set.changed),
                                   ("Deleted files:", "-", change_set.deleted)):
            if paths:
                c.echo(title)
                for path in paths:
                    c.echo(f"  {mark} {path}")
                c.echo()
        c.echo("*** DRY RUN finished - no changes made ***")
        c.echo()
        c.pause()

    def _show_candidates(self, change_set: ChangeSet) -> None:
        c = self.console
        c.header("Select Files to Update")
        index = 1
        for title, kind, paths in (("New files", ChangeKind.NEW, change_set.new),
                                   ("Changed files", ChangeKind.CHANGED, change_set.changed),
                                   ("Deleted files", ChangeKind.DELETED, change_set.deleted)):
            if not paths:
                continue
            c.echo(f"{title} ({len(paths)}):")
            for path in paths:
                c.echo(f"  {index}) [{kind.tag}] {path}")
                index += 1
            c.echo()

        c.echo(THIN_RULE)
        c.echo()
        c.echo("Selection options:")
        c.echo("  1,3,5 = Select specific files")
        c.echo("  1-5   = Select range")
        c.echo("  4,6-8 = Combine")
        c.echo("  a     = Select all (default)")
        c.echo("  n     = Select none")
        c.echo()
        c.echo("  q     = Cancel")
        c.echo()

    def _show_confirmation(self, change_set: ChangeSet,
                           copy_list: Sequence[str], delete_list: Sequence[str]) -> None:
        c = self.console
        c.header("Confirm Update")
        new_paths = set(change_set.new)
        if copy_list:
            c.echo(f"Files to update ({len(copy_list)}):")
            for path in copy_list:
                kind = ChangeKind.NEW if path in new_paths else ChangeKind.CHANGED
                c.echo(f"  [{kind.tag}] {path}")
            c.echo()
        if delete_list:
            c.echo(f"Files to delete ({len(delete_list)}):")
            for path in delete_list:
                c.echo(f"  [{ChangeKind.DELETED.tag}] {path}")
            c.echo()
        if self.exclude_patterns:
            c.echo("Protected files (unchanged):")
            c.echo("  " + ", ".join(self.exclude_patterns))
            c.echo()
        c.echo(THIN_RULE)
        c.echo()

    def _show_success(self, commit: str, backup_dir: str, copy_list: Sequence[str]) -> None:
        c = self.console
        c.echo()
        c.echo("=" * 40)
        c.echo("  ✓ Update completed successfully!")
        c.echo("=" * 40)
        c.echo()
        c.echo(f"New version : {commit}")
        c.echo(f"Backup      : {backup_dir}")
        c.echo()
        c.echo(f"Service status: {self.service.active_state()}")

        updated_tools = [path for path in copy_list if path in TOOL_FILES]
        if updated_tools:
            c.echo()
            c.echo(f"⚠ {', '.join(updated_tools)} updated.")
            c.echo("  Please restart the tool to use the new version.")
        c.echo()
        c.pause()
