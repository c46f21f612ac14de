"""Backup creation, pruning and restore for the live deployment tree."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from shipctl.config import BackupConfig, RemoteConfig, ServicesConfig
from shipctl.core.exceptions import BackupFailure, RollbackFailure
from shipctl.core.logging import get_logger
from shipctl.deploy import scripts
from shipctl.deploy.models import BackupRecord
from shipctl.deploy.remote import RemoteExecutor

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class BackupEntry:
    """A backup directory found on the remote host."""

    path: str
    modified: float

    def age_days(self, now: float) -> float:
        return (now - self.modified) / SECONDS_PER_DAY


def parse_listing(output: str) -> list[BackupEntry]:
    """Parse ``find -printf '%T@ %p'`` output, skipping malformed lines."""
    entries = []
    for line in output.splitlines():
        stamp, _, path = line.strip().partition(" ")
        if not path:
            continue
        try:
            entries.append(BackupEntry(path=path, modified=float(stamp)))
        except ValueError:
            logger.debug(f"Ignoring unparseable backup listing line: {line!r}")
    return entries


def expired_backups(
    entries: Iterable[BackupEntry],
    retention_days: int,
    now: float,
    keep: str | None = None,
) -> list[BackupEntry]:
    """Select backups older than ``retention_days``, oldest first.

    ``keep`` names a path that is never selected (the active backup).
    """
    expired = [
        entry
        for entry in entries
        if entry.path != keep and entry.age_days(now) > retention_days
    ]
    return sorted(expired, key=lambda entry: entry.modified)


class BackupManager:
    """Snapshots the live tree before a release and restores it on rollback."""

    def __init__(
        self,
        executor: RemoteExecutor,
        backup: BackupConfig,
        remote: RemoteConfig,
        services: ServicesConfig,
    ):
        """Initialize backup manager.

        Args:
            executor: Remote executor used for every side effect
            backup: Backup location and retention
            remote: Remote deployment layout
            services: Services stopped and started around a restore
        """
        self._executor = executor
        self._backup = backup
        self._remote = remote
        self._services = services

    def backup_path(self, session_id: str) -> str:
        return f"{self._backup.root.rstrip('/')}/{self._backup.prefix}{session_id}"

    def create(self, session_id: str) -> BackupRecord:
        """Snapshot the live tree, or prepare the target on a first deployment.

        Args:
            session_id: Identifier the backup directory is named after

        Returns:
            BackupRecord for the session; ``has_content`` is False when
            there was no live tree to copy
        """
        base = self._remote.base_path
        path = self.backup_path(session_id)

        probe = self._executor.run(scripts.render(scripts.BACKUP_PROBE, base=base), step="backup_probe")
        if probe.exit_status not in (0, 1):
            raise BackupFailure(
                f"Could not inspect deployment directory {base}",
                exit_status=probe.exit_status,
            )

        record = BackupRecord(
            id=session_id,
            path=path,
            created_at=datetime.now(),
            has_content=probe.exit_status == 0,
        )

        if record.has_content:
            script = scripts.render(
                scripts.BACKUP_COPY,
                backup_dir=path,
                base=base,
                content=record.content_path,
            )
            result = self._executor.run(script, step="backup")
        else:
            logger.info(f"No existing deployment at {base}, creating directory structure")
            script = scripts.render(
                scripts.BACKUP_INIT,
                backup_dir=path,
                base=base,
                user=self._executor.target.user,
            )
            result = self._executor.run(script, step="backup_init")

        if not result.success:
            raise BackupFailure(
                f"Failed to create backup at {path}",
                exit_status=result.exit_status,
                details={"output": result.output.strip()[-500:]},
            )

        self.prune(keep=path)
        return record

    def prune(self, keep: str | None = None, now: float | None = None) -> list[str]:
        """Delete backups older than the retention age. Never raises.

        Args:
            keep: Backup path that must survive (the active one)
            now: Reference time as a POSIX timestamp

        Returns:
            Paths whose removal was attempted
        """
        try:
            listing = self._executor.run(
                scripts.render(
                    scripts.BACKUP_LIST,
                    root=self._backup.root,
                    pattern=f"{self._backup.prefix}*",
                ),
                step="backup_list",
            )
            if not listing.success:
                logger.warning("Could not list old backups; skipping pruning")
                return []

            reference = now if now is not None else datetime.now().timestamp()
            expired = expired_backups(
                parse_listing(listing.output),
                self._backup.retention_days,
                reference,
                keep=keep,
            )
            if not expired:
                return []

            paths = [entry.path for entry in expired]
            result = self._executor.run(
                scripts.render(scripts.BACKUP_PRUNE, paths=paths),
                step="backup_prune",
            )
            if not result.success:
                logger.warning(f"Pruning old backups failed (exit status {result.exit_status})")
            else:
                logger.info(f"Pruned {len(paths)} backup(s) older than {self._backup.retention_days} days")
            return paths
        except Exception as e:
            logger.warning(f"Pruning old backups failed: {e}")
            return []

    def restore(self, record: BackupRecord | None) -> None:
        """Put the backed-up tree back in place and restart services.

        Raises:
            RollbackFailure: No backup content exists, or a restore command
                returned non-zero
        """
        if record is None:
            raise RollbackFailure("No backup directory available for rollback")
        if not record.has_content:
            raise RollbackFailure(
                f"No backup content at {record.path}; there was no prior deployment to restore",
                details={"backup": record.path},
            )

        context = {
            "content": record.content_path,
            "base": self._remote.base_path,
            "web_user": self._remote.web_user,
            "services": self._services.core,
        }
        for step in scripts.RESTORE_STEPS:
            result = self._executor.run(step.render(**context), step=f"rollback_{step.name}")
            if not result.success:
                raise RollbackFailure(
                    f"Rollback step '{step.name}' failed with exit status {result.exit_status}",
                    exit_status=result.exit_status,
                    details={"backup": record.path},
                )
