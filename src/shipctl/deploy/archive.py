"""Release packaging and transfer."""

import tarfile
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from shipctl.config import ProjectConfig, RemoteConfig
from shipctl.core.exceptions import PackagingFailure, UploadFailure
from shipctl.core.logging import SessionLog, get_logger
from shipctl.deploy.remote import RemoteExecutor

logger = get_logger(__name__)


def is_excluded(relative: str, patterns: list[str]) -> bool:
    """Match a project-relative path the way ``tar --exclude`` does.

    A pattern may match any contiguous run of path components, so ``vendor``
    excludes ``vendor/acme/lib.php`` and ``packages/x/vendor`` alike.
    """
    parts = PurePosixPath(relative).parts
    for start in range(len(parts)):
        for end in range(start + 1, len(parts) + 1):
            candidate = "/".join(parts[start:end])
            if any(fnmatch(candidate, pattern) for pattern in patterns):
                return True
    return False


class ArchiveStage:
    """Builds the release archive, uploads it and cleans it up locally."""

    def __init__(
        self,
        project: ProjectConfig,
        remote: RemoteConfig,
        executor: RemoteExecutor,
        session_log: SessionLog | None = None,
    ):
        self._project = project
        self._remote = remote
        self._executor = executor
        self._log = session_log

    def archive_name(self, session_id: str) -> str:
        return f"{self._project.archive_prefix}{session_id}.tar.gz"

    def build(self, session_id: str) -> Path:
        """Create a gzipped tarball of the project under its directory name.

        Raises:
            PackagingFailure: The project is missing or the archive could
                not be written
        """
        source = self._project.get_path()
        if not source.is_dir():
            raise PackagingFailure(f"Project directory not found: {source}")

        target = Path(self._project.archive_dir).expanduser() / self.archive_name(session_id)
        excludes = self._project.excludes
        top = source.name

        if self._log:
            flags = " ".join(f"--exclude={p!r}" for p in excludes)
            self._log.command("package", f"tar -czf {target} -C {source.parent} {top} {flags}")

        try:
            own_member = f"{top}/{target.resolve().relative_to(source).as_posix()}"
        except ValueError:
            own_member = None

        def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
            if info.name == own_member:
                return None
            relative = info.name[len(top) + 1:] if info.name != top else ""
            if relative and is_excluded(relative, excludes):
                return None
            return info

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(target, "w:gz") as tar:
                tar.add(source, arcname=top, filter=_filter, recursive=True)
        except (OSError, tarfile.TarError) as e:
            target.unlink(missing_ok=True)
            raise PackagingFailure(f"Failed to create archive {target}: {e}")

        size = target.stat().st_size
        logger.info(f"Archive created: {target} ({size} bytes)")
        if self._log:
            self._log.output("package", "", 0)
        return target

    def upload(self, archive: Path) -> None:
        """Copy the archive into the remote deployment directory."""
        result = self._executor.upload(archive, self._remote.base_path, step="upload")
        if not result.success:
            raise UploadFailure(
                f"Failed to upload {archive.name} to {self._executor.target.host}",
                exit_status=result.exit_status,
            )

    @staticmethod
    def discard(archive: Path | None) -> bool:
        """Remove a local archive. Returns True if a file was removed."""
        if archive is None or not archive.exists():
            return False
        archive.unlink()
        logger.debug(f"Removed local archive {archive}")
        return True
