"""Remote deployment lease keyed by the deployment path."""

from datetime import datetime

from shipctl.core.exceptions import LockFailure
from shipctl.core.logging import get_logger
from shipctl.deploy import scripts
from shipctl.deploy.remote import RemoteExecutor

logger = get_logger(__name__)

LOCK_HELD_STATUS = 75


class DeploymentLock:
    """Mutual exclusion between sessions targeting the same deployment path.

    The lock is a directory created with an atomic ``mkdir`` on the remote
    host. It is never taken over from another owner; an operator removes a
    stale lock by hand.
    """

    def __init__(self, executor: RemoteExecutor, lock_path: str, session_id: str):
        self._executor = executor
        self.path = lock_path
        self.owner = f"{session_id} {datetime.now().isoformat(timespec='seconds')}"
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Take the lock or raise LockFailure.

        The lock counts as held from the moment the command is sent: an
        interrupt may land after the remote ``mkdir`` succeeded, and release
        only removes a lock whose owner file names this session.
        """
        script = scripts.render(scripts.LOCK_ACQUIRE, lock=self.path, owner=self.owner)
        self._held = True
        result = self._executor.run(script, step="lock")

        if result.exit_status == LOCK_HELD_STATUS:
            self._held = False
            holder = result.output.strip().removeprefix("held by: ") or "unknown"
            raise LockFailure(
                f"Deployment lock {self.path} is held by another session ({holder})",
                details={"lock": self.path, "owner": holder},
            )
        if not result.success:
            raise LockFailure(
                f"Could not acquire deployment lock {self.path}",
                exit_status=result.exit_status,
                details={"lock": self.path},
            )

        logger.debug(f"Acquired deployment lock {self.path}")

    def release(self) -> bool:
        """Release the lock if this session holds it. Never raises."""
        if not self._held:
            return False
        script = scripts.render(scripts.LOCK_RELEASE, lock=self.path, owner=self.owner)
        try:
            result = self._executor.run(script, step="unlock")
        except Exception as e:
            logger.warning(f"Failed to release deployment lock {self.path}: {e}")
            return False
        if result.success:
            self._held = False
        else:
            logger.warning(f"Failed to release deployment lock {self.path}")
        return result.success
