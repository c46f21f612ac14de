"""Failure funnel: every stage failure and interrupt ends up here."""

from typing import Any, Callable

from shipctl.core.exceptions import DeploymentFailure, OperationCancelled, RollbackFailure
from shipctl.core.logging import StructuredLogger
from shipctl.core.output import OutputFormatter
from shipctl.deploy.archive import ArchiveStage
from shipctl.deploy.backup import BackupManager
from shipctl.deploy.models import DeploymentSession, DeploymentState

logger = StructuredLogger("deploy.escalator")


def exit_code_for(cause: BaseException) -> int:
    """Process exit code for a failure cause."""
    if isinstance(cause, OperationCancelled):
        return cause.exit_code
    if isinstance(cause, DeploymentFailure):
        return cause.exit_status or 1
    return 1


def describe(cause: BaseException) -> str:
    if isinstance(cause, OperationCancelled):
        return f"Deployment interrupted: {cause}"
    if isinstance(cause, DeploymentFailure):
        return f"{cause.label}: {cause.message}"
    return f"Unexpected error: {cause}"


class ErrorEscalator:
    """Rolls back at most once per session and decides the exit code.

    Callers run ``escalate`` inside the cancellation token's shielded
    section; signals arriving meanwhile come back through ``escalate`` and
    are suppressed by the session's rollback guard.
    """

    def __init__(
        self,
        session: DeploymentSession,
        output: OutputFormatter,
        backups: BackupManager | None = None,
        push_log: Callable[[], Any] | None = None,
    ):
        """Initialize escalator.

        Args:
            session: Session whose guard and state are updated
            output: Operator-facing output, mirrored to the session log
            backups: Backup manager used to restore the active backup
            push_log: Best-effort copy of the session log to the remote host
        """
        self._session = session
        self._output = output
        self._backups = backups
        self._push_log = push_log

    def escalate(self, cause: BaseException) -> int:
        """Handle a failure and return the exit code the process ends with."""
        session = self._session

        if session.state == DeploymentState.COMPLETED:
            self._output.print_warning(f"Deployment already completed; ignoring: {describe(cause)}")
            return session.exit_code

        if not session.begin_rollback():
            self._output.print_warning(f"Rollback already in progress; ignoring: {describe(cause)}")
            logger.info("Duplicate failure suppressed", session=session.id, cause=type(cause).__name__)
            return session.exit_code

        session.failure = cause
        session.exit_code = exit_code_for(cause)
        self._output.print_error(describe(cause))
        logger.error("Escalating failure", session=session.id, state=session.state.value, exit=session.exit_code)
        session.advance(DeploymentState.ROLLING_BACK)

        self._rollback()
        self._discard_package()
        self._push()

        if session.rollback_error is None:
            self._output.print_warning("Rollback completed; previous release restored")
        else:
            self._output.print_error(f"Rollback failed: {session.rollback_error.message}")
        if session.log_path:
            self._output.print_info(f"Full session log: {session.log_path}")

        session.advance(DeploymentState.FAILED)
        return session.exit_code

    def _rollback(self) -> None:
        session = self._session
        if session.backup is None or self._backups is None:
            session.rollback_error = RollbackFailure("No backup available; rollback cannot proceed")
            return

        self._output.print_warning(f"Rolling back from backup {session.backup.path}")
        try:
            self._backups.restore(session.backup)
        except RollbackFailure as e:
            session.rollback_error = e
        except Exception as e:
            session.rollback_error = RollbackFailure(f"Rollback aborted: {e}")

    def _discard_package(self) -> None:
        try:
            ArchiveStage.discard(self._session.package_path)
        except OSError as e:
            self._output.print_warning(f"Could not remove local archive: {e}")

    def _push(self) -> None:
        if self._push_log is None:
            return
        try:
            self._push_log()
        except Exception as e:
            self._output.print_warning(f"Failed to upload logs to remote: {e}")
