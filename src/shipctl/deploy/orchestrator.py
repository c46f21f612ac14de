"""Deployment pipeline: ordered stages, one rollback, one exit code."""

import shutil
from pathlib import Path
from typing import Callable

from shipctl.config import ProfileConfig
from shipctl.core.cancellation import CancellationToken
from shipctl.core.exceptions import (
    ConnectivityFailure,
    DeploymentFailure,
    OperationCancelled,
    PrecheckFailure,
)
from shipctl.core.logging import SessionLog, StructuredLogger
from shipctl.core.output import OutputFormatter, format_duration
from shipctl.deploy import scripts
from shipctl.deploy.archive import ArchiveStage
from shipctl.deploy.backup import BackupManager
from shipctl.deploy.escalator import ErrorEscalator
from shipctl.deploy.health import HealthChecker, report_table, report_text
from shipctl.deploy.install import RemoteInstaller
from shipctl.deploy.lock import DeploymentLock
from shipctl.deploy.models import DeploymentSession, DeploymentState, HealthReport, StepResult
from shipctl.deploy.remote import RemoteExecutor

logger = StructuredLogger("deploy.orchestrator")


class Orchestrator:
    """Runs the release stages strictly in order.

    Each stage owns exactly one forward transition. Any failure, or an
    interrupt delivered through the cancellation token, goes to the
    ErrorEscalator; no forward stage runs after that.
    """

    def __init__(
        self,
        profile: ProfileConfig,
        session: DeploymentSession,
        executor: RemoteExecutor,
        output: OutputFormatter,
        session_log: SessionLog | None = None,
        token: CancellationToken | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ):
        """Initialize orchestrator.

        Args:
            profile: Resolved profile configuration
            session: Session state, mutated only here and by the escalator
            executor: Remote executor shared by every stage
            output: Operator-facing output
            session_log: Log sink that is pushed to the remote host
            token: Cancellation token observed between and during stages
            which: Tool lookup used by the prechecks
        """
        self.profile = profile
        self.session = session
        self.executor = executor
        self.output = output
        self.session_log = session_log
        self.token = token or CancellationToken()
        self._which = which
        self._logger = logger.bind(session=session.id)

        self.backups = BackupManager(executor, profile.backup, profile.remote, profile.services)
        self.archive = ArchiveStage(profile.project, profile.remote, executor, session_log)
        self.installer = RemoteInstaller(
            executor,
            profile.remote,
            profile.services,
            announce=self.output.print_status,
            checkpoint=self.token.raise_if_cancelled,
        )
        self.health = HealthChecker(profile.health, executor, profile.remote, profile.services)
        self.lock = DeploymentLock(executor, profile.remote.get_lock_path(), session.id)
        self.escalator = ErrorEscalator(session, output, self.backups, push_log=self.push_log)
        self.report: HealthReport | None = None

    def run(self) -> int:
        """Run the pipeline and return the process exit code."""
        self.token.set_listener(self.escalator.escalate)
        with self.token:
            try:
                try:
                    self._run_stages()
                    return 0
                except (DeploymentFailure, OperationCancelled) as e:
                    cause: BaseException = e
                except Exception as e:
                    self._logger.exception("Unexpected stage error")
                    cause = e

                if self.session.state == DeploymentState.COMPLETED:
                    self.output.print_warning(f"Ignoring failure after completion: {cause}")
                    return self.session.exit_code

                with self.token.shielded():
                    return self.escalator.escalate(cause)
            finally:
                with self.token.shielded():
                    self.lock.release()
                self.token.set_listener(None)

    def _run_stages(self) -> None:
        session = self.session
        self.output.print_status(f"Starting deployment {session.id} to {self.profile.target.host}")

        self._stage(DeploymentState.PRECHECKED, "Checking prerequisites", self.precheck)
        self._stage(DeploymentState.CONNECTED, "Testing SSH connection", self.connect)
        self._stage(DeploymentState.BACKED_UP, "Creating backup of current deployment", self.backup)
        self._stage(DeploymentState.PACKAGED, "Creating deployment archive", self.package)
        self._stage(DeploymentState.UPLOADED, "Uploading archive to server", self.upload)
        self._stage(DeploymentState.REMOTE_INSTALLED, "Executing remote deployment", self.install)
        self._stage(DeploymentState.HEALTH_VERIFIED, "Performing application health check", self.verify)

        self.survey()
        self._after_verification("Could not remove local archive", self.cleanup)
        self._after_verification("Failed to upload logs to remote", self.push_log)
        session.advance(DeploymentState.COMPLETED)
        self._print_summary()

    def _stage(self, target: DeploymentState, message: str, func: Callable[[], None]) -> None:
        self.token.raise_if_cancelled()
        self.output.print_status(f"{message}...")
        func()
        self.session.advance(target)
        self._logger.debug("Stage complete", state=target.value)

    def _after_verification(self, warning: str, func: Callable[[], object]) -> None:
        """Run a step that must never roll back a verified release."""
        try:
            func()
        except Exception as e:
            self.output.print_warning(f"{warning}: {e}")

    def precheck(self) -> None:
        """Local tools, key file and project marker."""
        project = self.profile.project
        missing = [tool for tool in project.required_tools if self._which(tool) is None]
        if missing:
            raise PrecheckFailure(f"Required tools not installed: {', '.join(missing)}")

        key = self.profile.target.ssh_key
        if key and not Path(key).expanduser().is_file():
            raise PrecheckFailure(f"SSH key not found: {key}")

        path = project.get_path()
        if not path.is_dir():
            raise PrecheckFailure(f"Project directory not found: {path}")
        if not (path / project.marker_file).exists():
            raise PrecheckFailure(
                f"{path} is not a valid project ({project.marker_file} not found)"
            )

        self.session.record(StepResult(name="precheck", success=True, exit_status=0))
        self.output.print_success("All prerequisites met")

    def connect(self) -> None:
        """Round trip to the host, then take the deployment lock."""
        result = self.executor.ping()
        if not result.success:
            raise ConnectivityFailure(
                f"Cannot connect to {self.profile.target.destination}",
                details={"exit_status": result.exit_status},
            )
        self.output.print_success("SSH connection successful")
        self.lock.acquire()

    def backup(self) -> None:
        record = self.backups.create(self.session.id)
        self.session.backup = record
        if record.has_content:
            self.output.print_success(f"Backup created at {record.path}")
        else:
            self.output.print_warning("No existing deployment found; created target directory")

    def package(self) -> None:
        archive = self.archive.build(self.session.id)
        self.session.package_path = archive
        self.session.record(StepResult(name="package", success=True, exit_status=0))
        self.output.print_success(f"Archive created: {archive.name}")

    def upload(self) -> None:
        self.archive.upload(self.session.package_path)
        self.output.print_success("Archive uploaded successfully")

    def install(self) -> None:
        self.installer.install(self.archive.archive_name(self.session.id))
        self.output.print_success("Remote deployment completed")

    def verify(self) -> None:
        check = self.health.verify_application()
        self.output.print_health(f"Application health check passed ({check.detail})")

    def survey(self) -> HealthReport | None:
        """Advisory system survey; problems are reported, never escalated."""
        self.token.raise_if_cancelled()
        self.output.print_health("Running system health survey...")
        try:
            report = self.health.survey()
        except Exception as e:
            self.output.print_warning(f"System health survey could not complete: {e}")
            return None

        self.report = report
        self.output.print_table(report_table(report))
        if self.session_log:
            self.session_log.write(report_text(report))
        if report.advisory_failures:
            names = ", ".join(check.name for check in report.advisory_failures)
            self.output.print_warning(f"Advisory checks reporting problems: {names}")
        return report

    def cleanup(self) -> None:
        ArchiveStage.discard(self.session.package_path)

    def push_log(self) -> bool:
        """Copy the session log to the remote log directory. Best effort."""
        if self.session_log is None:
            return False
        remote = self.profile.remote
        prepare = self.executor.run(
            scripts.render(scripts.LOG_DIR_PREPARE, log_dir=remote.log_dir, user=self.profile.target.user),
            step="log_dir",
        )
        if prepare.success:
            result = self.executor.upload(self.session_log.path, remote.log_dir, step="log_push")
            if result.success:
                return True
        self.output.print_warning("Failed to upload logs to remote")
        return False

    def _print_summary(self) -> None:
        session = self.session
        backup = session.backup.path if session.backup and session.backup.has_content else "none (first deployment)"
        lines = [
            f"Deployment ID:   {session.id}",
            f"Server:          {self.profile.target.host}",
            f"Backup location: {backup}",
            f"Log file:        {session.log_path}",
            f"Duration:        {format_duration(session.duration_seconds)}",
        ]
        self.output.print_success("Deployment completed successfully")
        self.output.print_panel("\n".join(lines), title="Deployment Summary", style="green")

    def close(self) -> None:
        if self.session_log:
            self.session_log.close()


def create_orchestrator(
    profile: ProfileConfig,
    output: OutputFormatter,
    token: CancellationToken | None = None,
) -> Orchestrator:
    """Wire a session, its log and a real remote executor for a profile."""
    session = DeploymentSession()
    session.log_path = Path(profile.logging.log_dir).expanduser() / f"deploy-{session.id}.log"
    session_log = SessionLog(session.log_path)
    output.attach(session_log)

    executor = RemoteExecutor(
        profile.target,
        session_log=session_log,
        recorder=session.record,
        default_timeout=profile.remote.command_timeout,
    )
    return Orchestrator(profile, session, executor, output, session_log=session_log, token=token)
