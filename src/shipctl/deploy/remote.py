"""Remote command execution over the ssh and scp binaries."""

import shlex
import subprocess
import time
from pathlib import Path
from typing import Callable

from shipctl.config import TargetConfig
from shipctl.core.logging import SessionLog, get_logger
from shipctl.deploy.models import StepResult

logger = get_logger(__name__)

# Conventional statuses for failures that happen before the remote side answers.
TIMEOUT_STATUS = 124
NOT_FOUND_STATUS = 127


class RemoteExecutor:
    """Runs scripts on the target host and moves files to it.

    Every invocation is written to the session log before it runs. A non-zero
    exit status is the only failure signal; output is captured verbatim.
    """

    def __init__(
        self,
        target: TargetConfig,
        session_log: SessionLog | None = None,
        recorder: Callable[[StepResult], object] | None = None,
        default_timeout: int = 600,
    ):
        """Initialize executor.

        Args:
            target: Host, user, port and key to connect with
            session_log: Sink that mirrors invocations and their output
            recorder: Callback receiving every StepResult (the session)
            default_timeout: Timeout in seconds when a call gives none
        """
        self._target = target
        self._log = session_log
        self._recorder = recorder
        self._default_timeout = default_timeout

    @property
    def target(self) -> TargetConfig:
        return self._target

    def _ssh_options(self) -> list[str]:
        options = [
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self._target.connect_timeout}",
        ]
        if self._target.ssh_key:
            options.extend(["-i", str(Path(self._target.ssh_key).expanduser())])
        return options

    def ssh_command(self, remote_command: str = "bash -s") -> list[str]:
        """Build the ssh argv for a remote command."""
        return [
            "ssh",
            *self._ssh_options(),
            "-p", str(self._target.port),
            self._target.destination,
            remote_command,
        ]

    def scp_command(self, local_path: str | Path, remote_dir: str) -> list[str]:
        """Build the scp argv for an upload into ``remote_dir``."""
        return [
            "scp",
            *self._ssh_options(),
            "-P", str(self._target.port),
            str(local_path),
            f"{self._target.destination}:{remote_dir.rstrip('/')}/",
        ]

    def run(
        self,
        script: str,
        step: str,
        timeout: int | None = None,
        record: bool = True,
    ) -> StepResult:
        """Run a script on the remote host through ``bash -s``.

        Args:
            script: Shell script fed on stdin
            step: Name the result is attributed to
            timeout: Seconds before the call is abandoned
            record: Whether to hand the result to the recorder

        Returns:
            StepResult with captured output and exit status
        """
        argv = self.ssh_command()
        if self._log:
            self._log.command(step, f"{shlex.join(argv)} <<'SCRIPT'\n{script.rstrip()}\nSCRIPT")
        return self._execute(argv, step, timeout, record, stdin=script)

    def upload(
        self,
        local_path: str | Path,
        remote_dir: str,
        step: str = "upload",
        timeout: int | None = None,
    ) -> StepResult:
        """Copy a local file into a remote directory."""
        argv = self.scp_command(local_path, remote_dir)
        if self._log:
            self._log.command(step, shlex.join(argv))
        return self._execute(argv, step, timeout, record=True)

    def ping(self, step: str = "connectivity") -> StepResult:
        """Bounded-timeout round trip to the host."""
        argv = self.ssh_command("exit")
        if self._log:
            self._log.command(step, shlex.join(argv))
        return self._execute(argv, step, self._target.connect_timeout + 5, record=True)

    def _execute(
        self,
        argv: list[str],
        step: str,
        timeout: int | None,
        record: bool,
        stdin: str | None = None,
    ) -> StepResult:
        limit = timeout or self._default_timeout
        started = time.monotonic()
        logger.debug(f"Running {step}: {argv[0]} -> {self._target.destination}")

        try:
            proc = subprocess.run(
                argv,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=limit,
            )
            output = proc.stdout or ""
            status = proc.returncode
        except subprocess.TimeoutExpired as e:
            partial = e.output.decode(errors="replace") if isinstance(e.output, bytes) else (e.output or "")
            output = f"{partial}Command timed out after {limit}s"
            status = TIMEOUT_STATUS
        except FileNotFoundError as e:
            output = f"{argv[0]} not found: {e}"
            status = NOT_FOUND_STATUS

        result = StepResult(
            name=step,
            success=status == 0,
            exit_status=status,
            output=output,
            duration=time.monotonic() - started,
        )

        if self._log:
            self._log.output(step, output, status)
        if record and self._recorder:
            self._recorder(result)
        return result
