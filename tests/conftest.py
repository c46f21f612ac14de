"""Pytest fixtures for shipctl tests."""

from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from shipctl.config import (
    BackupConfig,
    HealthConfig,
    LoggingConfig,
    ProfileConfig,
    ProjectConfig,
    ShipCtlConfig,
    TargetConfig,
)
from shipctl.core.cancellation import CancellationToken
from shipctl.core.logging import SessionLog
from shipctl.core.output import OutputFormatter
from shipctl.deploy.models import DeploymentSession, StepResult
from shipctl.deploy.orchestrator import Orchestrator


class FakeExecutor:
    """Stands in for RemoteExecutor; answers are scripted per step name.

    A response is an exit status, an ``(exit_status, output)`` pair, or a
    callable returning either (it may also raise). Unscripted steps succeed.
    """

    def __init__(
        self,
        target: TargetConfig,
        recorder: Callable[[StepResult], Any] | None = None,
    ):
        self.target = target
        self.responses: dict[str, Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.uploads: list[tuple[str, str]] = []
        self._recorder = recorder

    def respond(self, step: str, exit_status: int = 0, output: str = "") -> None:
        self.responses[step] = (exit_status, output)

    def on(self, step: str, func: Callable[[], Any]) -> None:
        self.responses[step] = func

    @property
    def steps(self) -> list[str]:
        return [step for step, _ in self.calls]

    def script_for(self, step: str) -> str:
        for name, script in self.calls:
            if name == step:
                return script
        raise KeyError(step)

    def _answer(self, step: str, record: bool = True) -> StepResult:
        response = self.responses.get(step, 0)
        if callable(response):
            response = response()
        if response is None:
            response = 0
        if isinstance(response, int):
            response = (response, "")
        status, output = response
        result = StepResult(name=step, success=status == 0, exit_status=status, output=output)
        if record and self._recorder:
            self._recorder(result)
        return result

    def run(self, script: str, step: str, timeout: int | None = None, record: bool = True) -> StepResult:
        self.calls.append((step, script))
        return self._answer(step, record)

    def upload(self, local_path: Any, remote_dir: str, step: str = "upload", timeout: int | None = None) -> StepResult:
        self.calls.append((step, f"upload {local_path} {remote_dir}"))
        self.uploads.append((str(local_path), remote_dir))
        return self._answer(step)

    def ping(self, step: str = "connectivity") -> StepResult:
        self.calls.append((step, "exit"))
        return self._answer(step)


def http_response(status_code: int = 200, seconds: float = 0.3) -> MagicMock:
    """Build a stand-in for an httpx.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.elapsed = timedelta(seconds=seconds)
    return response


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A minimal Laravel-shaped project tree."""
    project = tmp_path / "shop"
    (project / "app").mkdir(parents=True)
    (project / "vendor" / "acme").mkdir(parents=True)
    (project / "storage" / "logs").mkdir(parents=True)
    (project / "artisan").write_text("#!/usr/bin/env php\n")
    (project / "app" / "Kernel.php").write_text("<?php\n")
    (project / "vendor" / "acme" / "lib.php").write_text("<?php\n")
    (project / "storage" / "oauth-private.key").write_text("secret\n")
    (project / "storage" / "logs" / "laravel.log").write_text("log line\n")
    return project


@pytest.fixture
def profile(tmp_path: Path, project_dir: Path) -> ProfileConfig:
    """Profile pointing at the temp project and a fake host."""
    return ProfileConfig(
        target=TargetConfig(host="app.example.test", user="deploy"),
        project=ProjectConfig(
            path=str(project_dir),
            required_tools=[],
            archive_dir=str(tmp_path / "dist"),
        ),
        backup=BackupConfig(retention_days=5),
        health=HealthConfig(url="http://app.example.test", path="/health"),
        logging=LoggingConfig(log_dir=str(tmp_path / "logs")),
    )


@pytest.fixture
def mock_config(profile: ProfileConfig) -> ShipCtlConfig:
    return ShipCtlConfig(profiles={"default": profile})


@pytest.fixture
def session(tmp_path: Path) -> DeploymentSession:
    return DeploymentSession(id="20240101-120000", log_path=tmp_path / "logs" / "deploy-20240101-120000.log")


@pytest.fixture
def session_log(session: DeploymentSession) -> Generator[SessionLog, None, None]:
    log = SessionLog(session.log_path)
    yield log
    log.close()


@pytest.fixture
def output(session_log: SessionLog) -> OutputFormatter:
    """Quiet formatter mirroring every status line to the session log."""
    return OutputFormatter(color=False, quiet=True, sink=session_log)


@pytest.fixture
def executor(profile: ProfileConfig, session: DeploymentSession) -> FakeExecutor:
    return FakeExecutor(profile.target, recorder=session.record)


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def orchestrator(
    profile: ProfileConfig,
    session: DeploymentSession,
    executor: FakeExecutor,
    output: OutputFormatter,
    session_log: SessionLog,
    token: CancellationToken,
) -> Orchestrator:
    return Orchestrator(
        profile,
        session,
        executor,  # type: ignore[arg-type]
        output,
        session_log=session_log,
        token=token,
        which=lambda tool: f"/usr/bin/{tool}",
    )
