"""Tests for the SSH remote executor."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from shipctl.config import TargetConfig
from shipctl.core.logging import SessionLog
from shipctl.deploy.remote import NOT_FOUND_STATUS, TIMEOUT_STATUS, RemoteExecutor


@pytest.fixture
def target() -> TargetConfig:
    return TargetConfig(host="10.0.0.5", user="deploy", port=2222, ssh_key="~/.ssh/deploy", connect_timeout=7)


@pytest.fixture
def log(tmp_path: Path):
    session_log = SessionLog(tmp_path / "deploy.log")
    yield session_log
    session_log.close()


class TestRemoteExecutor:
    """Tests for RemoteExecutor."""

    def test_ssh_command(self, target):
        argv = RemoteExecutor(target).ssh_command()
        assert argv[0] == "ssh"
        assert "BatchMode=yes" in argv
        assert "ConnectTimeout=7" in argv
        assert argv[argv.index("-p") + 1] == "2222"
        assert argv[argv.index("-i") + 1].endswith(".ssh/deploy")
        assert argv[-2:] == ["deploy@10.0.0.5", "bash -s"]

    def test_scp_command(self, target):
        argv = RemoteExecutor(target).scp_command("/tmp/laravel-1.tar.gz", "/var/www/app")
        assert argv[0] == "scp"
        assert argv[argv.index("-P") + 1] == "2222"
        assert argv[-1] == "deploy@10.0.0.5:/var/www/app/"

    def test_run_feeds_script_on_stdin(self, target):
        recorded = []
        executor = RemoteExecutor(target, recorder=recorded.append)
        completed = MagicMock(returncode=0, stdout="done\n")

        with patch("shipctl.deploy.remote.subprocess.run", return_value=completed) as mock_run:
            result = executor.run("echo done\n", step="extract", timeout=30)

        kwargs = mock_run.call_args.kwargs
        assert kwargs["input"] == "echo done\n"
        assert kwargs["stderr"] == subprocess.STDOUT
        assert kwargs["timeout"] == 30
        assert result.success
        assert result.name == "extract"
        assert result.output == "done\n"
        assert recorded == [result]

    def test_nonzero_status_is_failure(self, target):
        executor = RemoteExecutor(target)
        completed = MagicMock(returncode=3, stdout="SQLSTATE[HY000]\n")

        with patch("shipctl.deploy.remote.subprocess.run", return_value=completed):
            result = executor.run("php artisan migrate --force", step="migration")

        assert not result.success
        assert result.exit_status == 3
        assert "SQLSTATE" in result.output

    def test_invocation_logged_before_result(self, target, log):
        executor = RemoteExecutor(target, session_log=log)
        seen_in_log = []

        def fake_run(*args, **kwargs):
            seen_in_log.append(log.read())
            raise subprocess.TimeoutExpired(cmd="ssh", timeout=5)

        with patch("shipctl.deploy.remote.subprocess.run", side_effect=fake_run):
            result = executor.run("composer install\n", step="dependencies", timeout=5)

        assert "[CMD] [dependencies] Executing:" in seen_in_log[0]
        assert "composer install" in seen_in_log[0]
        assert "Exit status" not in seen_in_log[0]
        assert result.exit_status == TIMEOUT_STATUS
        assert "[CMD] [dependencies] Exit status: 124" in log.read()

    def test_missing_binary(self, target):
        executor = RemoteExecutor(target)
        with patch("shipctl.deploy.remote.subprocess.run", side_effect=FileNotFoundError("ssh")):
            result = executor.ping()
        assert result.exit_status == NOT_FOUND_STATUS
        assert result.name == "connectivity"

    def test_record_false_skips_recorder(self, target):
        recorded = []
        executor = RemoteExecutor(target, recorder=recorded.append)
        with patch("shipctl.deploy.remote.subprocess.run", return_value=MagicMock(returncode=0, stdout="")):
            executor.run("true", step="probe", record=False)
        assert recorded == []
