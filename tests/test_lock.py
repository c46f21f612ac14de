"""Tests for the remote deployment lock."""

import signal

import pytest

from conftest import FakeExecutor
from shipctl.config import TargetConfig
from shipctl.core.exceptions import LockFailure, OperationCancelled
from shipctl.deploy.lock import DeploymentLock


@pytest.fixture
def fake() -> FakeExecutor:
    return FakeExecutor(TargetConfig(host="app.example.test"))


class TestDeploymentLock:
    """Tests for DeploymentLock."""

    def test_acquire_and_release(self, fake):
        lock = DeploymentLock(fake, "/var/www/app.deploy-lock", "20240101-120000")

        lock.acquire()
        assert lock.held
        assert "mkdir /var/www/app.deploy-lock" in fake.script_for("lock")
        assert "20240101-120000" in fake.script_for("lock")

        assert lock.release() is True
        assert not lock.held
        assert "rm -rf /var/www/app.deploy-lock" in fake.script_for("unlock")

    def test_held_lock(self, fake):
        fake.respond("lock", 75, "held by: 20240101-110000 2024-01-01T11:00:00\n")
        lock = DeploymentLock(fake, "/var/www/app.deploy-lock", "20240101-120000")

        with pytest.raises(LockFailure) as exc_info:
            lock.acquire()

        assert exc_info.value.details["owner"] == "20240101-110000 2024-01-01T11:00:00"
        assert "/var/www/app.deploy-lock" in exc_info.value.message
        assert not lock.held

    def test_transport_error(self, fake):
        fake.respond("lock", 255, "Connection closed")
        lock = DeploymentLock(fake, "/var/www/app.deploy-lock", "x")
        with pytest.raises(LockFailure) as exc_info:
            lock.acquire()
        assert exc_info.value.exit_status == 255
        assert lock.held

    def test_interrupted_acquire_is_released(self, fake):
        def interrupted():
            raise OperationCancelled(signal.SIGINT)

        fake.on("lock", interrupted)
        lock = DeploymentLock(fake, "/var/www/app.deploy-lock", "20240101-120000")

        with pytest.raises(OperationCancelled):
            lock.acquire()

        assert lock.release() is True
        assert "20240101-120000" in fake.script_for("unlock")

    def test_release_without_acquire_touches_nothing(self, fake):
        lock = DeploymentLock(fake, "/var/www/app.deploy-lock", "x")
        assert lock.release() is False
        assert fake.calls == []

    def test_release_failure_is_reported_not_raised(self, fake):
        lock = DeploymentLock(fake, "/var/www/app.deploy-lock", "x")
        lock.acquire()
        fake.respond("unlock", 1)
        assert lock.release() is False
        assert lock.held
