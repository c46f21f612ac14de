"""Tests for the application probe and the advisory survey."""

from unittest.mock import patch

import httpx
import pytest

from conftest import FakeExecutor, http_response
from shipctl.config import HealthConfig, ProfileConfig, RemoteConfig, ServicesConfig, TargetConfig
from shipctl.core.exceptions import HealthCheckFailure, OperationCancelled
from shipctl.deploy.health import HealthChecker, report_table, report_text, status_from_exit
from shipctl.deploy.models import CheckCategory, CheckStatus, HealthReport


@pytest.fixture
def fake() -> FakeExecutor:
    return FakeExecutor(TargetConfig(host="app.example.test"))


@pytest.fixture
def checker(fake: FakeExecutor) -> HealthChecker:
    return HealthChecker(
        HealthConfig(url="http://app.example.test/", path="/health", timeout=5),
        fake,  # type: ignore[arg-type]
        RemoteConfig(base_path="/var/www/app"),
        ServicesConfig(survey=["redis-server"], runtime_extensions=["pdo", "mbstring"]),
    )


class TestApplicationProbe:
    """Tests for the blocking application probe."""

    @pytest.mark.parametrize("status_code", [200, 204, 301, 399])
    def test_healthy_status_codes(self, checker, status_code):
        with patch("httpx.get", return_value=http_response(status_code)) as mock_get:
            check = checker.verify_application()

        assert check.status == CheckStatus.PASS
        assert check.category == CheckCategory.APPLICATION
        assert mock_get.call_args.args[0] == "http://app.example.test/health"
        assert mock_get.call_args.kwargs["follow_redirects"] is False

    @pytest.mark.parametrize("status_code", [400, 404, 500, 199])
    def test_unhealthy_status_codes(self, checker, status_code):
        with patch("httpx.get", return_value=http_response(status_code)):
            with pytest.raises(HealthCheckFailure) as exc_info:
                checker.verify_application()

        assert exc_info.value.exit_status == 1
        assert exc_info.value.check.blocking
        assert f"HTTP {status_code}" in exc_info.value.message

    def test_default_profile_probes_target_host(self, monkeypatch):
        monkeypatch.delenv("SHIPCTL_TARGET_HOST", raising=False)
        profile = ProfileConfig(target=TargetConfig(host="10.0.0.5")).resolved()

        with patch("httpx.get", return_value=http_response(200)) as mock_get:
            HealthChecker(profile.health).verify_application()

        assert mock_get.call_args.args[0] == "http://10.0.0.5/health"

    def test_timeout_fails(self, checker):
        with patch("httpx.get", side_effect=httpx.ReadTimeout("timed out")):
            with pytest.raises(HealthCheckFailure, match="Timed out"):
                checker.verify_application()

    def test_connection_error_fails(self, checker):
        with patch("httpx.get", side_effect=httpx.ConnectError("Connection refused")):
            check = checker.probe_application()
        assert check.status == CheckStatus.FAIL
        assert "Connection refused" in check.detail

    def test_latency_recorded(self, checker):
        with patch("httpx.get", return_value=http_response(200, seconds=0.3)):
            check = checker.probe_application()
        assert check.data["response_time_ms"] == 300
        assert check.detail == "HTTP 200 in 300ms"


class TestSurvey:
    """Tests for the advisory system survey."""

    def test_runs_every_check_sequentially(self, checker, fake):
        report = checker.survey()

        names = [c.name for c in report.checks]
        assert names[:8] == ["os", "kernel", "architecture", "uptime", "cpu", "memory", "disk", "network"]
        assert "service:php8.1-fpm" in names
        assert "service:nginx" in names
        assert "service:redis-server" in names
        assert "extension:pdo" in names
        assert "database" in names
        assert "writable:bootstrap/cache" in names
        assert names[-1] == "workers"
        assert fake.steps == [f"survey_{name}" for name in names]
        assert all(c.category == CheckCategory.INFRASTRUCTURE for c in report.checks)

    def test_database_check_is_optional(self, fake):
        checker = HealthChecker(HealthConfig(database_check=False), fake)  # type: ignore[arg-type]
        assert "database" not in [name for name, _ in checker.survey_plan()]

    def test_failures_are_advisory(self, checker, fake):
        fake.respond("survey_service:nginx", 1, "STOPPED/FAILED")
        fake.respond("survey_service:redis-server", 2, "NOT INSTALLED")
        fake.respond("survey_disk", 124, "Command timed out after 60s")

        def explode():
            raise RuntimeError("ssh went away")

        fake.on("survey_workers", explode)
        report = checker.survey()

        assert report.passed
        assert report.by_name("service:nginx").status == CheckStatus.FAIL
        assert report.by_name("service:redis-server").status == CheckStatus.UNKNOWN
        assert report.by_name("disk").status == CheckStatus.UNKNOWN
        assert report.by_name("workers").status == CheckStatus.UNKNOWN

    def test_cancellation_is_not_absorbed(self, checker, fake):
        def interrupt():
            raise OperationCancelled(2)

        fake.on("survey_memory", interrupt)
        with pytest.raises(OperationCancelled):
            checker.survey()

    def test_status_from_exit(self):
        assert status_from_exit(0) == CheckStatus.PASS
        assert status_from_exit(1) == CheckStatus.FAIL
        assert status_from_exit(2) == CheckStatus.UNKNOWN
        assert status_from_exit(255) == CheckStatus.UNKNOWN


class TestRendering:
    """Tests for report rendering at the presentation boundary."""

    def test_text_and_table(self, checker, fake):
        fake.respond("survey_kernel", 0, "6.1.0-18-amd64\n")
        report = checker.survey(HealthReport())

        text = report_text(report)
        assert "System health report generated" in text
        assert "kernel" in text
        assert "6.1.0-18-amd64" in text

        table = report_table(report)
        assert table.row_count == len(report.checks)
