"""Application probe and advisory system survey."""

from typing import Any

import httpx
from rich.markup import escape
from rich.table import Table
from tabulate import tabulate

from shipctl.config import HealthConfig, RemoteConfig, ServicesConfig
from shipctl.core.exceptions import HealthCheckFailure
from shipctl.core.logging import get_logger
from shipctl.deploy import scripts
from shipctl.deploy.models import CheckCategory, CheckResult, CheckStatus, HealthReport
from shipctl.deploy.remote import RemoteExecutor

logger = get_logger(__name__)

STATUS_STYLES = {
    CheckStatus.PASS: "green",
    CheckStatus.FAIL: "red",
    CheckStatus.UNKNOWN: "yellow",
}

WRITABLE_DIRECTORIES = ("storage", "bootstrap/cache")


def is_healthy_status(status_code: int) -> bool:
    """Any 2xx or 3xx response counts as healthy."""
    return 200 <= status_code < 400


def status_from_exit(exit_status: int) -> CheckStatus:
    if exit_status == 0:
        return CheckStatus.PASS
    if exit_status == 1:
        return CheckStatus.FAIL
    return CheckStatus.UNKNOWN


class HealthChecker:
    """Probes the deployed application and surveys the host around it."""

    def __init__(
        self,
        health: HealthConfig,
        executor: RemoteExecutor | None = None,
        remote: RemoteConfig | None = None,
        services: ServicesConfig | None = None,
    ):
        """Initialize health checker.

        Args:
            health: Probe endpoint, timeouts and survey settings
            executor: Remote executor for the survey (not needed for the probe)
            remote: Remote deployment layout
            services: Service names and runtime extensions to survey
        """
        self._health = health
        self._executor = executor
        self._remote = remote or RemoteConfig()
        self._services = services or ServicesConfig()

    def probe_application(self) -> CheckResult:
        """Issue one bounded-timeout GET against the health endpoint."""
        url = self._health.endpoint
        timeout = httpx.Timeout(self._health.timeout, connect=self._health.connect_timeout)

        try:
            # Redirects are not followed; a 3xx is itself a healthy answer
            response = httpx.get(url, timeout=timeout, follow_redirects=False)
        except httpx.TimeoutException as e:
            return CheckResult(
                name="application",
                category=CheckCategory.APPLICATION,
                status=CheckStatus.FAIL,
                detail=f"Timed out after {self._health.timeout}s: {e}",
                data={"url": url, "error": "timeout"},
            )
        except httpx.RequestError as e:
            return CheckResult(
                name="application",
                category=CheckCategory.APPLICATION,
                status=CheckStatus.FAIL,
                detail=f"Request failed: {e}",
                data={"url": url, "error": str(e)},
            )

        healthy = is_healthy_status(response.status_code)
        latency_ms = round(response.elapsed.total_seconds() * 1000)
        return CheckResult(
            name="application",
            category=CheckCategory.APPLICATION,
            status=CheckStatus.PASS if healthy else CheckStatus.FAIL,
            detail=f"HTTP {response.status_code} in {latency_ms}ms",
            data={
                "url": url,
                "status_code": response.status_code,
                "response_time_ms": latency_ms,
            },
        )

    def verify_application(self) -> CheckResult:
        """Run the application probe and raise if it fails.

        Raises:
            HealthCheckFailure: Status outside [200, 400), network error or timeout
        """
        check = self.probe_application()
        if check.status != CheckStatus.PASS:
            raise HealthCheckFailure(
                f"Application health check failed at {self._health.endpoint}: {check.detail}",
                check=check,
            )
        return check

    def survey_plan(self) -> list[tuple[str, str]]:
        """Ordered (check name, script) pairs for the system survey."""
        base = self._remote.base_path
        plan = [
            ("os", scripts.SURVEY_OS),
            ("kernel", scripts.SURVEY_KERNEL),
            ("architecture", scripts.SURVEY_ARCH),
            ("uptime", scripts.SURVEY_UPTIME),
            ("cpu", scripts.SURVEY_CPU),
            ("memory", scripts.SURVEY_MEMORY),
            ("disk", scripts.SURVEY_DISK),
            ("network", scripts.SURVEY_NETWORK),
        ]

        services = list(dict.fromkeys(self._services.core + self._services.survey))
        for service in services:
            plan.append((f"service:{service}", scripts.render(scripts.SURVEY_SERVICE, service=service)))

        plan.append(("runtime_version", scripts.SURVEY_RUNTIME_VERSION))
        for extension in self._services.runtime_extensions:
            plan.append(
                (f"extension:{extension}", scripts.render(scripts.SURVEY_EXTENSION, extension=extension))
            )

        plan.append(("framework_version", scripts.render(scripts.SURVEY_FRAMEWORK_VERSION, base=base)))
        for key in ("APP_ENV", "APP_DEBUG"):
            plan.append((key.lower(), scripts.render(scripts.SURVEY_ENV_FLAG, base=base, key=key)))
        if self._health.database_check:
            plan.append(("database", scripts.render(scripts.SURVEY_DATABASE, base=base)))
        for directory in WRITABLE_DIRECTORIES:
            plan.append(
                (f"writable:{directory}", scripts.render(scripts.SURVEY_WRITABLE, base=base, directory=directory))
            )

        plan.append((
            "application_log",
            scripts.render(
                scripts.SURVEY_APP_LOG,
                lines=self._health.app_log_lines,
                path=f"{base}/storage/logs/laravel.log",
            ),
        ))
        plan.append((
            "proxy_error_log",
            scripts.render(
                scripts.SURVEY_PROXY_LOG,
                lines=self._health.proxy_log_lines,
                path=self._health.proxy_error_log,
            ),
        ))
        plan.append(("workers", scripts.SURVEY_WORKERS))
        return plan

    def survey(self, report: HealthReport | None = None) -> HealthReport:
        """Run every advisory check, one after another.

        A check that cannot run is recorded as unknown; nothing here raises
        except cancellation.
        """
        if self._executor is None:
            raise ValueError("A remote executor is required for the system survey")

        report = report or HealthReport()
        for name, script in self.survey_plan():
            report.add(self._remote_check(name, script))
        return report

    def _remote_check(self, name: str, script: str) -> CheckResult:
        try:
            result = self._executor.run(
                script,
                step=f"survey_{name}",
                timeout=self._health.survey_timeout,
            )
        except Exception as e:
            logger.debug(f"Survey check {name} could not run: {e}")
            return CheckResult(
                name=name,
                category=CheckCategory.INFRASTRUCTURE,
                status=CheckStatus.UNKNOWN,
                detail=str(e),
            )

        return CheckResult(
            name=name,
            category=CheckCategory.INFRASTRUCTURE,
            status=status_from_exit(result.exit_status),
            detail=result.output.strip(),
            data={"exit_status": result.exit_status},
        )


def _summary(detail: str, width: int = 80) -> str:
    lines = detail.splitlines()
    first = lines[0] if lines else ""
    if len(first) > width:
        first = first[: width - 3] + "..."
    if len(lines) > 1:
        first += f" (+{len(lines) - 1} lines)"
    return first


def report_table(report: HealthReport, title: str = "System Health Report") -> Table:
    """Render a report as a Rich table for the console."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Check")
    table.add_column("Category", style="dim")
    table.add_column("Status")
    table.add_column("Detail")

    for check in report.checks:
        style = STATUS_STYLES[check.status]
        table.add_row(
            escape(check.name),
            check.category.value,
            f"[{style}]{check.status.value.upper()}[/{style}]",
            escape(_summary(check.detail)),
        )
    return table


def report_text(report: HealthReport) -> str:
    """Render a report as plain text for the session log."""
    rows: list[list[Any]] = [
        [check.name, check.category.value, check.status.value.upper(), _summary(check.detail)]
        for check in report.checks
    ]
    header = f"System health report generated {report.generated_at:%Y-%m-%d %H:%M:%S}"
    table = tabulate(rows, headers=["Check", "Category", "Status", "Detail"], tablefmt="simple")
    return f"{header}\n{table}"
