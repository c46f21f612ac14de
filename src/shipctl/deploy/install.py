"""Remote installation sub-steps."""

from typing import Any, Callable

from shipctl.config import RemoteConfig, ServicesConfig
from shipctl.core.exceptions import RemoteStepFailure
from shipctl.core.logging import get_logger
from shipctl.deploy import scripts
from shipctl.deploy.models import StepResult
from shipctl.deploy.remote import RemoteExecutor

logger = get_logger(__name__)


class RemoteInstaller:
    """Runs the install sub-steps in order, stopping at the first failure."""

    def __init__(
        self,
        executor: RemoteExecutor,
        remote: RemoteConfig,
        services: ServicesConfig,
        steps: tuple[scripts.RemoteStep, ...] = scripts.INSTALL_STEPS,
        announce: Callable[[str], Any] | None = None,
        checkpoint: Callable[[], Any] | None = None,
    ):
        """Initialize installer.

        Args:
            executor: Remote executor
            remote: Remote deployment layout
            services: Service names restarted at the end
            steps: Ordered sub-steps to run
            announce: Called with each step's description before it runs
            checkpoint: Called before each step (cancellation check)
        """
        self._executor = executor
        self._remote = remote
        self._services = services
        self._steps = steps
        self._announce = announce
        self._checkpoint = checkpoint

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def context(self, archive_name: str) -> dict[str, Any]:
        """Template variables shared by every sub-step."""
        return {
            "base": self._remote.base_path,
            "archive": archive_name,
            "min_version": self._remote.min_runtime_version,
            "web_user": self._remote.web_user,
            "runtime": self._services.runtime,
            "web": self._services.web,
            "delay": self._services.restart_delay,
            "supervisor_group": self._services.supervisor_group,
        }

    def install(self, archive_name: str) -> list[StepResult]:
        """Run every sub-step against the uploaded archive.

        Raises:
            RemoteStepFailure: A sub-step returned non-zero; carries its name
                and exit status
        """
        context = self.context(archive_name)
        results = []

        for step in self._steps:
            if self._checkpoint:
                self._checkpoint()
            if self._announce:
                self._announce(step.description or step.name)

            result = self._executor.run(
                step.render(**context),
                step=step.name,
                timeout=self._remote.command_timeout,
            )
            results.append(result)

            if not result.success:
                logger.debug(f"Sub-step {step.name} failed after {result.duration:.1f}s")
                raise RemoteStepFailure(
                    step.name,
                    exit_status=result.exit_status,
                    output=result.output,
                )

        return results
