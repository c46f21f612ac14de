"""Custom exceptions for shipctl."""

import signal
from typing import Any


class ShipCtlError(Exception):
    """Base exception for all shipctl errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigError(ShipCtlError):
    """Configuration-related errors."""

    pass


class StateError(ShipCtlError):
    """Illegal deployment state transition."""

    pass


class DeploymentFailure(ShipCtlError):
    """A stage failure that must be routed to the error escalator.

    ``exit_status`` is the code the process terminates with.
    """

    label = "Deployment failure"

    def __init__(
        self,
        message: str,
        exit_status: int = 1,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.exit_status = exit_status or 1


class PrecheckFailure(DeploymentFailure):
    """Local prerequisites are missing."""

    label = "Precheck failure"


class ConnectivityFailure(DeploymentFailure):
    """The remote host could not be reached."""

    label = "Connectivity failure"


class LockFailure(DeploymentFailure):
    """Another session holds the deployment lock."""

    label = "Lock failure"


class BackupFailure(DeploymentFailure):
    """The live tree could not be backed up."""

    label = "Backup failure"


class PackagingFailure(DeploymentFailure):
    """The release archive could not be built."""

    label = "Packaging failure"


class UploadFailure(DeploymentFailure):
    """The release archive could not be transferred."""

    label = "Upload failure"


class RemoteStepFailure(DeploymentFailure):
    """A remote installation sub-step returned a non-zero status."""

    label = "Remote step failure"

    def __init__(
        self,
        substep: str,
        exit_status: int = 1,
        output: str = "",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            f"Remote step '{substep}' failed with exit status {exit_status}",
            exit_status=exit_status,
            details=details,
        )
        self.substep = substep
        self.output = output


class HealthCheckFailure(DeploymentFailure):
    """The application probe did not report a healthy response."""

    label = "Health check failure"

    def __init__(self, message: str, check: Any = None):
        super().__init__(message, exit_status=1)
        self.check = check


class RollbackFailure(DeploymentFailure):
    """Rollback could not restore the previous release."""

    label = "Rollback failure"


class OperationCancelled(BaseException):
    """An interrupt or termination request was delivered to the process.

    Derives from BaseException so that ``except Exception`` blocks in advisory
    code never absorb it.
    """

    def __init__(self, signum: int):
        self.signum = signum
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        super().__init__(f"Received {name}")
        self.signal_name = name

    @property
    def exit_code(self) -> int:
        return 128 + self.signum
