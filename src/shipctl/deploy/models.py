"""Deployment data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from shipctl.core.exceptions import RollbackFailure, StateError


class DeploymentState(str, Enum):
    """Deployment session states."""

    INIT = "init"
    PRECHECKED = "prechecked"
    CONNECTED = "connected"
    BACKED_UP = "backed_up"
    PACKAGED = "packaged"
    UPLOADED = "uploaded"
    REMOTE_INSTALLED = "remote_installed"
    HEALTH_VERIFIED = "health_verified"
    COMPLETED = "completed"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


# Forward path; every state but the last has exactly one successor.
FORWARD_STATES: tuple[DeploymentState, ...] = (
    DeploymentState.INIT,
    DeploymentState.PRECHECKED,
    DeploymentState.CONNECTED,
    DeploymentState.BACKED_UP,
    DeploymentState.PACKAGED,
    DeploymentState.UPLOADED,
    DeploymentState.REMOTE_INSTALLED,
    DeploymentState.HEALTH_VERIFIED,
    DeploymentState.COMPLETED,
)

TERMINAL_STATES = (DeploymentState.COMPLETED, DeploymentState.FAILED)


def new_session_id(now: datetime | None = None) -> str:
    """Timestamp-derived session identifier."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


@dataclass(frozen=True)
class StepResult:
    """Outcome of one stage or remote sub-step. Immutable once recorded."""

    name: str
    success: bool
    exit_status: int
    output: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.success

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "exit_status": self.exit_status,
            "output": self.output,
            "duration": round(self.duration, 3),
        }


@dataclass(frozen=True)
class BackupRecord:
    """A point-in-time copy of the live deployment tree.

    ``has_content`` is False on a first deployment, when there was no live
    tree to copy.
    """

    id: str
    path: str
    created_at: datetime
    has_content: bool = True

    @property
    def content_path(self) -> str:
        return f"{self.path}/current"


class CheckCategory(str, Enum):
    """Health check categories."""

    INFRASTRUCTURE = "infrastructure"
    APPLICATION = "application"


class CheckStatus(str, Enum):
    """Health check outcomes."""

    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CheckResult:
    """A single health check outcome."""

    name: str
    category: CheckCategory
    status: CheckStatus
    detail: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def blocking(self) -> bool:
        """Application failures block the release; infrastructure ones do not."""
        return self.category == CheckCategory.APPLICATION and self.status == CheckStatus.FAIL

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "status": self.status.value,
            "detail": self.detail,
            **({"data": self.data} if self.data else {}),
        }


@dataclass
class HealthReport:
    """Ordered list of check results."""

    checks: list[CheckResult] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    def add(self, check: CheckResult) -> CheckResult:
        self.checks.append(check)
        return check

    @property
    def blocking_failures(self) -> list[CheckResult]:
        return [c for c in self.checks if c.blocking]

    @property
    def advisory_failures(self) -> list[CheckResult]:
        return [c for c in self.checks if c.status == CheckStatus.FAIL and not c.blocking]

    @property
    def passed(self) -> bool:
        return not self.blocking_failures

    def by_name(self, name: str) -> CheckResult | None:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "passed": self.passed,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class DeploymentSession:
    """State of one end-to-end run."""

    id: str = field(default_factory=new_session_id)
    started_at: datetime = field(default_factory=datetime.now)
    log_path: Path | None = None
    state: DeploymentState = DeploymentState.INIT
    backup: BackupRecord | None = None
    package_path: Path | None = None
    rollback_triggered: bool = False
    failure: BaseException | None = None
    rollback_error: RollbackFailure | None = None
    exit_code: int = 0
    completed_at: datetime | None = None
    _steps: list[StepResult] = field(default_factory=list, repr=False)

    @property
    def step_results(self) -> tuple[StepResult, ...]:
        return tuple(self._steps)

    def record(self, result: StepResult) -> StepResult:
        """Append a step result."""
        self._steps.append(result)
        return result

    @property
    def closed(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def rolling_back(self) -> bool:
        return self.state in (DeploymentState.ROLLING_BACK, DeploymentState.FAILED)

    def advance(self, target: DeploymentState) -> None:
        """Move to ``target``, enforcing the state machine."""
        if self.closed:
            raise StateError(
                f"Session {self.id} is closed in state {self.state.value}",
                details={"target": target.value},
            )

        if target == DeploymentState.ROLLING_BACK:
            self.state = target
            return

        if target == DeploymentState.FAILED:
            if self.state != DeploymentState.ROLLING_BACK:
                raise StateError("Failed is only reachable from rolling_back")
            self.state = target
            self.completed_at = datetime.now()
            return

        if self.state == DeploymentState.ROLLING_BACK:
            raise StateError(
                f"No forward stage may run while rolling back (requested {target.value})"
            )

        expected = FORWARD_STATES[FORWARD_STATES.index(self.state) + 1]
        if target != expected:
            raise StateError(
                f"Illegal transition {self.state.value} -> {target.value}",
                details={"expected": expected.value},
            )
        self.state = target
        if target == DeploymentState.COMPLETED:
            self.completed_at = datetime.now()

    def begin_rollback(self) -> bool:
        """Flip the rollback guard. Returns False if it was already set."""
        if self.rollback_triggered:
            return False
        self.rollback_triggered = True
        return True

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or datetime.now()
        return (end - self.started_at).total_seconds()
