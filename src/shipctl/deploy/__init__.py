"""Release promotion pipeline."""

from shipctl.deploy.models import (
    BackupRecord,
    CheckCategory,
    CheckResult,
    CheckStatus,
    DeploymentSession,
    DeploymentState,
    HealthReport,
    StepResult,
)
from shipctl.deploy.orchestrator import Orchestrator, create_orchestrator

__all__ = [
    "BackupRecord",
    "CheckCategory",
    "CheckResult",
    "CheckStatus",
    "DeploymentSession",
    "DeploymentState",
    "HealthReport",
    "Orchestrator",
    "StepResult",
    "create_orchestrator",
]
