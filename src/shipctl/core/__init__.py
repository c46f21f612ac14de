"""Core utilities and shared components for shipctl."""

# Note: Import context lazily to avoid circular imports
# Use: from shipctl.core.context import ShipCtlContext, pass_context
from shipctl.core.exceptions import ConfigError, DeploymentFailure, ShipCtlError
from shipctl.core.output import OutputFormatter, console

__all__ = [
    "ShipCtlError",
    "ConfigError",
    "DeploymentFailure",
    "OutputFormatter",
    "console",
]
