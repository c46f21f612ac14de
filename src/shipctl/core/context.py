"""Click context object for sharing state across commands."""

import click

from shipctl.config import ProfileConfig, ShipCtlConfig, get_default_config
from shipctl.core.logging import LogLevel, StructuredLogger, setup_logging
from shipctl.core.output import OutputFormat, OutputFormatter


class ShipCtlContext:
    """Shared context object for shipctl commands.

    This object is passed through Click's context mechanism and provides
    access to configuration, output and logging.
    """

    def __init__(
        self,
        config: ShipCtlConfig | None = None,
        profile: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: int = 0,
        quiet: bool = False,
        color: bool = True,
    ):
        self._config = config or get_default_config()
        self._profile_name = profile or "default"

        # Output settings (CLI overrides config)
        self._output_format = output_format or self._config.global_settings.output_format
        self._verbose = verbose
        self._quiet = quiet
        self._color = color and self._config.global_settings.color != "never"

        if verbose >= 2:
            log_level = LogLevel.DEBUG
        elif verbose == 1:
            log_level = LogLevel.INFO
        elif quiet:
            log_level = LogLevel.ERROR
        else:
            log_level = self._config.global_settings.verbosity

        setup_logging(log_level, rich_output=self._color)
        self._logger = StructuredLogger("context")

        self._output = OutputFormatter(
            format=self._output_format,
            color=self._color,
            quiet=quiet,
        )

    @property
    def config(self) -> ShipCtlConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def profile(self) -> ProfileConfig:
        """Get the current profile configuration."""
        return self._config.get_profile(self._profile_name)

    @property
    def profile_name(self) -> str:
        return self._profile_name

    @property
    def output(self) -> OutputFormatter:
        """Get the output formatter."""
        return self._output

    @property
    def output_format(self) -> OutputFormat:
        return self._output_format

    @property
    def verbose(self) -> int:
        return self._verbose

    @property
    def quiet(self) -> bool:
        return self._quiet

    @property
    def logger(self) -> StructuredLogger:
        return self._logger


# Click decorator for passing context
pass_context = click.make_pass_decorator(ShipCtlContext, ensure=True)
