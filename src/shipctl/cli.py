"""Main CLI entry point for shipctl."""

import sys
from typing import Any

import click
from rich.console import Console

from shipctl import __version__
from shipctl.config import load_config
from shipctl.core.context import ShipCtlContext
from shipctl.core.exceptions import ConfigError, OperationCancelled, ShipCtlError
from shipctl.core.output import OutputFormat

CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 120,
}


class OutputFormatType(click.ParamType):
    """Custom Click parameter type for output format."""

    name = "format"

    def convert(
        self,
        value: Any,
        param: click.Parameter | None,
        ctx: click.Context | None,
    ) -> OutputFormat:
        if isinstance(value, OutputFormat):
            return value
        try:
            return OutputFormat(value.lower())
        except ValueError:
            self.fail(
                f"Invalid format '{value}'. Choose from: table, json, yaml",
                param,
                ctx,
            )


OUTPUT_FORMAT = OutputFormatType()


def print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    Console().print(f"shipctl version {__version__}")
    ctx.exit()


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-p",
    "--profile",
    metavar="NAME",
    envvar="SHIPCTL_PROFILE",
    help="Configuration profile to use",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True),
    metavar="FILE",
    envvar="SHIPCTL_CONFIG",
    help="Path to config file",
)
@click.option(
    "-o",
    "--output",
    "output_format",
    type=OUTPUT_FORMAT,
    metavar="FORMAT",
    help="Output format: table, json, yaml",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for info, -vv for debug)",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    help="Suppress non-essential output",
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colored output",
)
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit",
)
@click.pass_context
def cli(
    ctx: click.Context,
    profile: str | None,
    config_file: str | None,
    output_format: OutputFormat | None,
    verbose: int,
    quiet: bool,
    no_color: bool,
) -> None:
    """shipctl - promote a release to a single host with automatic rollback.

    \b
    Examples:
        shipctl deploy
        shipctl -p staging deploy
        shipctl health --no-survey
        shipctl -o json config

    \b
    Configuration:
        ~/.shipctl/config.yaml   User configuration
        ./shipctl.yaml           Project configuration
        SHIPCTL_TARGET_*         Target host overrides
    """
    try:
        config = load_config(config_file)
        ctx.obj = ShipCtlContext(
            config=config,
            profile=profile,
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            color=not no_color,
        )
        # Fail on an unknown profile before any command runs
        config.get_profile(profile)
    except ConfigError as e:
        Console(stderr=True).print(f"[red]Configuration error:[/red] {e}", markup=True, highlight=False)
        sys.exit(1)


def register_commands() -> None:
    """Register all commands."""
    from shipctl.commands.deploy import deploy
    from shipctl.commands.health import health

    cli.add_command(deploy)
    cli.add_command(health)


register_commands()


@cli.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show the resolved profile configuration."""
    shipctl_ctx: ShipCtlContext = ctx.obj
    data = {
        "profile": shipctl_ctx.profile_name,
        **shipctl_ctx.profile.model_dump(mode="json"),
    }
    if shipctl_ctx.output_format == OutputFormat.TABLE:
        shipctl_ctx.output.format = OutputFormat.YAML
    shipctl_ctx.output.print_data(data)


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except ShipCtlError as e:
        Console(stderr=True).print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except OperationCancelled as e:
        Console(stderr=True).print(f"\n[yellow]{e}[/yellow]")
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        Console(stderr=True).print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
