"""Deploy command."""

import sys

import click

from shipctl.core.cancellation import CancellationToken
from shipctl.core.context import ShipCtlContext, pass_context
from shipctl.core.exceptions import ConfigError
from shipctl.deploy.orchestrator import create_orchestrator


@click.command()
@pass_context
def deploy(ctx: ShipCtlContext) -> None:
    """Promote the local project to the configured host.

    Runs prechecks, backup, upload, remote installation and the health
    check in order. Any failure rolls the host back to the backup taken
    at the start of the run.

    \b
    Exit codes:
        0      Deployment completed
        1      Generic failure
        130    Interrupted (SIGINT)
        143    Terminated (SIGTERM)
        other  Status of the failing remote step
    """
    try:
        profile = ctx.profile.resolved()
    except ConfigError as e:
        ctx.output.print_error(f"Configuration error: {e}")
        sys.exit(1)
    ctx.logger.debug("Starting deployment", profile=ctx.profile_name, host=profile.target.host)

    try:
        orchestrator = create_orchestrator(profile, ctx.output, token=CancellationToken())
    except OSError as e:
        ctx.output.print_error(f"Cannot open session log in {profile.logging.log_dir}: {e}")
        sys.exit(1)
    try:
        code = orchestrator.run()
    finally:
        orchestrator.close()
        ctx.output.attach(None)

    sys.exit(code)
