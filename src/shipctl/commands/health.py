"""Health check command."""

import sys

import click

from shipctl.core.context import ShipCtlContext, pass_context
from shipctl.core.exceptions import ConfigError
from shipctl.core.output import OutputFormat
from shipctl.deploy.health import HealthChecker, report_table
from shipctl.deploy.models import HealthReport
from shipctl.deploy.remote import RemoteExecutor


@click.command()
@click.option(
    "--survey/--no-survey",
    default=True,
    help="Also run the advisory system survey over SSH",
)
@pass_context
def health(ctx: ShipCtlContext, survey: bool) -> None:
    """Check the deployed application without deploying.

    Only the application probe decides the exit status; survey findings
    are reported but never fail the command.

    \b
    Examples:
        shipctl health
        shipctl health --no-survey
        shipctl -o json health
    """
    try:
        profile = ctx.profile
        if survey or profile.health.url is None:
            profile = profile.resolved()
    except ConfigError as e:
        ctx.output.print_error(f"Configuration error: {e}")
        sys.exit(1)
    executor = RemoteExecutor(profile.target, default_timeout=profile.health.survey_timeout)
    checker = HealthChecker(profile.health, executor, profile.remote, profile.services)

    report = HealthReport()
    probe = report.add(checker.probe_application())
    if survey:
        checker.survey(report)

    if ctx.output_format == OutputFormat.TABLE:
        ctx.output.print_table(report_table(report, title="Health Report"))
    else:
        ctx.output.print_data(report.to_dict())

    if not report.passed:
        ctx.output.print_error(f"Application health check failed: {probe.detail}")
        sys.exit(1)
    ctx.output.print_health(f"Application healthy: {probe.detail}")
