"""Command line entry points, meant to be invoked by cron."""

import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from query_health_checks.query_health_check import QueryHealthCheck

_path = click.Path(exists=True, dir_okay=False, path_type=Path)


def _build(ctx: click.Context) -> QueryHealthCheck:
    opts = ctx.obj
    return QueryHealthCheck(
        config_path=str(opts["config"]) if opts["config"] else None,
        checks_path=str(opts["checks"]) if opts["checks"] else None,
        state_path=str(opts["state"]) if opts["state"] else None,
        debug=opts["debug"],
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--config", type=_path, default=None, help="Path to query_checks.yaml.")
@click.option("--checks", type=_path, default=None, help="Path to checks.yaml.")
@click.option(
    "--state",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML file persisting check state between runs.",
)
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def main(
    ctx: click.Context,
    config: Optional[Path],
    checks: Optional[Path],
    state: Optional[Path],
    debug: bool,
) -> None:
    """Run scheduled SQL health checks."""
    ctx.obj = {"config": config, "checks": checks, "state": state, "debug": debug}


@main.command("run-checks")
@click.option("--schedule", type=str, default=None, help="Schedule tier to run, e.g. '1 hour'. All checks if omitted.")
@click.option("--quiet", is_flag=True, default=False, help="Do not print the results table.")
@click.pass_context
def run_checks(ctx: click.Context, schedule: Optional[str], quiet: bool) -> None:
    """Run the checks of a schedule tier."""
    health_check = None
    try:
        health_check = _build(ctx)
        health_check.run_checks(schedule)
        if not quiet:
            health_check.print_results()
    except Exception as e:
        logger.error(f"Running checks failed: {e}")
        sys.exit(1)
    finally:
        if health_check:
            health_check.close()


@main.command("send-failing-checks")
@click.pass_context
def send_failing_checks(ctx: click.Context) -> None:
    """E-mail every recipient the checks that are unhealthy."""
    health_check = None
    try:
        health_check = _build(ctx)
        groups = health_check.send_failing_checks()
        click.echo(f"Notified {len(groups)} recipient(s)")
    except Exception as e:
        logger.error(f"Sending failing checks failed: {e}")
        sys.exit(1)
    finally:
        if health_check:
            health_check.close()


@main.command("list-checks")
@click.pass_context
def list_checks(ctx: click.Context) -> None:
    """Print the configured checks."""
    try:
        health_check = _build(ctx)
    except Exception as e:
        logger.error(f"Loading checks failed: {e}")
        sys.exit(1)
    health_check.print_checks()


if __name__ == "__main__":
    main()
