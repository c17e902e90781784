#!/usr/bin/env python
"""Command-line interface for helmstate.

This module provides the main CLI entry point. It builds the run options,
runs the pipeline and is the single place where failures are reported,
notified to Slack and turned into an exit status.
"""

import sys
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

import click
from icecream import ic

from helmstate import __version__, console
from helmstate.config import RunOptions
from helmstate.exceptions import HelmstateError, NoAppsDefined
from helmstate.loader import describe_state
from helmstate.notify import SlackNotifier
from helmstate.pipeline import Pipeline, RunReport


def report_ownership(report: RunReport) -> None:
    """Print the apps already managed by helmstate, per namespace."""
    if not report.owned:
        console.info("No releases managed by helmstate found in the cluster")
        return
    console.summary_panel(
        "Managed releases",
        {ns: ", ".join(sorted(app.name for app in apps)) for ns, apps in sorted(report.owned.items())},
    )


def fail(message: str, webhook: str, notifier: SlackNotifier | None = None) -> NoReturn:
    """Report a fatal error, notify Slack when configured, and exit with status 1."""
    console.error(message)
    if webhook:
        (notifier or SlackNotifier()).notify(message, webhook, failure=True)
    sys.exit(1)


@click.command(help="Reconcile namespaces and cluster access from a desired state file")
@click.option("--version", "-v", required=False, is_flag=True, help="print version")
@click.option("--file", "-f", "state_file", required=False, type=click.Path(dir_okay=False), help="desired state file")
@click.option("--ns-override", envvar="HELMSTATE_NS_OVERRIDE", default="", help="override all app namespaces")
@click.option("--no-env-subst", is_flag=True, help="turn off env variables substitution")
@click.option("--no-ssm-subst", is_flag=True, help="turn off SSM parameter substitution")
@click.option("--no-env-values-subst", is_flag=True, help="turn off env substitution in values files")
@click.option("--no-ssm-values-subst", is_flag=True, help="turn off SSM substitution in values files")
@click.option("--no-default-repos", is_flag=True, help="do not add the stable and incubator repos")
@click.option("--show-state", is_flag=True, help="print the parsed desired state")
@click.option("--verbose", is_flag=True, help="show verbose output")
@click.option("--debug", required=False, is_flag=True, help="print debug information")
def cli(
    version: bool,
    state_file: str | None,
    ns_override: str,
    no_env_subst: bool,
    no_ssm_subst: bool,
    no_env_values_subst: bool,
    no_ssm_values_subst: bool,
    no_default_repos: bool,
    show_state: bool,
    verbose: bool,
    debug: bool,
) -> None:
    """Process CLI arguments and run the reconciliation pipeline."""
    if not debug:
        ic.disable()

    if version:
        click.echo(__version__)
        return

    if not state_file:
        raise click.UsageError("a desired state file is required (--file)")

    options = RunOptions(
        no_env_subst=no_env_subst,
        no_ssm_subst=no_ssm_subst,
        no_env_values_subst=no_env_values_subst,
        no_ssm_values_subst=no_ssm_values_subst,
        ns_override=ns_override,
        no_default_repos=no_default_repos,
        debug=debug,
        verbose=verbose,
    )
    ic(options)

    with tempfile.TemporaryDirectory(prefix="helmstate-") as temp_dir:
        pipeline = Pipeline(replace(options, temp_dir=Path(temp_dir)))
        try:
            if show_state:
                describe_state(pipeline.load(state_file))
                return
            report = pipeline.run(state_file)
        except NoAppsDefined as e:
            console.info(str(e))
            return
        except HelmstateError as e:
            fail(str(e), pipeline.webhook)

    report_ownership(report)
    console.success("Done")


if __name__ == "__main__":
    cli()
