import json
import logging
import sys
import time
from typing import Any, Dict, List, Optional

import click

from infraflags.adapters.system_initiative import SystemInitiativeClient
from infraflags.config import Settings, validate_token_format
from infraflags.errors import ConfigurationError, InfraFlagsError, TransportError
from infraflags.mapping import PROJECTIONS
from infraflags.reconcile import ReconciliationResult, indeterminate, reconcile
from infraflags.report import EXIT_FAILURE, exit_code, render_text
from infraflags.requirements import KIND_ABSENT, KIND_PARSE_ERROR, parse_failure, parse_requirements
from infraflags.resolver import Resolution, resolve_deployed_flags

LOGGER = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def build_platform(settings: Settings) -> SystemInitiativeClient:
    """Create the platform client for this invocation (patched in tests)."""
    return SystemInitiativeClient.from_settings(settings)


def load_settings(**overrides: Any) -> Settings:
    """Environment settings with non-None CLI overrides applied."""
    settings = Settings.from_env()
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)
    return settings


def resolve_with_retries(
    settings: Settings,
    application: str,
    environment: Optional[str],
    change_set: Optional[str],
    retries: int = 0,
    retry_delay: float = 0.0,
) -> Resolution:
    """Run the resolver, retrying only transport failures.

    The resolver itself never retries; this loop is the CLI's policy. Every
    attempt gets a fresh client so no state survives a failed attempt.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            with build_platform(settings) as platform:
                return resolve_deployed_flags(
                    platform,
                    application,
                    environment,
                    change_set,
                    schema_kind=settings.schema_kind,
                    projection=settings.projection,
                    timeout=settings.timeout,
                )
        except TransportError as exc:
            if attempt > retries:
                raise
            LOGGER.warning(f"Attempt {attempt} failed ({exc.kind}): {exc.message}; retrying")
            if retry_delay > 0:
                time.sleep(retry_delay * attempt)


def _emit_error(exc: InfraFlagsError) -> None:
    click.echo(json.dumps(exc.payload()))
    sys.exit(EXIT_FAILURE)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Verbosity of diagnostics written to stderr",
)
def cli(log_level):
    """Verify that infrastructure flags required by an application are deployed."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--app", "application", required=True, help="Application name on its InfraFlags component")
@click.option("--env", "environment", required=True, help="Target environment (e.g. pr, dev, preprod, prod)")
@click.option("--file", "requirements_file", help="Requirement artifact (default: infraflags.yaml or $INFRAFLAGS_FILE)")
@click.option("--change-set", help="Change set id to read; defaults to the HEAD change set")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Total seconds allowed for platform calls")
@click.option("--retries", default=0, show_default=True, type=click.IntRange(min=0), help="Retries after transport failures")
@click.option("--retry-delay", default=2.0, show_default=True, type=click.FloatRange(min=0), help="Base delay in seconds between retries")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text", show_default=True)
def check(application, environment, requirements_file, change_set, timeout, retries, retry_delay, output_format):
    """Check required flags against the flags deployed in ENV.

    Exits 0 when satisfied, 1 when flags are missing and 2 when the deployed
    state cannot be determined or the requirement artifact is malformed.
    """
    required: List[str] = []
    warnings: List[str] = []
    try:
        settings = load_settings(requirements_file=requirements_file, timeout=timeout)
        read = parse_requirements(settings.requirements_file)
        if read.kind == KIND_PARSE_ERROR:
            raise parse_failure(read)
        required = list(read.flags)
        warnings.extend(read.warnings)

        if read.kind == KIND_ABSENT:
            LOGGER.info(f"No requirement artifact at {read.path}; nothing to check")
        if not required:
            warnings.append("No flags are required; deployed state was not queried")
            result = reconcile([], [], environment=environment, warnings=warnings)
        else:
            resolution = resolve_with_retries(settings, application, environment, change_set, retries, retry_delay)
            warnings.extend(resolution.warnings)
            result = reconcile(required, resolution.deployed, environment=environment, warnings=warnings)
    except InfraFlagsError as exc:
        LOGGER.error(f"{exc.failure_class}: {exc.message}")
        result = indeterminate(required, exc.payload(), environment=environment, warnings=warnings)

    _emit_result(result, application, output_format)
    sys.exit(exit_code(result))


def _emit_result(result: ReconciliationResult, application: str, output_format: str) -> None:
    if output_format == "json":
        payload: Dict[str, Any] = {"application": application}
        payload.update(result.to_payload())
        click.echo(json.dumps(payload))
    else:
        click.echo(render_text(result, application))


@cli.command()
@click.option("--file", "requirements_file", help="Requirement artifact (default: infraflags.yaml or $INFRAFLAGS_FILE)")
def requirements(requirements_file):
    """Print the flags the requirement artifact declares."""
    try:
        settings = load_settings(requirements_file=requirements_file)
    except ConfigurationError as exc:
        _emit_error(exc)
    read = parse_requirements(settings.requirements_file)
    if read.kind == KIND_PARSE_ERROR:
        _emit_error(parse_failure(read))
    click.echo(json.dumps({
        "ok": True,
        "path": read.path,
        "present": read.kind != KIND_ABSENT,
        "flags": read.flags,
        "warnings": read.warnings,
    }))


@cli.command()
@click.option("--app", "application", required=True, help="Application name on its InfraFlags component")
@click.option("--env", "environment", help="Only print the flags active in this environment")
@click.option("--change-set", help="Change set id to read; defaults to the HEAD change set")
@click.option("--projection", type=click.Choice(PROJECTIONS), help="Computed output to read")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Total seconds allowed for platform calls")
def flags(application, environment, change_set, projection, timeout):
    """Print the deployed flag mapping of an application."""
    try:
        settings = load_settings(projection=projection, timeout=timeout)
        resolution = resolve_with_retries(settings, application, environment, change_set)
    except InfraFlagsError as exc:
        _emit_error(exc)

    payload: Dict[str, Any] = {
        "ok": True,
        "application": application,
        "change_set": resolution.snapshot_id,
        "component": resolution.component.id,
        "warnings": resolution.warnings,
    }
    if environment is not None:
        payload["environment"] = environment
        payload["flags"] = resolution.deployed
    else:
        payload.update(resolution.mapping.to_payload())
    click.echo(json.dumps(payload))


@cli.command("validate-credentials")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Seconds allowed for the check")
def validate_credentials(timeout):
    """Check that SI_API_TOKEN is well formed and accepted by the platform."""
    try:
        settings = load_settings(timeout=timeout)
        validate_token_format(settings.api_token)
        workspace = settings.resolved_workspace()
        with build_platform(settings) as platform:
            identity = platform.whoami(timeout=settings.timeout)
    except InfraFlagsError as exc:
        _emit_error(exc)
    click.echo(json.dumps({
        "ok": True,
        "workspace": workspace,
        "identity": identity,
    }))


def cli_entry():
    cli(prog_name="infraflags")

if __name__ == "__main__":
    cli_entry()
