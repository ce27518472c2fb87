#!/usr/bin/env python3
"""Command-line entry point for the envcrypt operator workflows.

Usage:
    envcrypt generate-key uat
    envcrypt encrypt uat --field TOKEN_USERNAME --field TOKEN_PASSWORD
    envcrypt generate-and-encrypt uat
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from returns.result import Failure, Result, safe
from rich.console import Console

from .config.logging_config import setup_logging
from .config.settings import Settings
from .core.error_handling import CredentialError
from .security.context import SecretContext
from .security.encryption_coordinator import EncryptionCoordinator
from .security.models import WorkflowCommand, WorkflowMode, WorkflowResult

console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="envcrypt",
        description="Generate secret keys and encrypt credentials in per-environment files",
    )
    parser.add_argument(
        "mode",
        choices=[mode.value for mode in WorkflowMode],
        help="Workflow to run",
    )
    parser.add_argument("environment", help="Environment name, e.g. uat")
    parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        metavar="NAME",
        help="Credential field to encrypt (repeatable); defaults to the configured fields",
    )
    parser.add_argument("--env-dir", type=Path, help="Directory holding the .env.<environment> files")
    parser.add_argument("--secrets-dir", type=Path, help="Directory holding the secret-key files")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-file", help="Optional log file path")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.env_dir is not None:
        overrides["env_dir"] = args.env_dir
    if args.secrets_dir is not None:
        overrides["secrets_dir"] = args.secrets_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file
    return Settings(**overrides)


def run_workflow(
    coordinator: EncryptionCoordinator, command: WorkflowCommand
) -> Result[WorkflowResult, CredentialError]:
    """Run a command, capturing typed workflow failures as a Failure."""
    return safe((CredentialError,))(coordinator.run)(command)


def _report_success(result: WorkflowResult) -> None:
    command = result.command
    console.print(
        f"[green]✓[/green] {command.mode.value} completed for environment "
        f"[bold]{command.environment}[/bold]"
    )
    if command.mode is not WorkflowMode.ENCRYPT:
        action = "rotated" if result.key_rotated else "created"
        console.print(f"  secret key {action}: fingerprint {result.key_fingerprint}")
    if result.encrypted_fields:
        console.print(f"  encrypted: {', '.join(result.encrypted_fields)}")
    if result.skipped_fields:
        console.print(f"  already encrypted: {', '.join(result.skipped_fields)}")


def _report_failure(error: CredentialError) -> None:
    console.print(
        f"[red]✗[/red] {type(error).__name__} [{error.category.name}] "
        f"({error.error_code}): {error.message}"
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run one workflow and return the process exit code."""
    args = build_parser().parse_args(argv)
    settings = _settings_from_args(args)
    setup_logging(settings.log_level, settings.log_file)

    command = WorkflowCommand(
        mode=WorkflowMode(args.mode),
        environment=args.environment,
        fields=tuple(args.fields) if args.fields else None,
    )

    context = SecretContext.from_settings(settings)
    try:
        outcome = run_workflow(EncryptionCoordinator(context), command)
    finally:
        context.close()

    if isinstance(outcome, Failure):
        error = outcome.failure()
        _report_failure(error)
        return error.exit_code

    _report_success(outcome.unwrap())
    return 0


if __name__ == "__main__":
    sys.exit(main())
