"""Command-line entry point for profilekeeper."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import click

from .commands.profile import profile
from .logging_setup import LOG_PATH_ENV_VAR
from .logging_setup import init_json_logging
from .manager import configure
from .settings import load_settings

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(package_name="profilekeeper")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Application data directory (default: $PROFILEKEEPER_HOME or ~/.profilekeeper)",
)
@click.option("--log-level", default=None, help="Log level for the JSONL log (default: INFO)")
@click.pass_context
def cli(ctx: click.Context, home: Path | None, log_level: str | None):
    """profilekeeper - profile directory registry and lifecycle manager."""
    settings = load_settings(home, log_level=log_level)
    log_path = settings.log_path or os.environ.get(LOG_PATH_ENV_VAR) or settings.home / "profilekeeper.log.jsonl"
    init_json_logging(log_path, settings.log_level)
    configure(settings)
    logger.debug(f"Using profiles root {settings.profiles_root}")
    ctx.obj = settings


cli.add_command(profile)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
