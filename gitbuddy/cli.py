import logging
import sys
from pathlib import Path

import click

from gitbuddy import git_ops
from gitbuddy.app import Application
from gitbuddy.config import LOG_LEVELS, ConfigError, load_settings
from gitbuddy.log import setup_logging
from gitbuddy.tui import run_tui

logger = logging.getLogger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--repo",
    "repo",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Repository to open (defaults to the current directory).",
)
@click.option("--log-limit", type=click.IntRange(min=1), default=None, help="Commits shown in the Log pane.")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Level for the log file.",
)
def main(repo: Path | None, log_limit: int | None, log_level: str | None) -> None:
    """gitbuddy: drive a git repository from a multi-pane terminal UI."""
    repo_root = git_ops.get_repo_root(repo or Path.cwd())
    if repo_root is None:
        click.echo("gitbuddy: not inside a git repository", err=True)
        raise SystemExit(1)

    try:
        settings = load_settings(repo_root)
    except ConfigError as exc:
        click.echo(f"gitbuddy: {exc}", err=True)
        raise SystemExit(1)
    settings = settings.override(log_limit=log_limit, log_level=log_level and log_level.upper())

    setup_logging(settings.log_file, settings.log_level)
    logger.info("opening %s", repo_root)

    if not sys.stdin.isatty() or not sys.stdout.isatty():
        click.echo("gitbuddy: needs an interactive terminal", err=True)
        raise SystemExit(1)

    core = Application(git_ops.GitBackend(repo_root), settings)
    try:
        fatal = run_tui(core)
    except Exception as exc:
        logger.exception("terminal UI failed")
        click.echo(f"gitbuddy: terminal UI failed: {exc}", err=True)
        raise SystemExit(1)
    finally:
        core.shutdown()

    if fatal:
        click.echo(f"gitbuddy: internal error: {fatal}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
