"""CLI entrypoint for tide."""

import logging
import sys
from pathlib import Path

import rich_click as click

from tide import __version__
from tide.config import ConfigError, resolve_config_path
from tide.controllers import InitCommand, ListCommand, RunCommand, TideCliController

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TideCliController()

logger = logging.getLogger(__name__)


def _split_groups(_ctx: object, _param: object, value: tuple[str, ...]) -> tuple[str, ...] | None:
    names = tuple(name.strip() for raw in value for name in raw.split(",") if name.strip())
    return names or None


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="tide")
@click.option("-q", "--quiet", is_flag=True, help="Run in quiet mode (no banner, minimal output).")
@click.option(
    "-n",
    "--dry-run",
    is_flag=True,
    help="Show what would be executed without running anything.",
)
@click.option(
    "-g",
    "--groups",
    multiple=True,
    callback=_split_groups,
    help="Run specific groups only (comma-separated, repeatable).",
)
@click.option(
    "-x",
    "--skip-groups",
    multiple=True,
    callback=_split_groups,
    help="Skip specific groups (comma-separated, repeatable).",
)
@click.option(
    "-j",
    "--parallel",
    type=click.IntRange(min=1),
    default=4,
    show_default=True,
    help="Maximum parallel tasks.",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file path (default: ~/.config/tide/config.toml).",
)
@click.option("--init", "init", is_flag=True, help="Generate default config and exit.")
@click.option("-l", "--list", "list_only", is_flag=True, help="List configured tasks and exit.")
@click.option("-f", "--force", is_flag=True, help="Run without confirmations.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def tide(  # noqa: PLR0913
    quiet: bool,
    dry_run: bool,
    groups: tuple[str, ...] | None,
    skip_groups: tuple[str, ...] | None,
    parallel: int,
    config_path: Path | None,
    init: bool,
    list_only: bool,
    force: bool,
    verbose: bool,
) -> None:
    """🌊 Tide - Refresh your system with the update wave."""

    _configure_logging(verbose)

    if init:
        target = resolve_config_path(config_path)
        if target.exists() and not click.confirm(
            "Config file already exists. Overwrite?",
            default=False,
        ):
            return
        _emit_lines(CONTROLLER.init_config(InitCommand(config_path=config_path)))
        return

    try:
        if list_only:
            _emit_lines(
                CONTROLLER.list_tasks(
                    ListCommand(
                        config_path=config_path,
                        groups=groups,
                        skip_groups=skip_groups,
                        verbose=verbose,
                    ),
                ),
            )
            return

        if sys.platform != "darwin":
            logger.warning("tide targets macOS; tasks for missing tools will be skipped.")

        report = CONTROLLER.run(
            RunCommand(
                config_path=config_path,
                quiet=quiet,
                dry_run=dry_run,
                groups=groups,
                skip_groups=skip_groups,
                parallel=parallel,
                force=force,
                verbose=verbose,
            ),
            confirm=lambda question: click.confirm(question, default=True),
            echo=click.echo,
        )
    except ConfigError as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException("One or more required tasks failed.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tide()
