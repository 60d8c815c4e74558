import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .cancellation import CancellationToken
from .constants import (
    DEFAULT_EXCLUDE_DIRECTORIES,
    DEFAULT_EXCLUDE_FILES,
    DEFAULT_INCLUDE_FOLDERS,
    DEFAULT_TEMPLATE_NAME,
)
from .core import GenerationError, TemplateEngine
from .models import GenerationConfiguration, GenerationResult
from .services.config_loader import ConfigLoader

console = Console()

DEFAULT_CONFIG_FILE = ".templategen.yml"


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def render_result(result: GenerationResult):
    table = Table(title="Generation steps")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Message", overflow="fold")

    for step_result in result.step_results:
        status = "[green]OK[/green]" if step_result.success else "[red]FAILED[/red]"
        table.add_row(str(step_result.order), step_result.step_name, status, step_result.message)
    console.print(table)

    if result.success:
        console.print(f"[bold green]{result.message}[/bold green]")
    elif result.cancelled:
        console.print(f"[bold yellow]{result.message}[/bold yellow]")
    else:
        console.print(f"[bold red]Error:[/bold red] {result.message}")
    console.print(f"Elapsed: {result.duration_seconds:.2f}s")


@click.command()
@click.option("--name", required=False, help="Name of the new project (a valid identifier).")
@click.option("--target", required=False, type=click.Path(), help="Directory to create the project in.")
@click.option(
    "--template",
    required=False,
    type=click.Path(),
    help="Template root. Defaults to the nearest ancestor holding <template-name>.sln.",
)
@click.option(
    "--template-name",
    required=False,
    help=f"Placeholder identifier used by the template (default: {DEFAULT_TEMPLATE_NAME}).",
)
@click.option("--database-name", required=False, help="Database name (default: <name>Db).")
@click.option(
    "--connection-string",
    required=False,
    help="Connection string written to appsettings files (default: LocalDB).",
)
@click.option(
    "--include",
    "include_folders",
    multiple=True,
    help="Top-level template folder to copy. Repeatable.",
)
@click.option(
    "--exclude-dir",
    "exclude_directories",
    multiple=True,
    help="Directory name to skip at any depth. Repeatable.",
)
@click.option(
    "--exclude-file",
    "exclude_files",
    multiple=True,
    help="File name glob to skip at any depth. Repeatable.",
)
@click.option("--git/--no-git", default=None, help="Initialize a git repository (default: on).")
@click.option("--commit/--no-commit", default=None, help="Create an initial commit (default: on).")
@click.option("--validate/--no-validate", default=None, help="Validate the generated output (default: on).")
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--report-file",
    required=False,
    type=click.Path(),
    help="Write a JSON run report to this path.",
)
def main(
    name,
    target,
    template,
    template_name,
    database_name,
    connection_string,
    include_folders,
    exclude_directories,
    exclude_files,
    git,
    commit,
    validate,
    config,
    verbose,
    log_file,
    report_file,
):
    """Generate a renamed, reconfigured project from a template tree."""
    logger = logging.getLogger("templategen")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except GenerationError as exc:
        raise click.ClickException(str(exc)) from exc

    name = _resolve_option(name, config_values, "name")
    target = _resolve_option(target, config_values, "target")
    template = _resolve_option(template, config_values, "template")
    template_name = _resolve_option(
        template_name, config_values, "template_name", default=DEFAULT_TEMPLATE_NAME
    )
    database_name = _resolve_option(database_name, config_values, "database_name")
    connection_string = _resolve_option(connection_string, config_values, "connection_string")
    include_folders = tuple(
        _resolve_option(
            include_folders or None,
            config_values,
            "include_folders",
            default=DEFAULT_INCLUDE_FOLDERS,
        )
    )
    exclude_directories = tuple(
        _resolve_option(
            exclude_directories or None,
            config_values,
            "exclude_directories",
            default=DEFAULT_EXCLUDE_DIRECTORIES,
        )
    )
    exclude_files = tuple(
        _resolve_option(
            exclude_files or None,
            config_values,
            "exclude_files",
            default=DEFAULT_EXCLUDE_FILES,
        )
    )
    git = bool(_resolve_option(git, config_values, "git", default=True))
    commit = bool(_resolve_option(commit, config_values, "commit", default=True))
    validate = bool(_resolve_option(validate, config_values, "validate", default=True))
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    report_file = _resolve_option(report_file, config_values, "report_file")

    if not name:
        raise click.ClickException("Missing required option '--name' (or provide it in config).")
    if not target:
        raise click.ClickException("Missing required option '--target' (or provide it in config).")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    configuration = GenerationConfiguration(
        project_name=name,
        target_path=str(target),
        template_path=str(template) if template else None,
        template_name=template_name,
        database_name=database_name,
        connection_string=connection_string,
        include_folders=include_folders,
        exclude_directories=exclude_directories,
        exclude_files=exclude_files,
        initialize_repository=git,
        create_initial_commit=commit,
        run_output_validation=validate,
    )

    engine = TemplateEngine(logger=logger, report_file=report_file)
    result = engine.generate(
        configuration,
        progress=lambda message: console.print(f"[blue]{message}[/blue]"),
        cancellation=CancellationToken(),
    )

    render_result(result)
    raise SystemExit(0 if result.success else 1)


if __name__ == "__main__":
    main()
