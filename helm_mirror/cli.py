"""Thin CLI wrapper for helm_mirror.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from helm_mirror import __version__
from helm_mirror.config import Settings, get_settings, print_settings_json
from helm_mirror.errors import HelmMirrorError

app = typer.Typer(
    name="helm-mirror",
    help="Helm Mirror - mirror chart repositories and inspect chart images",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

IgnoreErrorsOption = Annotated[
    bool,
    typer.Option(
        "--ignore-errors",
        "-i",
        help="Ignore errors while downloading or processing charts",
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Verbose output"),
]

MIRROR_HELP = """Mirror Helm charts from an index file into a local folder.

For example:

    helm-mirror mirror https://charts.example.com/ /path/to/downloaded/charts

This downloads the index file and the latest version of every chart into the
destination folder. REPO_URL must be http(s) and FOLDER an absolute path.
"""

INSPECT_HELP = """Extract all the container images listed in each chart.

TARGET is the absolute path of a chart folder, a chart archive, or a folder
of chart archives. Images go to stdout unless --output says otherwise.
"""

OUTPUT_HELP = (
    "Output for the list of images: stdout, file, json, yaml or skopeo, "
    "optionally with a file name as kind=filename (default file: images.out)"
)


def setup_logging(settings: Settings, verbose: bool = False) -> None:
    """Send package logs to stderr through Rich."""
    package_logger = logging.getLogger("helm_mirror")
    package_logger.setLevel(logging.DEBUG if verbose else settings.log_level)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=err_console, show_path=False, markup=False)
        )


def fail(error: Exception) -> None:
    """Print a single diagnostic line and exit non-zero."""
    err_console.print(
        f"[red]Error: {escape(str(error))}[/red]", highlight=False, soft_wrap=True
    )
    raise typer.Exit(code=1) from None


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"helm-mirror version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Helm Mirror - mirror chart repositories and inspect chart images."""


@app.command(help=MIRROR_HELP)
def mirror(
    repo_url: Annotated[str, typer.Argument(help="Chart repository URL")],
    folder: Annotated[Path, typer.Argument(help="Destination folder (full path)")],
    chart_name: Annotated[
        str | None,
        typer.Option("--chart-name", help="Name of the chart that gets mirrored"),
    ] = None,
    chart_version: Annotated[
        str | None,
        typer.Option(
            "--chart-version",
            help="Specific version of the chart to mirror (needs --chart-name)",
        ),
    ] = None,
    all_versions: Annotated[
        bool,
        typer.Option(
            "--all-versions",
            "-a",
            help="Get all the versions of the charts in the repository",
        ),
    ] = False,
    new_root_url: Annotated[
        str | None,
        typer.Option(
            "--new-root-url",
            help="New root URL of the chart repository "
            "(eg: https://mirror.local.lan/charts)",
        ),
    ] = None,
    username: Annotated[
        str | None,
        typer.Option("--username", help="Chart repository username"),
    ] = None,
    password: Annotated[
        str | None,
        typer.Option("--password", help="Chart repository password"),
    ] = None,
    ca_file: Annotated[
        Path | None,
        typer.Option(
            "--ca-file",
            help="Verify certificates of HTTPS-enabled servers using this CA bundle",
        ),
    ] = None,
    cert_file: Annotated[
        Path | None,
        typer.Option(
            "--cert-file", help="Identify HTTPS client using this SSL certificate file"
        ),
    ] = None,
    key_file: Annotated[
        Path | None,
        typer.Option(
            "--key-file", help="Identify HTTPS client using this SSL key file"
        ),
    ] = None,
    ignore_errors: IgnoreErrorsOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Mirror Helm charts from an index file into a local folder."""
    from helm_mirror.mirror.service import MirrorService
    from helm_mirror.types import MirrorOptions, RepositoryAuth, SelectionCriteria

    settings = get_settings()
    setup_logging(settings, verbose)

    try:
        options = MirrorOptions(
            repo_url=repo_url,
            destination=folder,
            criteria=SelectionCriteria.for_chart(
                chart_name, chart_version, all_versions=all_versions
            ),
            auth=RepositoryAuth(
                username=username,
                password=password,
                ca_file=ca_file,
                cert_file=cert_file,
                key_file=key_file,
            ),
            new_root_url=new_root_url,
            ignore_errors=ignore_errors,
            verbose=verbose,
        )
        result = MirrorService(options, settings=settings).run()
    except HelmMirrorError as e:
        fail(e)
        return

    err_console.print(
        f"Mirrored {len(result.downloaded)} chart archive(s) to {folder}",
        highlight=False,
    )
    if result.failed:
        err_console.print(
            f"[yellow]Skipped {len(result.failed)} chart archive(s):[/yellow]"
        )
        for outcome in result.failed:
            err_console.print(
                f"  - {outcome.entry.name}({outcome.entry.version}): {outcome.error}",
                markup=False,
                highlight=False,
            )


@app.command("inspect-images", help=INSPECT_HELP)
def inspect_images(
    target: Annotated[
        Path, typer.Argument(help="Chart folder, chart archive or folder of archives")
    ],
    output: Annotated[
        str,
        typer.Option("--output", "-o", help=OUTPUT_HELP),
    ] = "stdout",
    ignore_errors: IgnoreErrorsOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Extract all the container images listed in each chart."""
    from helm_mirror.images.traversal import ImageInspector
    from helm_mirror.types import InspectOptions, OutputSpec

    settings = get_settings()
    setup_logging(settings, verbose)

    try:
        options = InspectOptions(
            target=target,
            output=OutputSpec.parse(output, default_filename=settings.images_file),
            ignore_errors=ignore_errors,
            verbose=verbose,
        )
        result = ImageInspector(options, settings=settings).run()
    except HelmMirrorError as e:
        fail(e)
        return

    if result.has_errors:
        err_console.print(
            "[yellow]Some charts could not be processed; "
            "run with --verbose for details[/yellow]"
        )


@app.command("version")
def version_command() -> None:
    """Show version of helm-mirror."""
    console.print(__version__)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Request timeout:     {settings.request_timeout}")
        console.print()
        console.print("[bold]Rendering:[/bold]")
        console.print(f"  Renderer:            {settings.renderer}")
        console.print(f"  Helm binary:         {settings.helm_binary}")
        console.print(f"  Render timeout:      {settings.render_timeout}")
        console.print(f"  Release name:        {settings.release_name}")
        console.print(f"  Namespace:           {settings.namespace}")
        console.print()
        console.print("[bold]Output:[/bold]")
        console.print(f"  Images file:         {settings.images_file}")


if __name__ == "__main__":
    app()
