"""Main CLI application for bpm."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from bpm import __version__
from bpm.config.parser import ConfigError
from bpm.config.schemas import Settings
from bpm.config.settings import load_settings
from bpm.core.builder import Builder
from bpm.core.index import PackageIndex
from bpm.core.installer import Installer, InstallRequest
from bpm.core.project import Project
from bpm.core.publish import Publisher
from bpm.core.resolver import Resolver
from bpm.core.session import load_session, login_with_retry, logout as end_session, save_session
from bpm.core.unpacker import Unpacker
from bpm.errors import BpmError, EmptyResultError, ValidationError
from bpm.registry.base import RegistryClient
from bpm.registry.cache import LocalCache
from bpm.registry.factory import create_registry_client, normalize_source

# Create the main Typer app
app = typer.Typer(
    name="bpm",
    help="Package resolution, fetch and local cache manager",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

# Set up logger for the bpm package
logger = logging.getLogger("bpm")


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    # Only add handler if not already configured
    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for h in logger.handlers:
            h.setLevel(level)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error:[/red] {message}", highlight=False)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]\u2713[/green] {message}", highlight=False)


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]\u26a0[/yellow] {message}", highlight=False)


def get_settings() -> Settings:
    """Load user settings, exiting on invalid configuration."""
    try:
        return load_settings()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


def get_client(settings: Settings, registry: str | None = None) -> RegistryClient:
    """Create the registry client for a command."""
    try:
        return create_registry_client(normalize_source(registry or settings.registry), settings)
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


def get_cache(settings: Settings) -> LocalCache:
    assert settings.cache_dir is not None
    return LocalCache(settings.cache_dir)


def get_installer(settings: Settings, client: RegistryClient) -> Installer:
    resolver = Resolver(get_cache(settings), client, platforms=settings.platforms)
    return Installer(resolver, max_workers=settings.max_workers)


def print_specs(names: list[str], index: PackageIndex) -> None:
    """Print "name (v1, v2)" lines, newest version first."""
    try:
        packages = index.all_names(names)
    except EmptyResultError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    for name, versions in packages.items():
        console.print(f"{name} ({', '.join(str(v) for v in versions)})", highlight=False)


def find_project(path: Path | None) -> Project | None:
    try:
        return Project.nearest_project(path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


@app.callback()
def callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-V",
            count=True,
            help="Increase verbosity (-V info, -VV debug)",
        ),
    ] = 0,
) -> None:
    """bpm - package resolution, fetch and local cache manager."""
    setup_logging(verbose)


@app.command()
def version() -> None:
    """Show the bpm version."""
    console.print(f"bpm {__version__}")


@app.command()
def init(
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Project name (defaults to directory name)"),
    ] = None,
    registry: Annotated[
        str | None,
        typer.Option("--registry", "-r", help="Registry URL for this project"),
    ] = None,
    path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Project directory (defaults to current directory)"),
    ] = None,
) -> None:
    """Configure a project to use bpm.

    Creates a bpm.yaml configuration file in the specified directory.
    """
    path = Path.cwd() if path is None else path.resolve()

    if not path.exists():
        print_error(f"Directory does not exist: {path}")
        raise typer.Exit(1)

    try:
        project = Project.init(path, name, registry)
    except FileExistsError as e:
        print_error(f"Project already initialized in {path}")
        raise typer.Exit(1) from e

    print_success(f"Initialized bpm project {project.name}")
    console.print(f"  Created: {path / 'bpm.yaml'}", highlight=False)


@app.command()
def fetch(
    packages: Annotated[
        list[str] | None,
        typer.Argument(help="Packages to fetch (defaults to the project's dependencies)"),
    ] = None,
    version: Annotated[
        str,
        typer.Option("--version", "-v", help="Version constraint (e.g. '>= 1.0', '~> 2.1')"),
    ] = ">= 0",
    prerelease: Annotated[
        bool,
        typer.Option("--pre", help="Allow prerelease versions"),
    ] = False,
    registry: Annotated[
        str | None,
        typer.Option("--registry", "-r", help="Registry to fetch from (overrides settings)"),
    ] = None,
    path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Project directory"),
    ] = None,
) -> None:
    """Fetch one or many packages into the local cache.

    Without arguments, fetches every dependency listed in the nearest bpm.yaml.
    Each package is fetched independently; a failure is reported without
    stopping the others.
    """
    settings = get_settings()

    if not packages:
        project = find_project(path)
        if project is None:
            print_error("No packages given and no bpm.yaml found")
            raise typer.Exit(1)

        client = get_client(settings, registry or project.registry)
        result = project.fetch_dependencies(get_installer(settings, client))
        if not result.all_successful:
            for error in result.errors:
                print_error(str(error))
            raise typer.Exit(1)
        print_success(f"Fetched dependent packages for {project.name}")
        return

    client = get_client(settings, registry)
    installer = get_installer(settings, client)
    result = installer.install_many(
        [InstallRequest(package, version, prerelease) for package in packages]
    )

    for outcome in result.outcomes:
        if outcome.success:
            for spec in outcome.specs:
                print_success(f"Successfully fetched {spec.name} ({spec.version})")
        else:
            print_error(str(outcome.error))

    if not result.all_successful:
        raise typer.Exit(1)


@app.command()
def fetched(
    packages: Annotated[
        list[str] | None,
        typer.Argument(help="Only show these packages"),
    ] = None,
) -> None:
    """Show which packages are in the local cache."""
    settings = get_settings()
    try:
        index = get_cache(settings).index()
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    print_specs(packages or [], index)


@app.command()
def add(
    name: Annotated[str, typer.Argument(help="Package to add")],
    version: Annotated[
        str,
        typer.Option("--version", "-v", help="Version constraint"),
    ] = ">= 0",
    prerelease: Annotated[
        bool,
        typer.Option("--pre", help="Allow prerelease versions"),
    ] = False,
    path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Project directory"),
    ] = None,
) -> None:
    """Add a package to the project.

    Uses a cached version when one satisfies the constraint, fetching from
    the registry otherwise, and records the dependency in bpm.yaml.
    """
    settings = get_settings()
    project = find_project(path)
    client = get_client(settings, project.registry if project else None)
    installer = get_installer(settings, client)

    try:
        if installer.resolver.select_cached(name, version, prerelease) is None:
            console.print("Installing from remote")
        specs = installer.install(name, version, prerelease)
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    package = next((spec for spec in specs if spec.name == name), None)
    if package is None:
        print_error("Unable to find package to add")
        raise typer.Exit(1)

    if project is not None:
        project.add_dependency(name, version)
        project.save()
    print_success(f"Added {package.name} ({package.version})")


@app.command("list")
def list_packages(
    packages: Annotated[
        list[str] | None,
        typer.Argument(help="Only show these packages"),
    ] = None,
    all_versions: Annotated[
        bool,
        typer.Option("--all", "-a", help="List all versions available"),
    ] = False,
    prerelease: Annotated[
        bool,
        typer.Option("--pre", help="List prerelease versions available"),
    ] = False,
    registry: Annotated[
        str | None,
        typer.Option("--registry", "-r", help="Registry to list (overrides settings)"),
    ] = None,
) -> None:
    """View packages available for download."""
    settings = get_settings()
    client = get_client(settings, registry)

    try:
        if packages:
            index = PackageIndex()
            for package in packages:
                index = index.merge(client.search(package))
        else:
            index = client.full_index()
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if not prerelease:
        index = index.without_prereleases()
    if not all_versions:
        index = index.latest_only()
    print_specs(packages or [], index)


@app.command()
def build(
    path: Annotated[
        Path,
        typer.Argument(help="package.json or the directory holding it"),
    ] = Path("package.json"),
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Directory to write the archive to"),
    ] = None,
) -> None:
    """Build a package archive from a package.json."""
    try:
        archive = Builder(output).build(path)
    except ValidationError as e:
        message = "bpm encountered the following problems building your package:"
        for error in e.errors:
            message += f"\n* {error}"
        print_error(message)
        raise typer.Exit(1) from e
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    print_success(f"Successfully built package: {archive.filename}")


@app.command()
def unpack(
    archives: Annotated[list[Path], typer.Argument(help="Package archives to extract")],
    target: Annotated[
        Path,
        typer.Option("--target", "-t", help="Unpack to given directory"),
    ] = Path("."),
) -> None:
    """Extract files from package archives."""
    unpacker = Unpacker()
    target = target.resolve()

    for archive in archives:
        try:
            spec = unpacker.unpack(archive, target)
        except BpmError as e:
            print_error(f"There was a problem unpacking {archive}:\n{e}")
            raise typer.Exit(1) from e
        print_success(f"Unpacked package into: {target / spec.full_name}")


@app.command()
def login(
    email: Annotated[
        str | None,
        typer.Option("--email", "-e", help="Account email (prompted when omitted)"),
    ] = None,
) -> None:
    """Log in with your registry credentials."""
    settings = get_settings()
    client = get_client(settings)
    console.print("Enter your bpm credentials.")

    def prompt(attempt: int) -> tuple[str, str]:
        if attempt > 1:
            console.print("Incorrect email or password.")
        address = email if email and attempt == 1 else typer.prompt("Email")
        password = typer.prompt("Password", hide_input=True)
        console.print(f"Logging in as {address}...", highlight=False)
        return address, password

    try:
        session = login_with_retry(client, prompt)
    except (typer.Abort, EOFError) as e:
        print_error("Cancelled login.")
        raise typer.Exit(1) from e
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if session is None:
        print_error("Login failed.")
        raise typer.Exit(1)

    save_session(settings, session)
    print_success("Logged in!")


@app.command()
def logout() -> None:
    """Forget the saved registry session."""
    settings = get_settings()
    if end_session(settings, load_session(settings)):
        print_success("Logged out.")
    else:
        print_warning("Not logged in.")


@app.command()
def push(
    archive: Annotated[Path, typer.Argument(help="Package archive to publish")],
) -> None:
    """Distribute your package."""
    settings = get_settings()
    publisher = Publisher(get_client(settings), load_session(settings))
    try:
        console.print(publisher.push(archive), highlight=False)
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


@app.command()
def yank(
    package: Annotated[str, typer.Argument(help="Package name")],
    version: Annotated[
        str | None,
        typer.Option("--version", "-v", help="Version to yank"),
    ] = None,
    undo: Annotated[
        bool,
        typer.Option("--undo", help="Unyank the version"),
    ] = False,
) -> None:
    """Remove a package version from the registry, or restore it with --undo."""
    if not version:
        print_error("Version required")
        raise typer.Exit(1)

    settings = get_settings()
    publisher = Publisher(get_client(settings), load_session(settings))
    try:
        if undo:
            message = publisher.unyank(package, version)
        else:
            message = publisher.yank(package, version)
    except BpmError as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    console.print(message, highlight=False)


if __name__ == "__main__":
    app()
