"""
CLI for phoundation-fs.

Inspect files, directory trees and mount points through the restricted
filesystem layer.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from phoundation_fs.filesystem import (
    FileSystemConfig,
    FileSystemError,
    FsDirectory,
    FsFile,
    FsPath,
    MountState,
    Restrictions,
    configure,
)

# Load environment variables
load_dotenv()

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Setup rich logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _restrictions(
    config: FileSystemConfig, directories: tuple, write: bool, path: str
) -> Restrictions:
    """
    Build the restrictions for a command.

    Explicit ``--directory`` options win, then the configured system
    directories, then the given path itself.
    """
    if directories:
        return Restrictions(list(directories), write=write, label="cli")
    if config.system_directories:
        return Restrictions.get_system(config)
    return Restrictions(path, write=write, label="cli")


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    sys.exit(1)


directory_option = click.option(
    "--directory",
    "-d",
    "directories",
    multiple=True,
    type=click.Path(),
    help="Allowed directory (repeatable, defaults to the configured system directories)",
)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML or JSON configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_file: Optional[str], verbose: bool):
    """Phoundation FS CLI - restricted filesystem inspection."""
    setup_logging(verbose)

    if config_file:
        config = configure(FileSystemConfig.from_file(config_file))
    else:
        config = configure()

    ctx.obj = config


@cli.command()
@click.argument("path", type=click.Path())
@click.option("--write", "-w", is_flag=True, help="Check write instead of read access")
@directory_option
@click.pass_obj
def check(config: FileSystemConfig, path: str, write: bool, directories: tuple):
    """
    Check whether PATH is accessible.

    Examples:

        phoundation-fs check /var/lib/app/data -d /var/lib/app

        phoundation-fs check /var/lib/app/data --write -d /var/lib/app
    """
    try:
        fs_path = FsPath(path, _restrictions(config, directories, write, path), config=config)
        if write:
            fs_path.check_writable()
        else:
            fs_path.check_readable()
    except FileSystemError as e:
        _fail(e)

    info = fs_path.to_dict()
    console.print(
        Panel(
            f"Path: [green]{info['path']}[/green]\n"
            f"Type: [green]{info['type']}[/green]\n"
            f"Mode: [green]{info['mode']}[/green]\n"
            f"Size: [green]{info['size']}[/green]\n"
            f"Restrictions: [green]{info['restrictions']}[/green]",
            title="Writable" if write else "Readable",
        )
    )


@cli.command("tree-size")
@click.argument("directory", type=click.Path())
@directory_option
@click.pass_obj
def tree_size(config: FileSystemConfig, directory: str, directories: tuple):
    """Print the total size of all files below DIRECTORY (bytes)."""
    try:
        fs_directory = FsDirectory(directory, _restrictions(config, directories, False, directory), config=config)
        console.print(fs_directory.tree_file_size())
    except FileSystemError as e:
        _fail(e)


@cli.command("tree-count")
@click.argument("directory", type=click.Path())
@directory_option
@click.pass_obj
def tree_count(config: FileSystemConfig, directory: str, directories: tuple):
    """Print the number of files below DIRECTORY."""
    try:
        fs_directory = FsDirectory(directory, _restrictions(config, directories, False, directory), config=config)
        console.print(fs_directory.tree_file_count())
    except FileSystemError as e:
        _fail(e)


@cli.command("list-tree")
@click.argument("directory", type=click.Path())
@click.option("--filter", "-f", "filters", multiple=True, help="Regex on file names (repeatable)")
@click.option("--recursive/--no-recursive", default=True, help="Descend into subdirectories")
@directory_option
@click.pass_obj
def list_tree(
    config: FileSystemConfig, directory: str, filters: tuple, recursive: bool, directories: tuple
):
    """List the files below DIRECTORY."""
    try:
        fs_directory = FsDirectory(directory, _restrictions(config, directories, False, directory), config=config)
        for path in fs_directory.list_tree(list(filters), recursive):
            click.echo(path)
    except FileSystemError as e:
        _fail(e)


@cli.command()
@click.argument("file", type=click.Path())
@click.option("--expect", "-e", default=None, help="Expected SHA-256, exit 1 on mismatch")
@directory_option
@click.pass_obj
def sha256(config: FileSystemConfig, file: str, expect: Optional[str], directories: tuple):
    """Print the SHA-256 digest of FILE."""
    try:
        fs_file = FsFile(file, _restrictions(config, directories, False, file), config=config)
        if expect:
            fs_file.check_sha256(expect)
            console.print(f"[green]OK[/green] {fs_file.path}")
        else:
            click.echo(f"{fs_file.get_sha256()}  {fs_file.path}")
    except FileSystemError as e:
        _fail(e)


@cli.command("line-count")
@click.argument("file", type=click.Path())
@click.option("--buffer", "-b", type=int, default=None, help="Read buffer size (bytes)")
@directory_option
@click.pass_obj
def line_count(config: FileSystemConfig, file: str, buffer: Optional[int], directories: tuple):
    """Print the number of lines in FILE."""
    try:
        fs_file = FsFile(file, _restrictions(config, directories, False, file), config=config)
        console.print(fs_file.get_line_count(buffer))
    except FileSystemError as e:
        _fail(e)


@cli.command()
@click.argument("directory", type=click.Path())
@click.option("--source", "-s", "sources", multiple=True, help="Accepted mount source (repeatable)")
@directory_option
@click.pass_obj
def mounted(config: FileSystemConfig, directory: str, sources: tuple, directories: tuple):
    """
    Show the mount state of DIRECTORY.

    Exits with 1 if nothing is mounted, 2 if mounted with issues.
    """
    try:
        fs_directory = FsDirectory(directory, _restrictions(config, directories, False, directory), config=config)
        state = fs_directory.is_mounted(list(sources) or None)
    except FileSystemError as e:
        _fail(e)

    colors = {
        MountState.MOUNTED: "green",
        MountState.NOT_MOUNTED: "red",
        MountState.MOUNTED_WITH_ISSUES: "yellow",
    }
    console.print(f"[{colors[state]}]{state.value}[/{colors[state]}] {fs_directory.path}")

    if state is MountState.NOT_MOUNTED:
        sys.exit(1)
    if state is MountState.MOUNTED_WITH_ISSUES:
        sys.exit(2)


@cli.command()
@click.argument("directory", type=click.Path())
@click.argument("patterns", nargs=-1)
@click.option("--hidden", is_flag=True, help="Include dot entries")
@directory_option
@click.pass_obj
def scan(config: FileSystemConfig, directory: str, patterns: tuple, hidden: bool, directories: tuple):
    """List entries of DIRECTORY matching glob PATTERNS, with type and mode."""
    try:
        fs_directory = FsDirectory(directory, _restrictions(config, directories, False, directory), config=config)
        entries = fs_directory.scan(list(patterns) or None, hidden=hidden)

        table = Table(title=fs_directory.path)
        table.add_column("Mode")
        table.add_column("Size", justify="right")
        table.add_column("Name")

        for entry in entries:
            table.add_row(entry.get_mode_human_readable(), str(entry.get_stat().size), entry.basename)

        console.print(table)
    except FileSystemError as e:
        _fail(e)


if __name__ == "__main__":
    cli()
