"""command line interface for elfcov"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from .config import DEFAULT_DEBUG_ROOT, ParserConfig
from .database import DatabaseError, JsonDatabase
from .display import (
    print_binary_info_json,
    print_binary_info_rich,
    print_lines_json,
    print_lines_rich,
)
from .filters import Filter
from .listeners import FileCollector, LineCollector
from .parser import ElfParser, ParseState
from .scanner import ObjectScanner, ScanError


app = typer.Typer(
    help="resolve ELF binaries to instrumentable source lines",
    no_args_is_help=True,
    context_settings=dict(help_option_names=["-h", "--help"]),
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

# global state for verbose option
verbose_enabled = False


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def parse_hex_number(hex_str: str) -> int:
    """parse hex number with or without 0x prefix"""
    return int(hex_str, 16)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "-v", "--verbose", help="enable debug logging for all operations"
    ),
):
    """global options for elfcov"""
    global verbose_enabled
    verbose_enabled = verbose
    setup_logging(verbose)


@app.command()
def info(
    binary: Path = typer.Argument(..., help="ELF binary to inspect"),
    gcov: bool = typer.Option(False, "--gcov", help="scan .rodata for gcov data files"),
    json_output: bool = typer.Option(False, "--json", help="output information as JSON"),
):
    """display segments, build-id and debug link of a binary"""
    scanner = ObjectScanner(scan_gcda=gcov)
    try:
        identity = scanner.identify(str(binary))
        scan = scanner.scan(str(binary))
    except ScanError as e:
        typer.echo(f"error reading {binary}: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        print_binary_info_json(identity, scan)
    else:
        print_binary_info_rich(identity, scan)


@app.command()
def lines(
    binary: Path = typer.Argument(..., help="ELF binary to resolve"),
    gcov: bool = typer.Option(False, "--gcov", help="use gcov notes files when found"),
    debug_root: str = typer.Option(
        DEFAULT_DEBUG_ROOT, "--debug-root", help="separate debug info root"
    ),
    database: Optional[Path] = typer.Option(
        None, "--database", "-d", help="checksum database (JSON) for binaries without symbols"
    ),
    relocation: Optional[str] = typer.Option(
        None, "--relocation", "-r", help="load offset of a PIE main binary (hex)"
    ),
    orig_path_prefix: str = typer.Option("", "--orig-path-prefix", help="source prefix to replace"),
    new_path_prefix: str = typer.Option("", "--new-path-prefix", help="replacement source prefix"),
    include_pattern: List[str] = typer.Option(
        [], "--include-pattern", help="only report sources containing this text"
    ),
    exclude_pattern: List[str] = typer.Option(
        [], "--exclude-pattern", help="skip sources containing this text"
    ),
    json_output: bool = typer.Option(False, "--json", help="output line points as JSON"),
):
    """list the instrumentable (file, line, address) points of a binary"""
    config = ParserConfig(
        gcov=gcov,
        debug_root=debug_root,
        parse_solibs=relocation is not None,
        orig_path_prefix=orig_path_prefix,
        new_path_prefix=new_path_prefix,
        include_patterns=include_pattern,
        exclude_patterns=exclude_pattern,
    )

    db = None
    if database:
        try:
            db = JsonDatabase(str(database))
        except DatabaseError as e:
            typer.echo(f"error loading database: {e}", err=True)
            raise typer.Exit(1)

    path_filter = Filter(config)
    parser = ElfParser(config, path_filter, db)
    collector = LineCollector()
    files = FileCollector()
    parser.register_line_listener(collector)
    parser.register_file_listener(files)

    if not parser.add_file(str(binary)):
        typer.echo(f"can't find or open {binary}", err=True)
        raise typer.Exit(1)
    if not parser.parse():
        typer.echo(f"no line information for {binary}", err=True)
        raise typer.Exit(1)

    main = parser.main_file
    if main is not None and main.state is ParseState.AWAITING_RELOCATION:
        if not parser.set_main_file_relocation(parse_hex_number(relocation or "0")):
            typer.echo(f"no line information for {binary}", err=True)
            raise typer.Exit(1)
    elif relocation is not None:
        parser.set_main_file_relocation(parse_hex_number(relocation))

    entries = [e for e in collector.lines if path_filter.run_filters(e.file)]

    if json_output:
        print_lines_json(entries, files.files)
    else:
        print_lines_rich(entries, files.files)

    if verbose_enabled:
        typer.echo(f"{len(entries)} line points, {len(files)} files", err=True)


@app.command()
def checksum(
    binaries: List[Path] = typer.Argument(..., help="ELF binaries to checksum"),
):
    """print the content checksum of each binary"""
    scanner = ObjectScanner()
    failed = False
    for path in binaries:
        try:
            identity = scanner.identify(str(path))
        except ScanError as e:
            typer.echo(f"error reading {path}: {e}", err=True)
            failed = True
            continue
        typer.echo(f"{identity.checksum:016x}  {path}")

    if failed:
        raise typer.Exit(1)
