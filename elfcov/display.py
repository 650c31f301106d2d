"""terminal and JSON rendering for the command line tool"""

import json
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .listeners import BinaryFile, LineEntry
from .scanner import ElfIdentity, ScanResult

# Constants
MAX_LINE_ROWS = 200


def _binary_info_data(identity: ElfIdentity, scan: ScanResult) -> Dict[str, Any]:
    """collect binary facts into a json-friendly structure"""
    return {
        "path": identity.path,
        "class": f"ELF{identity.layout.elfclass}",
        "type": "shared/pie" if identity.is_shared else "executable",
        "checksum": f"{identity.checksum:016x}",
        "build_id": scan.build_id or None,
        "debug_link": (
            {"name": scan.debug_link.name, "crc": f"{scan.debug_link.crc:08x}"}
            if scan.debug_link
            else None
        ),
        "segments": [
            {"address": f"0x{s.physical:x}", "size": s.size}
            for s in scan.executable_segments
        ],
        "gcda_files": scan.gcda_files,
        "gcno_files": scan.gcno_files,
    }


def print_binary_info_rich(identity: ElfIdentity, scan: ScanResult):
    """display the structural facts about a binary using Rich"""
    console = Console()
    data = _binary_info_data(identity, scan)

    console.print(Panel(f"[bold cyan]ELF Binary[/bold cyan]\n[dim]{data['path']}[/dim]", expand=False))

    summary = Table(show_header=False, box=None)
    summary.add_column("Field", style="bold")
    summary.add_column("Value", style="cyan")
    summary.add_row("Class", data["class"])
    summary.add_row("Type", data["type"])
    summary.add_row("Checksum", data["checksum"])
    summary.add_row("Build-id", data["build_id"] or "[dim]none[/dim]")
    if data["debug_link"]:
        link = data["debug_link"]
        summary.add_row("Debug link", f"{link['name']} (crc {link['crc']})")
    else:
        summary.add_row("Debug link", "[dim]none[/dim]")
    console.print(summary)
    console.print()

    segments = Table(title="[bold]Executable Segments[/bold]")
    segments.add_column("Address", style="green")
    segments.add_column("Size", justify="right")
    for seg in data["segments"]:
        segments.add_row(seg["address"], f"{seg['size']:,}")
    console.print(segments)

    if data["gcda_files"]:
        console.print()
        gcov = Table(title="[bold]Gcov Data Files[/bold]")
        gcov.add_column("gcda")
        gcov.add_column("gcno found", justify="center")
        for gcda in data["gcda_files"]:
            found = any(n[:-2] == gcda[:-2] for n in data["gcno_files"])
            gcov.add_row(gcda, "yes" if found else "no")
        console.print(gcov)


def print_binary_info_json(identity: ElfIdentity, scan: ScanResult):
    print(json.dumps(_binary_info_data(identity, scan), indent=2))


def print_lines_rich(lines: List[LineEntry], files: List[BinaryFile]):
    """display resolved line points grouped by source file"""
    console = Console()

    for f in files:
        console.print(f"[bold]{f.flags.name.lower()}[/bold] {f.path} [dim]{f.checksum:016x}[/dim]")
    console.print()

    table = Table(title=f"[bold]Line Points[/bold] ({len(lines):,})")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Address", style="green")

    for entry in lines[:MAX_LINE_ROWS]:
        table.add_row(entry.file or "[dim]?[/dim]", str(entry.line), f"0x{entry.address:x}")
    console.print(table)

    if len(lines) > MAX_LINE_ROWS:
        console.print(f"[dim]... {len(lines) - MAX_LINE_ROWS:,} more (use --json for all)[/dim]")


def print_lines_json(lines: List[LineEntry], files: List[BinaryFile]):
    data = {
        "files": [
            {"path": f.path, "checksum": f"{f.checksum:016x}", "flags": f.flags.name.lower()}
            for f in files
        ],
        "lines": [
            {"file": e.file, "line": e.line, "address": f"0x{e.address:x}"} for e in lines
        ],
    }
    print(json.dumps(data, indent=2))
