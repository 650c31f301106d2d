"""
ELF file parser: turns binaries into instrumentable (file, line, address) points.

A run registers the main binary first, then (through the tracer) each
dependent shared library:

    parser = ElfParser(config, path_filter, database)
    parser.register_line_listener(collector)
    parser.add_file("/usr/bin/prog")
    parser.parse()
    parser.set_main_file_relocation(0x555555554000)  # PIE only
    parser.add_file("/lib/libfoo.so", declared_segments)
    parser.parse()

A position-independent main binary is not parsed by `parse()` while the
tracer tracks shared libraries: its line points are only reported once the
load address arrives through `set_main_file_relocation`.
"""

import dataclasses
import logging
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from .config import ParserConfig
from .database import DatabaseReader
from .debuginfo import DWARF_READ_ERRORS, DebugInfoResolver, LineSourceOpener, open_dwarf_lines
from .filters import DummyFilter, PathFilter
from .gcov import gcov_address, read_gcno
from .layout import ElfLayout, host_address_bits, is_elf
from .listeners import (
    BinaryFile,
    FileFlags,
    FileListener,
    LineListener,
    PossibleHits,
)
from .scanner import ElfIdentity, ObjectScanner, ScanError, ScanResult
from .segments import Segment, find_segment, translate_address

log = logging.getLogger(__name__)

# --- Constants ---
MATCH_NONE = 0
MATCH_PERFECT = 100
HEADER_READ_SIZE = 64


class AddressVerifier(Protocol):
    """Checks that an address starts a real instruction."""

    def setup(self, data: bytes, offset: int) -> None:
        ...

    def verify(self, data: bytes, size: int, offset: int) -> bool:
        ...


class ParseState(Enum):
    UNPARSED = "unparsed"
    AWAITING_RELOCATION = "awaiting-relocation"
    PARSED = "parsed"


@dataclasses.dataclass
class BinaryContext:
    """Per-binary parse state. Nothing in here is shared between binaries."""

    identity: ElfIdentity
    is_main: bool
    declared_segments: List[Segment] = dataclasses.field(default_factory=list)
    scan: Optional[ScanResult] = None
    relocation: int = 0
    state: ParseState = ParseState.UNPARSED
    invalid_breakpoints: int = 0

    @property
    def path(self) -> str:
        return self.identity.path

    @property
    def flags(self) -> FileFlags:
        return FileFlags.NONE if self.is_main else FileFlags.SHARED_LIBRARY

    @property
    def executable_segments(self) -> List[Segment]:
        return self.scan.executable_segments if self.scan else []

    @property
    def segments(self) -> List[Segment]:
        """The runtime layout: declared by the tracer, else the file's own sections."""
        return self.declared_segments or self.executable_segments


class ElfParser:
    """
    Address discovery and translation for ELF binaries.

    All public operations report failure by returning False (and logging);
    listeners receive files and line points in registration order.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        path_filter: Optional[PathFilter] = None,
        database: Optional[DatabaseReader] = None,
        verifier: Optional[AddressVerifier] = None,
        line_source_opener: LineSourceOpener = open_dwarf_lines,
    ):
        self.config = config or ParserConfig()
        self.filter = path_filter or DummyFilter()
        self.database = database
        self.verifier = verifier
        self.resolver = DebugInfoResolver(self.config, line_source_opener)
        self.scanner = ObjectScanner(verifier, scan_gcda=self.config.gcov)

        self._line_listeners: List[LineListener] = []
        self._file_listeners: List[FileListener] = []
        self._layout: Optional[ElfLayout] = None
        self._checksum = 0
        self._main: Optional[BinaryContext] = None
        self._current: Optional[BinaryContext] = None

    # --- Parser identity ---

    def parser_type(self) -> str:
        return "ELF"

    def max_possible_hits(self) -> PossibleHits:
        return PossibleHits.LIMITED  # breakpoints are cleared after a hit

    def match_parser(self, path: str, header: bytes) -> int:
        if is_elf(header):
            return MATCH_PERFECT
        return MATCH_NONE

    def setup_parser(self, path_filter: PathFilter):
        self.filter = path_filter

    # --- Listeners ---

    def register_line_listener(self, listener: LineListener):
        self._line_listeners.append(listener)

    def register_file_listener(self, listener: FileListener):
        self._file_listeners.append(listener)

    # --- State ---

    def get_checksum(self) -> int:
        """Checksum of the first binary added (the main file)."""
        return self._checksum

    @property
    def layout(self) -> Optional[ElfLayout]:
        return self._layout

    @property
    def handles_solibs(self) -> bool:
        """Shared libraries can only be traced when the main binary matches the host width."""
        return self._layout is not None and self._layout.elfclass == host_address_bits()

    @property
    def main_file(self) -> Optional[BinaryContext]:
        return self._main

    @property
    def current_file(self) -> Optional[BinaryContext]:
        return self._current

    # --- Protocol ---

    def add_file(self, path: str, declared_segments: Optional[Sequence[Segment]] = None) -> bool:
        """
        Registers a binary: the first call adds the main file, later calls shared libraries.

        `declared_segments` is the binary's actual load layout as seen by the
        tracer; when absent the executable sections are taken as loaded at
        their link addresses.
        """
        is_main = self._main is None

        try:
            identity = self.scanner.identify(path, expected=self._layout)
        except ScanError as e:
            if is_main:
                log.error("%s", e)
            else:
                log.warning("skipping %s", e)
            return False

        ctx = BinaryContext(identity, is_main, list(declared_segments or []))

        if is_main:
            self._layout = identity.layout
            self._main = ctx
            # Has debug symbols? Otherwise, only collect is possible
            if not self.resolver.has_inline_info(path):
                self.config.collect_only = True
        if not self._checksum:
            self._checksum = identity.checksum
        self._current = ctx

        self._notify_file(BinaryFile(path, identity.checksum, ctx.flags))
        return True

    def parse(self) -> bool:
        """Parses the most recently added file, deferring a PIE main file if needed."""
        ctx = self._current
        if ctx is None:
            log.error("parse() called before add_file()")
            return False
        if ctx.state is not ParseState.UNPARSED:
            log.debug("%s is already %s", ctx.path, ctx.state.value)
            return True

        if ctx.is_main and ctx.identity.is_shared:
            ctx.state = ParseState.AWAITING_RELOCATION
            # ... but this needs to be done if we won't get a relocation
            if not (self.config.parse_solibs and self.handles_solibs):
                return self.set_main_file_relocation(0)
            log.debug("deferring %s until its relocation is known", ctx.path)
            return True

        return self._do_parse(ctx, 0)

    def set_main_file_relocation(self, relocation: int) -> bool:
        """Supplies the load offset of a position-independent main file."""
        log.debug("main file relocation = %#x", relocation)

        main = self._main
        if main is None:
            log.error("main file relocation set without a main file")
            return False

        if not main.identity.is_shared:
            # segment information has already been reported
            if relocation != 0:
                log.warning(
                    "Got a static executable with relocation=%#x, "
                    "probably the trace wouldn't work.",
                    relocation,
                )
            return True

        if main.state is ParseState.AWAITING_RELOCATION:
            return self._do_parse(main, relocation)
        if main.state is ParseState.PARSED:
            log.debug("%s already parsed, ignoring relocation", main.path)
            return True

        log.error("main file relocation set before parse()")
        return False

    # --- Parsing ---

    def _do_parse(self, ctx: BinaryContext, relocation: int) -> bool:
        ctx.state = ParseState.PARSED
        ctx.relocation = relocation

        try:
            ctx.scan = self.scanner.scan(ctx.path, ctx.identity.raw)
        except ScanError as e:
            if not ctx.is_main:
                log.warning("skipping %s", e)
                return True
            log.error("%s", e)
            return False
        finally:
            ctx.identity.raw = None

        for gcda in ctx.scan.gcda_files:
            self._notify_file(BinaryFile(gcda, 0, FileFlags.COVERAGE_DATA))

        if self.config.gcov and ctx.scan.gcno_files:
            self._parse_gcno_files(ctx)
            return True

        return self._parse_line_info(ctx)

    def _parse_gcno_files(self, ctx: BinaryContext):
        for gcno in ctx.scan.gcno_files:
            mappings = read_gcno(gcno)
            if mappings is None:
                continue

            for bb in mappings:
                # synthetic addresses are neither validated nor translated
                addr = gcov_address(bb.file, bb.function, bb.block, bb.index)
                mangled = self.filter.mangle_source_path(bb.file)
                for listener in self._line_listeners:
                    listener.on_line(mangled, bb.line, addr + ctx.relocation)

    def _parse_line_info(self, ctx: BinaryContext) -> bool:
        ctx.invalid_breakpoints = 0
        scan = ctx.scan

        source = self.resolver.resolve(ctx.path, scan.build_id, scan.debug_link, ctx.is_main)
        if source is None:
            return self._parse_database(ctx)

        try:
            for entry in source:
                self._on_line(ctx, entry.file, entry.line, entry.address)
        except DWARF_READ_ERRORS as e:
            log.warning("error reading line information from %s: %s", source.path, e)
        finally:
            source.close()

        if ctx.invalid_breakpoints > 0:
            log.info(
                "%u invalid breakpoints skipped in %s", ctx.invalid_breakpoints, ctx.path
            )
        return True

    def _parse_database(self, ctx: BinaryContext) -> bool:
        addrs = self.database.get(ctx.identity.checksum) if self.database else []

        log.debug("No debug symbols in %s.", ctx.path)
        if not addrs and ctx.is_main:
            log.warning(
                "elfcov requires binaries built with -g/-ggdb, a build-id file "
                "or GNU debug link information."
            )
            return False

        # Report all addresses (without file/line)
        for addr in addrs:
            self._on_line(ctx, "", 1, addr)
        return True

    # --- Address bridge ---

    def _on_line(self, ctx: BinaryContext, file: str, line: int, addr: int):
        if not self._address_is_valid(ctx, addr):
            return

        mangled = self.filter.mangle_source_path(file)
        out = translate_address(ctx.segments, addr) + ctx.relocation

        for listener in self._line_listeners:
            listener.on_line(mangled, line, out)

    def _address_is_valid(self, ctx: BinaryContext, addr: int) -> bool:
        segment = find_segment(ctx.executable_segments, addr)
        if segment is None:
            return False

        if not self.config.verify_addresses or self.verifier is None:
            return True

        offset = addr - segment.virtual
        if self.verifier.verify(segment.data, segment.size, offset):
            return True

        log.debug("Address %#x is not at an instruction boundary, skipping", addr)
        ctx.invalid_breakpoints += 1
        return False

    def _notify_file(self, file: BinaryFile):
        for listener in self._file_listeners:
            listener.on_file(file)


class ParserManager:
    """Registry of file parsers, picking the best match for a file."""

    def __init__(self):
        self._parsers = []

    def register_parser(self, parser):
        self._parsers.append(parser)

    def match_parser(self, path: str):
        try:
            with open(path, "rb") as f:
                header = f.read(HEADER_READ_SIZE)
        except OSError as e:
            log.debug("cannot open %s: %s", path, e)
            return None

        best, best_score = None, MATCH_NONE
        for parser in self._parsers:
            score = parser.match_parser(path, header)
            if score > best_score:
                best, best_score = parser, score
        return best
