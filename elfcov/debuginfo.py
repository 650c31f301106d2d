"""locating and reading line-number information for a binary"""

import logging
import os
from pathlib import PurePosixPath
from typing import Callable, Iterator, List, Optional, Protocol

from elftools.common.exceptions import DWARFError, ELFError
from elftools.elf.elffile import ELFFile

from .checksum import file_crc32
from .config import DEBUG_SUFFIX, ParserConfig
from .listeners import LineEntry
from .scanner import DebugLink

log = logging.getLogger(__name__)

# pyelftools surfaces corrupt line tables as more than ELFError/DWARFError
DWARF_READ_ERRORS = (
    ELFError,
    DWARFError,
    KeyError,
    TypeError,
    ValueError,
    NotImplementedError,
    IndexError,
)


class LineSource(Protocol):
    """An opened line-information source, walked once."""

    path: str

    def __iter__(self) -> Iterator[LineEntry]:
        ...

    def close(self) -> None:
        ...


LineSourceOpener = Callable[[str], Optional[LineSource]]


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class DwarfLineSource:
    """
    DWARF .debug_line rows of one ELF file, read with pyelftools.

    The file stays open while iterating because pyelftools reads the
    line programs lazily.
    """

    def __init__(self, path: str, stream, elffile: ELFFile):
        self.path = path
        self._stream = stream
        self._dwarf = elffile.get_dwarf_info()

    def __enter__(self) -> "DwarfLineSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __iter__(self) -> Iterator[LineEntry]:
        for cu in self._dwarf.iter_CUs():
            program = self._dwarf.line_program_for_CU(cu)
            if program is None:
                continue

            comp_dir = None
            top = cu.get_top_DIE()
            if "DW_AT_comp_dir" in top.attributes:
                comp_dir = _decode(top.attributes["DW_AT_comp_dir"].value)

            names = {}
            for entry in program.get_entries():
                state = entry.state
                if state is None or state.end_sequence or not state.is_stmt:
                    continue
                if state.file not in names:
                    names[state.file] = _resolve_file(state.file, program, comp_dir)
                yield LineEntry(names[state.file], state.line, state.address)


def _resolve_file(file_index: int, program, comp_dir: Optional[str]) -> str:
    # DWARF 5 file and directory indices are 0-based, earlier versions 1-based
    header = program.header
    version = header.get("version", 4)
    file_entries = header.get("file_entry") or []
    include_dirs = header.get("include_directory") or []

    idx = file_index if version >= 5 else file_index - 1
    if idx < 0 or idx >= len(file_entries):
        return ""

    entry = file_entries[idx]
    if not entry.name:
        return ""
    name = _decode(entry.name)

    dir_path = ""
    dir_index = entry.get("dir_index") or 0
    adj = dir_index if version >= 5 else dir_index - 1
    if 0 <= adj < len(include_dirs):
        dir_path = _decode(include_dirs[adj])

    full = str(PurePosixPath(dir_path) / name) if dir_path else name
    if comp_dir and not PurePosixPath(full).is_absolute():
        full = str(PurePosixPath(comp_dir) / full)
    return full


def open_dwarf_lines(path: str) -> Optional[DwarfLineSource]:
    """Opens `path` as a DWARF line source; None if it has no usable line tables."""
    try:
        stream = open(path, "rb")
    except OSError:
        return None

    try:
        elffile = ELFFile(stream)
        if not elffile.has_dwarf_info() or elffile.get_section_by_name(".debug_line") is None:
            stream.close()
            return None
        return DwarfLineSource(path, stream, elffile)
    except DWARF_READ_ERRORS as e:
        log.warning("cannot read DWARF from %s: %s", path, e)
        stream.close()
        return None


def build_id_path(build_id: str, root: str) -> str:
    """<root>/ab/cdef....debug for build-id abcdef..."""
    return os.path.join(root, build_id[:2], build_id[2:] + DEBUG_SUFFIX)


def debuglink_candidates(binary: str, link_name: str, debug_root: str) -> List[str]:
    """The standard debug-link search locations, in order."""
    directory = os.path.dirname(binary) or "."
    real_dir = os.path.realpath(directory)
    return [
        os.path.join(directory, link_name),
        os.path.join(directory, ".debug", link_name),
        os.path.join(debug_root, real_dir.lstrip("/"), link_name),
    ]


class DebugInfoResolver:
    """
    Finds one usable line-information source for a binary.

    Order: inline debug info, the build-id path, then the debug-link
    candidates (accepted only on CRC32 match).
    """

    def __init__(self, config: ParserConfig, opener: LineSourceOpener = open_dwarf_lines):
        self.config = config
        self.opener = opener

    def has_inline_info(self, binary: str) -> bool:
        source = self.opener(binary)
        if source is None:
            return False
        source.close()
        return True

    def resolve(
        self,
        binary: str,
        build_id: str = "",
        debug_link: Optional[DebugLink] = None,
        is_main: bool = True,
    ) -> Optional[LineSource]:
        source = self.opener(binary)
        if source is not None:
            return source

        if build_id:
            debug_file = build_id_path(build_id, self.config.build_id_root)
            source = self.opener(debug_file)
            if source is not None:
                return source
            if is_main:
                log.debug("cannot open %s", debug_file)

        if debug_link is not None:
            debug_path = self.lookup_debuglink_file(binary, debug_link)
            if debug_path is None:
                if is_main:
                    log.debug("cannot open debug-link file in standard locations")
            else:
                source = self.opener(debug_path)
                if source is not None:
                    return source

        return None

    def lookup_debuglink_file(self, binary: str, debug_link: DebugLink) -> Optional[str]:
        for candidate in debuglink_candidates(binary, debug_link.name, self.config.debug_root):
            if self.try_debuglink(candidate, debug_link.crc):
                return candidate
        return None

    def try_debuglink(self, path: str, expected_crc: int) -> bool:
        if not os.path.isfile(path):
            return False

        try:
            crc = file_crc32(path)
        except OSError as e:
            log.debug("cannot read debug link %s: %s", path, e)
            return False

        if crc != expected_crc:
            log.debug(
                "CRC mismatch for debug link %s. Should be 0x%08x, is 0x%08x!",
                path,
                expected_crc,
                crc,
            )
            return False
        return True
