"""object scanner: one walk over an ELF section table per file"""

import dataclasses
import io
import logging
import os
import struct
from typing import List, Optional

from elftools.common.exceptions import ELFError
from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile

from .checksum import elf_checksum
from .layout import EI_NIDENT, ElfLayout, byte_order, identify
from .segments import Segment

log = logging.getLogger(__name__)

# --- Constants ---
_EXEC_FLAGS = SH_FLAGS.SHF_EXECINSTR | SH_FLAGS.SHF_ALLOC
_DEBUGLINK_SECTION = ".gnu_debuglink"
_RODATA_SECTION = ".rodata"
_GCDA_MARKER = b"gcda\0"
_GNU_NOTE_NAME = "GNU"


class ScanError(Exception):
    """Raised when a file cannot be read or is not a well-formed ELF object."""

    pass


@dataclasses.dataclass(frozen=True)
class DebugLink:
    """A .gnu_debuglink reference: separate debug file name and its CRC32."""

    name: str
    crc: int


@dataclasses.dataclass
class ElfIdentity:
    """What `ObjectScanner.identify` learns from the header and allocated sections."""

    path: str
    layout: ElfLayout
    is_shared: bool
    checksum: int
    # file contents, handed on to `scan` so the file is only read once
    raw: Optional[bytes] = dataclasses.field(default=None, repr=False, compare=False)


@dataclasses.dataclass
class ScanResult:
    """Everything one section-table walk extracts from a binary."""

    path: str
    executable_segments: List[Segment] = dataclasses.field(default_factory=list)
    build_id: str = ""
    debug_link: Optional[DebugLink] = None
    gcda_files: List[str] = dataclasses.field(default_factory=list)
    gcno_files: List[str] = dataclasses.field(default_factory=list)


def parse_debuglink(data: bytes, order: str = "<") -> Optional[DebugLink]:
    """
    Decodes a .gnu_debuglink payload.

    The name is NUL-terminated; the CRC32 follows at the next 4-byte aligned
    offset. Returns None if the payload is truncated.
    """
    end = data.find(b"\0")
    if end <= 0:
        return None

    crc_offset = end + 1
    if crc_offset & 3:
        crc_offset += 4 - (crc_offset & 3)
    if crc_offset + 4 > len(data):
        return None

    (crc,) = struct.unpack_from(order + "I", data, crc_offset)
    return DebugLink(os.fsdecode(data[:end]), crc)


def find_gcda_names(rodata: bytes) -> List[str]:
    """
    Finds embedded gcov data file names in a read-only data section.

    Every "gcda\\0" occurrence is taken back to the start of its NUL-terminated
    string. A match whose string has no preceding NUL in the section is
    skipped, as it cannot be told apart from a truncated string.
    """
    names = []
    pos = rodata.find(_GCDA_MARKER)
    while pos != -1:
        start = rodata.rfind(b"\0", 0, pos)
        if start != -1:
            # name ends right before the marker's NUL
            name = rodata[start + 1 : pos + len(_GCDA_MARKER) - 1]
            names.append(os.fsdecode(name))
        pos = rodata.find(_GCDA_MARKER, pos + 1)
    return names


def gcno_for_gcda(gcda: str) -> str:
    """foo.gcda -> foo.gcno"""
    return gcda[:-2] + "no"


def _read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ScanError(f"cannot open {path}: {e}")


def _open_elf(path: str, raw: bytes) -> ELFFile:
    try:
        return ELFFile(io.BytesIO(raw))
    except ELFError as e:
        raise ScanError(f"{path} is not a valid ELF file: {e}")


class ObjectScanner:
    """
    Reads the structural facts about one ELF binary at a time.

    `identify` looks at the header (width, type, content checksum); `scan`
    walks the section table to collect executable segments, the build-id,
    the debug link and, when enabled, embedded gcov data files.
    """

    def __init__(self, verifier=None, scan_gcda: bool = False):
        self.verifier = verifier
        self.scan_gcda = scan_gcda

    def identify(self, path: str, expected: Optional[ElfLayout] = None) -> ElfIdentity:
        """
        Identifies the width and type of `path` and computes its checksum.

        `expected` is the layout already fixed by the main binary; a file of
        another width is rejected.
        """
        raw = _read_file(path)

        try:
            layout = identify(raw[:EI_NIDENT])
        except ValueError as e:
            raise ScanError(f"{path}: {e}")

        if expected is not None and layout is not expected:
            raise ScanError(
                f"{path} is ELF{layout.elfclass}, expected ELF{expected.elfclass}"
            )
        if len(raw) < layout.header_size():
            raise ScanError(f"{path}: truncated ELF header")

        elf = _open_elf(path, raw)
        try:
            is_shared = elf.header["e_type"] == "ET_DYN"
            checksum = elf_checksum(elf, layout, raw)
        except (ELFError, struct.error) as e:
            raise ScanError(f"cannot checksum {path}: {e}")

        return ElfIdentity(path, layout, is_shared, checksum, raw)

    def scan(self, path: str, raw: Optional[bytes] = None) -> ScanResult:
        """Walks the section table of `path` once; `raw` saves re-reading the file."""
        if raw is None:
            raw = _read_file(path)
        elf = _open_elf(path, raw)
        order = byte_order(raw)
        result = ScanResult(path)

        if self.verifier is not None:
            self.verifier.setup(raw, EI_NIDENT)

        try:
            for section in elf.iter_sections():
                self._scan_section(path, raw, order, section, result)
        except (ELFError, struct.error) as e:
            raise ScanError(f"malformed section table in {path}: {e}")

        for gcda in result.gcda_files:
            gcno = gcno_for_gcda(gcda)
            if os.path.exists(gcno):
                result.gcno_files.append(gcno)
            else:
                log.debug("no notes file %s for %s", gcno, gcda)

        return result

    def _scan_section(self, path, raw, order, section, result: ScanResult):
        name = section.name
        sh_type = section["sh_type"]
        if sh_type in ("SHT_NULL", "SHT_NOBITS"):
            return

        offset, size = section["sh_offset"], section["sh_size"]
        if offset + size > len(raw):
            raise ScanError(f"section {name} in {path} extends past end of file")
        data = raw[offset : offset + size]

        if self.scan_gcda and name == _RODATA_SECTION:
            result.gcda_files.extend(find_gcda_names(data))

        if sh_type == "SHT_NOTE" and not result.build_id:
            result.build_id = self._build_id(section)

        if name == _DEBUGLINK_SECTION:
            result.debug_link = parse_debuglink(data, order)
            if result.debug_link is None:
                log.debug("truncated %s section in %s", _DEBUGLINK_SECTION, path)

        if (section["sh_flags"] & _EXEC_FLAGS) == _EXEC_FLAGS:
            result.executable_segments.append(Segment.scanned(section["sh_addr"], data))

    @staticmethod
    def _build_id(section) -> str:
        for note in section.iter_notes():
            if note["n_type"] == "NT_GNU_BUILD_ID" and note["n_name"] == _GNU_NOTE_NAME:
                return note["n_desc"].lower()
        return ""
