"""
Basic-block to source-line maps from gcc notes (.gcno) files.

Binaries built with --coverage embed the names of their .gcda data files;
the matching .gcno file describes, per function, which source lines each
basic block covers. Without DWARF, these maps stand in for the line table.
Every block line gets a synthetic address (see `gcov_address`) so that it
can flow through the same listeners as real instruction addresses.

Format notes:
 - Records are (tag, length, payload). Lengths count 4-byte words before
   gcc 12 and bytes from gcc 12 on; the same holds for string lengths.
 - The version word is ASCII, e.g. "407*" (4.7) or "B33*" (13.3).
"""

import dataclasses
import logging
import struct
from typing import List, Optional

from .checksum import debuglink_crc32

log = logging.getLogger(__name__)

# --- Constants ---
GCNO_MAGIC = 0x67636E6F  # "gcno"
TAG_FUNCTION = 0x01000000
TAG_LINES = 0x01450000

GCOV_VERSION_4_7_0 = 0x40700
GCOV_VERSION_8_0_0 = 0x80000
GCOV_VERSION_9_0_0 = 0x90000
GCOV_VERSION_12_0_0 = 0xC0000

_WORD = 4


class GcovError(Exception):
    """Raised when a notes file cannot be parsed."""

    pass


@dataclasses.dataclass(frozen=True)
class BasicBlockMapping:
    """One source line covered by a basic block."""

    file: str
    line: int
    function: int  # function ident
    block: int
    index: int  # position of the line within the block's lines record


def decode_version(word: int) -> int:
    """Maps the ASCII version word to major << 16 | minor << 8."""
    a = (word >> 24) & 0xFF
    b = (word >> 16) & 0xFF
    c = (word >> 8) & 0xFF

    if a < ord("A"):
        major = a - ord("0")
        minor = (b - ord("0")) * 10 + c - ord("0")
    else:
        major = (a - ord("A")) * 10 + b - ord("0")
        minor = c - ord("0")

    return major << 16 | minor << 8


def gcov_address(file: str, function: int, block: int, index: int) -> int:
    """
    Synthetic, deterministic address for a (file, function, block, index) point.

    CRC32 of the file name fills the upper 32 bits; the lower 32 bits pack
    function (16 bits), block (8 bits) and index (8 bits).
    """
    file_hash = debuglink_crc32(file.encode("utf-8", errors="surrogateescape"))
    return (
        (file_hash << 32)
        | ((function & 0xFFFF) << 16)
        | ((block & 0xFF) << 8)
        | (index & 0xFF)
    )


class _Reader:
    def __init__(self, data: bytes, order: str, byte_lengths: bool = False):
        self.data = data
        self.order = order
        self.byte_lengths = byte_lengths
        self.pos = 0

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def word(self, what: str) -> int:
        if self.remaining() < _WORD:
            raise GcovError(f"reached unexpected end of file reading {what}")
        (value,) = struct.unpack_from(self.order + "I", self.data, self.pos)
        self.pos += _WORD
        return value

    def skip(self, size: int, what: str):
        if self.remaining() < size:
            raise GcovError(f"reached unexpected end of file skipping {what}")
        self.pos += size

    def length(self, what: str) -> int:
        """A record or string length, in bytes."""
        value = self.word(what)
        return value if self.byte_lengths else value * _WORD

    def string(self, what: str) -> str:
        size = self.length(what)
        if size == 0:
            return ""
        if self.remaining() < size:
            raise GcovError(f"reached unexpected end of file reading {what}")
        raw = self.data[self.pos : self.pos + size]
        self.pos += size
        return raw.split(b"\0", 1)[0].decode("utf-8", errors="surrogateescape")


class GcnoParser:
    """
    Parses one .gcno file.

    Example:
        parser = GcnoParser(data)
        for bb in parser.parse():
            print(bb.file, bb.line, bb.function, bb.block, bb.index)
    """

    def __init__(self, data: bytes):
        self.data = data
        self.version = 0
        self._basic_blocks: List[BasicBlockMapping] = []
        self._function = 0
        self._file = ""

    @property
    def basic_blocks(self) -> List[BasicBlockMapping]:
        return self._basic_blocks

    def parse(self) -> List[BasicBlockMapping]:
        reader = self._parse_header()

        while reader.remaining() >= 2 * _WORD:
            tag = reader.word("record tag")
            length = reader.length("record length")
            next_pos = reader.pos + length

            # garbage at the end of a gcno file
            if next_pos > len(self.data):
                log.warning("overlong record at end of gcno file (tag 0x%08x)", tag)
                break

            if tag == TAG_FUNCTION:
                self._parse_function(reader)
            elif tag == TAG_LINES:
                self._parse_lines(reader, next_pos)

            if reader.pos > next_pos:
                raise GcovError(f"record 0x{tag:08x} overruns its length")
            reader.pos = next_pos

        return self._basic_blocks

    def _parse_header(self) -> _Reader:
        if len(self.data) < 3 * _WORD:
            raise GcovError("file too short for a gcno header")

        if struct.unpack_from("<I", self.data)[0] == GCNO_MAGIC:
            order = "<"
        elif struct.unpack_from(">I", self.data)[0] == GCNO_MAGIC:
            order = ">"
        else:
            raise GcovError("found unrecognized gcno file magic")

        reader = _Reader(self.data, order)
        reader.word("file magic")
        self.version = decode_version(reader.word("compiler version"))
        if self.version < GCOV_VERSION_4_7_0:
            raise GcovError(f"unsupported gcno version 0x{self.version:08x}")
        reader.byte_lengths = self.version >= GCOV_VERSION_12_0_0

        reader.skip(_WORD, "file timestamp")
        if self.version >= GCOV_VERSION_12_0_0:
            reader.skip(_WORD, "file checksum")
        if self.version >= GCOV_VERSION_9_0_0:
            reader.string("working directory")
        if self.version >= GCOV_VERSION_8_0_0:
            reader.skip(_WORD, "support unexecuted blocks flag")

        return reader

    def _parse_function(self, reader: _Reader):
        self._function = reader.word("function ident")
        reader.skip(2 * _WORD, "function checksums")
        reader.string("function name")
        if self.version >= GCOV_VERSION_8_0_0:
            reader.word("compiler-generated entity flag")
        self._file = reader.string("filename")

    def _parse_lines(self, reader: _Reader, end: int):
        block = reader.word("block number")
        index = 0

        while reader.pos < end:
            line = reader.word("line number")
            if line != 0:
                self._basic_blocks.append(
                    BasicBlockMapping(self._file, line, self._function, block, index)
                )
                index += 1
                continue

            name = reader.string("lines filename")
            if not name:
                break
            self._file = name


def read_gcno(path: str) -> Optional[List[BasicBlockMapping]]:
    """Parses the notes file at `path`; None (and a warning) if it cannot be used."""
    try:
        with open(path, "rb") as f:
            data = f.read()
        return GcnoParser(data).parse()
    except (OSError, GcovError) as e:
        log.warning("can't parse %s: %s", path, e)
        return None
