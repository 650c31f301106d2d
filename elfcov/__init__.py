"""elfcov - resolve ELF binaries to instrumentable source lines"""

from .config import ParserConfig
from .segments import Segment, find_segment, translate_address
from .checksum import debuglink_crc32, elf_checksum
from .listeners import (
    BinaryFile,
    FileFlags,
    LineEntry,
    LineCollector,
    FileCollector,
    PossibleHits,
)
from .scanner import ObjectScanner, ScanError, DebugLink
from .debuginfo import DebugInfoResolver, build_id_path
from .database import MemoryDatabase, JsonDatabase, DatabaseError
from .filters import Filter, DummyFilter
from .gcov import GcnoParser, GcovError, gcov_address
from .parser import ElfParser, ParserManager, ParseState

__all__ = [
    "ParserConfig",
    "Segment",
    "find_segment",
    "translate_address",
    "debuglink_crc32",
    "elf_checksum",
    "BinaryFile",
    "FileFlags",
    "LineEntry",
    "LineCollector",
    "FileCollector",
    "PossibleHits",
    "ObjectScanner",
    "ScanError",
    "DebugLink",
    "DebugInfoResolver",
    "build_id_path",
    "MemoryDatabase",
    "JsonDatabase",
    "DatabaseError",
    "Filter",
    "DummyFilter",
    "GcnoParser",
    "GcovError",
    "gcov_address",
    "ElfParser",
    "ParserManager",
    "ParseState",
]
