"""listener interfaces for discovered files and resolved source lines"""

import dataclasses
from enum import Enum, IntFlag
from typing import List, Protocol, Tuple


class FileFlags(IntFlag):
    """What kind of file a discovery notification is about."""

    NONE = 0
    SHARED_LIBRARY = 1
    COVERAGE_DATA = 2  # gcov data files


class PossibleHits(Enum):
    """How many hits a parser can observe per address."""

    SINGLE = 1  # yes/no
    LIMITED = 2  # breakpoints cleared after a hit, but branches
    UNLIMITED = 3  # accumulated


@dataclasses.dataclass(frozen=True)
class BinaryFile:
    """A discovered binary or side-data file."""

    path: str
    checksum: int = 0
    flags: FileFlags = FileFlags.NONE


@dataclasses.dataclass(frozen=True)
class LineEntry:
    """One (file, line, address) row from a line-information source."""

    file: str
    line: int
    address: int


class LineListener(Protocol):
    def on_line(self, file: str, line: int, addr: int) -> None:
        ...


class FileListener(Protocol):
    def on_file(self, file: BinaryFile) -> None:
        ...


class LineCollector:
    """Line listener that records everything it is told, in order."""

    def __init__(self):
        self.lines: List[LineEntry] = []

    def on_line(self, file: str, line: int, addr: int) -> None:
        self.lines.append(LineEntry(file, line, addr))

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def addresses(self) -> List[int]:
        return [entry.address for entry in self.lines]

    def by_file(self) -> List[Tuple[str, List[LineEntry]]]:
        """groups entries by source file, files sorted by name"""
        grouped = {}
        for entry in self.lines:
            grouped.setdefault(entry.file, []).append(entry)
        return sorted(grouped.items())


class FileCollector:
    """File listener that records every notification."""

    def __init__(self):
        self.files: List[BinaryFile] = []

    def on_file(self, file: BinaryFile) -> None:
        self.files.append(file)

    def __len__(self) -> int:
        return len(self.files)

    def with_flags(self, flags: FileFlags) -> List[BinaryFile]:
        return [f for f in self.files if f.flags == flags]
