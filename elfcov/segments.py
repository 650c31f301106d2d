"""address segments and segment-relative address translation"""

import dataclasses
from typing import Iterable, Optional


@dataclasses.dataclass(frozen=True)
class Segment:
    """
    A contiguous addressable byte range.

    `physical` is the file-relative base used by the line tables, `virtual`
    is where the range lives at runtime. Declared segments come from a live
    process's load layout and carry no bytes; scanned segments come from the
    executable sections of the file and keep a copy of the section bytes for
    instruction-boundary verification.
    """

    physical: int
    virtual: int
    size: int
    data: Optional[bytes] = dataclasses.field(default=None, repr=False, compare=False)

    @classmethod
    def declared(cls, physical: int, virtual: int, size: int) -> "Segment":
        """Creates a segment from a runtime load layout entry."""
        return cls(physical, virtual, size)

    @classmethod
    def scanned(cls, addr: int, data: bytes) -> "Segment":
        """Creates an identity-mapped segment from an executable section."""
        return cls(addr, addr, len(data), bytes(data))

    @property
    def end(self) -> int:
        return self.physical + self.size

    def contains(self, addr: int) -> bool:
        """Checks if a file-relative address is within this segment."""
        return self.physical <= addr < self.physical + self.size

    def translate(self, addr: int) -> int:
        """Maps a contained address to its runtime address, others pass through."""
        if self.contains(addr):
            return addr - self.physical + self.virtual
        return addr


def find_segment(segments: Iterable[Segment], addr: int) -> Optional[Segment]:
    """Returns the first segment containing `addr`."""
    return next((s for s in segments if s.contains(addr)), None)


def translate_address(segments: Iterable[Segment], addr: int) -> int:
    """Translates `addr` through the first containing segment (identity if none)."""
    segment = find_segment(segments, addr)
    if segment is None:
        return addr
    return segment.translate(addr)
