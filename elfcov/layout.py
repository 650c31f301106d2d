"""32/64-bit ELF header layouts, selected once from the identification bytes"""

import struct
from typing import Tuple

ELF_MAGIC = b"\x7fELF"
EI_CLASS = 4
EI_DATA = 5
EI_NIDENT = 16

ELFCLASS32 = 1
ELFCLASS64 = 2
ELFDATA2LSB = 1
ELFDATA2MSB = 2


class ElfLayout:
    """
    Width-specific view of the ELF header.

    Subclasses only describe field widths; callers never branch on the
    address width themselves.
    """

    elfclass = 0
    ident_class = 0
    # e_type, e_machine, e_version, e_entry
    _header_fields = ""

    def __repr__(self) -> str:
        return f"<ElfLayout ELF{self.elfclass}>"

    def matches(self, ident: bytes) -> bool:
        """True if the identification bytes describe a file of this width."""
        return len(ident) > EI_CLASS and ident[EI_CLASS] == self.ident_class

    def header_fields(self, raw: bytes) -> Tuple[int, int, int, int]:
        """Returns (e_type, e_machine, e_version, e_entry) from a raw ELF header."""
        fmt = byte_order(raw) + self._header_fields
        return struct.unpack_from(fmt, raw, EI_NIDENT)

    def header_size(self) -> int:
        return EI_NIDENT + struct.calcsize("<" + self._header_fields)


class Elf32Layout(ElfLayout):
    elfclass = 32
    ident_class = ELFCLASS32
    _header_fields = "HHII"


class Elf64Layout(ElfLayout):
    elfclass = 64
    ident_class = ELFCLASS64
    _header_fields = "HHIQ"


ELF32 = Elf32Layout()
ELF64 = Elf64Layout()


def is_elf(header: bytes) -> bool:
    return header[: len(ELF_MAGIC)] == ELF_MAGIC


def byte_order(ident: bytes) -> str:
    """struct byte-order prefix for the file described by `ident`."""
    if len(ident) > EI_DATA and ident[EI_DATA] == ELFDATA2MSB:
        return ">"
    return "<"


def identify(ident: bytes) -> ElfLayout:
    """
    Selects the header layout from the ELF identification bytes.

    Raises:
        ValueError: if the bytes are not an ELF identification of a known class.
    """
    if not is_elf(ident):
        raise ValueError("not an ELF file")
    for layout in (ELF32, ELF64):
        if layout.matches(ident):
            return layout
    raise ValueError(f"unknown ELF class {ident[EI_CLASS] if len(ident) > EI_CLASS else None}")


def host_address_bits() -> int:
    return struct.calcsize("P") * 8
