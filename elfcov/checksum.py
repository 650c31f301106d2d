"""content checksums for binaries and CRC32 for debug-link validation"""

import hashlib
import struct
import zlib
from typing import Union

from elftools.elf.constants import SH_FLAGS

from .layout import ElfLayout

# --- Constants ---
_CRC32_MASK = 0xFFFFFFFF
_READ_CHUNK_SIZE = 1 << 20
_CHECKSUM_BYTES = 8


def debuglink_crc32(data: Union[bytes, bytearray, memoryview], crc: int = 0) -> int:
    """
    CRC32 (IEEE 802.3) as used by .gnu_debuglink.

    `crc` is the value returned for the preceding bytes, so large files can be
    checksummed chunk by chunk. Seeded with all-ones and complemented at the end.
    """
    return zlib.crc32(data, crc) & _CRC32_MASK


def file_crc32(path: str) -> int:
    """CRC32 of a whole file, read in chunks."""
    crc = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_READ_CHUNK_SIZE), b""):
            crc = debuglink_crc32(chunk, crc)
    return crc


def elf_checksum(elffile, layout: ElfLayout, raw_header: bytes) -> int:
    """
    Content identity of an ELF file as a 64-bit integer.

    Covers the width-specific header fields and every allocated section with
    file contents. Non-allocated sections (symbols, DWARF) are left out so a
    stripped copy keys to the same value as the unstripped binary.
    """
    h = hashlib.blake2b(digest_size=_CHECKSUM_BYTES)
    h.update(struct.pack("<B", layout.ident_class))
    h.update(struct.pack("<HHIQ", *layout.header_fields(raw_header)))

    for section in elffile.iter_sections():
        if not section["sh_flags"] & SH_FLAGS.SHF_ALLOC:
            continue
        if section["sh_type"] == "SHT_NOBITS":
            continue
        h.update(section.name.encode("utf-8", errors="surrogateescape"))
        h.update(str(section["sh_type"]).encode())
        h.update(struct.pack("<QQQ", section["sh_flags"], section["sh_addr"], section["sh_size"]))
        h.update(section.data())

    return int.from_bytes(h.digest(), "little")
