"""tests for CRC32 and content checksums"""

import io
import os
import zlib

from elftools.elf.elffile import ELFFile

from elfcov.checksum import debuglink_crc32, elf_checksum, file_crc32
from elfcov.layout import ELF32, ELF64
from elfcov.scanner import ObjectScanner

from elfimage import build_elf, build_id_note, rodata, text, write_elf


class TestCrc32:
    """test the debug-link CRC32"""

    def test_check_value(self):
        """test the standard CRC-32 check value"""
        assert debuglink_crc32(b"123456789") == 0xCBF43926

    def test_empty(self):
        """test the CRC of nothing"""
        assert debuglink_crc32(b"") == 0

    def test_single_byte_change(self):
        """test flipping any one byte changes the CRC"""
        data = bytearray(bytes(range(256)) * 4)
        crc = debuglink_crc32(data)

        for i in (0, 1, 511, len(data) - 1):
            changed = bytearray(data)
            changed[i] ^= 0x01
            assert debuglink_crc32(changed) != crc

    def test_unsigned(self):
        """test the result is always an unsigned 32-bit value"""
        assert debuglink_crc32(b"\xff" * 64) == zlib.crc32(b"\xff" * 64) & 0xFFFFFFFF
        assert 0 <= debuglink_crc32(b"\xff" * 64, 0xFFFFFFFF) < 1 << 32

    def test_chained(self):
        """test chunked computation equals one pass"""
        data = os.urandom(4096)
        crc = 0
        for i in range(0, len(data), 1000):
            crc = debuglink_crc32(data[i : i + 1000], crc)

        assert crc == debuglink_crc32(data)

    def test_file_crc32(self, tmp_path):
        """test CRC of a file on disk"""
        data = b"debug info" * 1000
        path = tmp_path / "prog.debug"
        path.write_bytes(data)

        assert file_crc32(str(path)) == zlib.crc32(data)


class TestElfChecksum:
    """test content checksums of ELF images"""

    def checksum(self, raw, layout=ELF64):
        return elf_checksum(ELFFile(io.BytesIO(raw)), layout, raw)

    def test_deterministic(self):
        """test the same bytes give the same checksum"""
        raw = build_elf([text(), build_id_note(b"\xde\xad\xbe\xef")])

        assert self.checksum(raw) == self.checksum(raw)

    def test_path_independent(self, tmp_path):
        """test copies of a binary share a checksum"""
        sections = [text(), rodata(b"hello\0")]
        a = write_elf(tmp_path / "a", sections)
        os.mkdir(tmp_path / "sub")
        b = write_elf(tmp_path / "sub" / "renamed", sections)

        scanner = ObjectScanner()
        assert scanner.identify(a).checksum == scanner.identify(b).checksum

    def test_code_change_changes_checksum(self):
        """test that different code gives a different checksum"""
        one = build_elf([text(fill=b"\x90")])
        two = build_elf([text(fill=b"\xcc")])

        assert self.checksum(one) != self.checksum(two)

    def test_width_changes_checksum(self):
        """test that 32-bit and 64-bit images differ"""
        raw64 = build_elf([text()], elfclass=64)
        raw32 = build_elf([text()], elfclass=32)

        assert self.checksum(raw64, ELF64) != self.checksum(raw32, ELF32)

    def test_fits_64_bits(self):
        """test the checksum is a 64-bit value"""
        value = self.checksum(build_elf([text()]))

        assert 0 <= value < 1 << 64
