"""tests for gcno parsing and synthetic gcov addresses"""

import zlib

import pytest

from elfcov.gcov import (
    GCOV_VERSION_4_7_0,
    BasicBlockMapping,
    GcnoParser,
    GcovError,
    decode_version,
    gcov_address,
    read_gcno,
)

from elfimage import GcnoWriter, version_word


class TestVersion:
    """test version word decoding"""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("407*", 0x40700),
            ("408*", 0x40800),
            ("A93*", 0x90300),
            ("B33*", 0xD0300),
        ],
    )
    def test_decode(self, text, expected):
        assert decode_version(version_word(text)) == expected


class TestGcovAddress:
    """test synthetic address packing"""

    def test_layout(self):
        """test the file hash sits above the packed block fields"""
        addr = gcov_address("main.c", 0x1234, 0x56, 0x78)

        assert addr >> 32 == zlib.crc32(b"main.c")
        assert addr & 0xFFFFFFFF == 0x12345678

    def test_fields_are_masked(self):
        """test oversized fields do not spill into their neighbours"""
        addr = gcov_address("main.c", 0x1_0001, 0x1FF, 0x100)

        assert addr & 0xFFFFFFFF == 0x0001FF00

    def test_deterministic(self):
        """test the same point always maps to the same address"""
        assert gcov_address("a.c", 1, 2, 3) == gcov_address("a.c", 1, 2, 3)
        assert gcov_address("a.c", 1, 2, 3) != gcov_address("b.c", 1, 2, 3)


class TestGcnoParser:
    """test notes file parsing"""

    def sample(self, writer):
        writer.function(1, "main", "/src/main.c", 10)
        writer.blocks(4)
        writer.lines(2, [11, 12])
        writer.lines(3, ["/src/util.h", 5])
        writer.function(2, "helper", "/src/main.c", 20)
        writer.lines(1, [21])
        return writer.out

    def expected(self):
        return [
            BasicBlockMapping("/src/main.c", 11, 1, 2, 0),
            BasicBlockMapping("/src/main.c", 12, 1, 2, 1),
            BasicBlockMapping("/src/util.h", 5, 1, 3, 0),
            BasicBlockMapping("/src/main.c", 21, 2, 1, 0),
        ]

    def test_gcc_4_7(self):
        """test the oldest supported word-length layout"""
        parser = GcnoParser(self.sample(GcnoWriter("407*", major=4)))

        assert parser.parse() == self.expected()
        assert parser.version == GCOV_VERSION_4_7_0

    def test_gcc_9_with_cwd(self):
        """test the header carrying the working directory"""
        data = self.sample(GcnoWriter("A93*", major=9))

        assert GcnoParser(data).parse() == self.expected()

    def test_gcc_13_byte_lengths(self):
        """test byte-counted records and strings"""
        data = self.sample(GcnoWriter("B33*", major=13))

        assert GcnoParser(data).parse() == self.expected()

    def test_big_endian(self):
        """test a notes file written on a big-endian host"""
        data = self.sample(GcnoWriter("408*", major=4, order=">"))

        assert GcnoParser(data).parse() == self.expected()

    def test_bad_magic(self):
        """test a file that is not a notes file"""
        with pytest.raises(GcovError, match="magic"):
            GcnoParser(b"gcda" + b"\0" * 16).parse()

    def test_too_short(self):
        with pytest.raises(GcovError):
            GcnoParser(b"oncg").parse()

    def test_too_old(self):
        """test versions before 4.7 are refused"""
        with pytest.raises(GcovError, match="unsupported"):
            GcnoParser(GcnoWriter("404*", major=4).out).parse()

    def test_overlong_trailing_record(self):
        """test garbage at the end stops parsing without failing"""
        writer = GcnoWriter("407*", major=4)
        writer.function(1, "main", "/src/main.c", 10)
        writer.lines(2, [11])
        writer.word(0x01450000)
        writer.word(1000)

        assert GcnoParser(writer.out).parse() == [
            BasicBlockMapping("/src/main.c", 11, 1, 2, 0)
        ]

    def test_read_gcno(self, tmp_path):
        """test reading from disk"""
        path = tmp_path / "main.gcno"
        path.write_bytes(self.sample(GcnoWriter("407*", major=4)))

        assert read_gcno(str(path)) == self.expected()

    def test_read_gcno_failure(self, tmp_path):
        """test unusable files give None"""
        bad = tmp_path / "bad.gcno"
        bad.write_bytes(b"\0" * 32)

        assert read_gcno(str(bad)) is None
        assert read_gcno(str(tmp_path / "missing.gcno")) is None
