"""tests for locating debug information"""

import os
import zlib

import pytest

from elfcov.config import ParserConfig
from elfcov.debuginfo import (
    DebugInfoResolver,
    build_id_path,
    debuglink_candidates,
    open_dwarf_lines,
)
from elfcov.listeners import LineEntry
from elfcov.scanner import DebugLink

from elfimage import dwarf_sections, line_table, text, write_elf
from fakes import FakeLineSources


class TestPaths:
    """test debug file locations"""

    def test_build_id_path(self):
        """test the two-character directory split"""
        assert build_id_path("abcdef12", "/usr/lib/debug/.build-id") == (
            "/usr/lib/debug/.build-id/ab/cdef12.debug"
        )

    def test_build_id_root(self):
        """test the build-id tree hangs off the debug root"""
        config = ParserConfig(debug_root="/opt/debug")

        assert config.build_id_root == "/opt/debug/.build-id"

    def test_debuglink_candidates(self, tmp_path):
        """test the search order for debug-link files"""
        binary = str(tmp_path / "bin" / "prog")
        real_dir = os.path.realpath(str(tmp_path / "bin"))

        assert debuglink_candidates(binary, "prog.debug", "/usr/lib/debug") == [
            str(tmp_path / "bin" / "prog.debug"),
            str(tmp_path / "bin" / ".debug" / "prog.debug"),
            "/usr/lib/debug" + real_dir + "/prog.debug",
        ]


class TestResolver:
    """test the resolution order"""

    def make(self, tmp_path):
        lines = FakeLineSources()
        config = ParserConfig(debug_root=str(tmp_path / "debug"))
        return lines, DebugInfoResolver(config, lines)

    def test_inline_first(self, tmp_path):
        """test inline debug info wins over everything else"""
        lines, resolver = self.make(tmp_path)
        binary = write_elf(tmp_path / "prog", [text()])
        lines.add(binary, [("a.c", 1, 0x1000)])

        source = resolver.resolve(binary, "abcd", DebugLink("prog.debug", 0))

        assert source.path == binary
        assert resolver.has_inline_info(binary)

    def test_build_id(self, tmp_path):
        """test the build-id file is used when the binary is stripped"""
        lines, resolver = self.make(tmp_path)
        binary = write_elf(tmp_path / "prog", [text()])
        debug_file = tmp_path / "debug" / ".build-id" / "de" / "adbeef.debug"
        debug_file.parent.mkdir(parents=True)
        debug_file.write_bytes(b"")
        lines.add(debug_file, [("a.c", 1, 0x1000)])

        source = resolver.resolve(binary, "deadbeef")

        assert source.path == str(debug_file)
        assert not resolver.has_inline_info(binary)

    def test_debuglink_crc_mismatch_falls_through(self, tmp_path):
        """test a same-directory file with the wrong CRC is skipped for .debug/"""
        lines, resolver = self.make(tmp_path)
        binary = write_elf(tmp_path / "prog", [text()])

        good = b"the real debug file"
        wrong = tmp_path / "prog.debug"
        wrong.write_bytes(b"some other file")
        (tmp_path / ".debug").mkdir()
        right = tmp_path / ".debug" / "prog.debug"
        right.write_bytes(good)
        lines.add(wrong, [("wrong.c", 1, 0x1000)])
        lines.add(right, [("right.c", 1, 0x1000)])

        link = DebugLink("prog.debug", zlib.crc32(good))
        source = resolver.resolve(binary, "", link)

        assert source.path == str(right)
        assert resolver.lookup_debuglink_file(binary, link) == str(right)

    def test_debuglink_no_match(self, tmp_path):
        """test a debug link with no matching file gives nothing"""
        lines, resolver = self.make(tmp_path)
        binary = write_elf(tmp_path / "prog", [text()])
        (tmp_path / "prog.debug").write_bytes(b"stale")

        assert resolver.resolve(binary, "", DebugLink("prog.debug", 0)) is None
        assert not resolver.try_debuglink(str(tmp_path / "missing.debug"), 0)

    def test_nothing_available(self, tmp_path):
        """test a stripped binary without references"""
        _, resolver = self.make(tmp_path)
        binary = write_elf(tmp_path / "prog", [text()])

        assert resolver.resolve(binary) is None


class TestDwarf:
    """test the pyelftools line reader on files without DWARF"""

    def test_no_debug_info(self, tmp_path):
        """test images without .debug_line are not line sources"""
        binary = write_elf(tmp_path / "prog", [text()])

        assert open_dwarf_lines(binary) is None

    def test_not_a_file(self, tmp_path):
        """test missing and non-ELF files"""
        junk = tmp_path / "junk"
        junk.write_bytes(b"not an elf file at all")

        assert open_dwarf_lines(str(tmp_path / "missing")) is None
        assert open_dwarf_lines(str(junk)) is None


class TestDwarfLines:
    """test reading real .debug_line tables"""

    EXPECTED = [
        LineEntry("/build/main.c", 10, 0x1000),
        LineEntry("/build/main.c", 11, 0x1004),
        LineEntry("/build/include/util.h", 5, 0x100C),
    ]

    @pytest.mark.parametrize("version", [4, 5])
    def test_rows(self, tmp_path, version):
        """test statement rows come out with full paths, end of sequence dropped"""
        binary = write_elf(tmp_path / "prog", [text()] + dwarf_sections(line_table(version)))

        with open_dwarf_lines(binary) as source:
            assert source.path == binary
            assert list(source) == self.EXPECTED

    def test_relative_names_join_comp_dir(self, tmp_path):
        """test DWARF 4 names without a directory hang off the compilation directory"""
        binary = write_elf(
            tmp_path / "prog", [text()] + dwarf_sections(line_table(4), comp_dir="/work")
        )

        with open_dwarf_lines(binary) as source:
            assert [e.file for e in source] == [
                "/work/main.c",
                "/work/main.c",
                "/work/include/util.h",
            ]

    def test_missing_file_table(self, tmp_path):
        """test a DWARF 5 table without file names yields rows with no file"""
        binary = write_elf(
            tmp_path / "prog", [text()] + dwarf_sections(line_table(5, with_files=False))
        )

        with open_dwarf_lines(binary) as source:
            assert [(e.file, e.line) for e in source] == [("", 10), ("", 11), ("", 5)]

    def test_close(self, tmp_path):
        """test the file stays open until the source is closed"""
        binary = write_elf(tmp_path / "prog", [text()] + dwarf_sections(line_table(4)))
        source = open_dwarf_lines(binary)

        source.close()
        source.close()

        assert source._stream is None

    def test_resolver_uses_real_reader(self, tmp_path):
        """test the default opener finds inline line tables"""
        binary = write_elf(tmp_path / "prog", [text()] + dwarf_sections(line_table(4)))
        resolver = DebugInfoResolver(ParserConfig(debug_root=str(tmp_path)))

        assert resolver.has_inline_info(binary)
        source = resolver.resolve(binary)
        try:
            assert len(list(source)) == 3
        finally:
            source.close()
