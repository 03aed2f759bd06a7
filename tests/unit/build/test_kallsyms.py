"""
Unit tests for kallsyms extraction and encoding.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest

from kforge.build.artifacts import ArtifactKind, LinkedBinary, LinkPhase
from kforge.build.flag_builder import compose_flags
from kforge.build.kallsyms import (
    ElfSymbol,
    KallsymsExtractor,
    NoSymbolsError,
    SymbolFilter,
    SymbolKind,
    SymbolTableEntry,
    build_symbol_table,
    read_elf_symbols,
    render_kallsyms_source,
)
from kforge.config.arch_profiles import resolve_profile
from kforge.packages.toolchain_binaries import ToolchainBinaryFinder


def sym(name, address, elf_type="STT_FUNC", binding="STB_GLOBAL", section_index=1):
    return ElfSymbol(name, address, elf_type, binding, section_index)


class TestReadElfSymbols:
    """Test suite for reading .symtab with pyelftools."""

    def test_reads_all_entries(self, tmp_path, write_elf, kernel_symbols):
        path = write_elf(tmp_path / "kernel", kernel_symbols)

        symbols = read_elf_symbols(path)
        by_name = {s.name: s for s in symbols if s.name}

        assert by_name["kernel_main"].address == 0xFFFFFFFF80001000
        assert by_name["kernel_main"].kind is SymbolKind.FUNCTION
        assert by_name["boot_params"].kind is SymbolKind.DATA
        assert by_name["static_helper"].is_local
        assert by_name["_text"].kind is SymbolKind.OTHER
        assert not by_name["printk"].is_defined

    def test_stripped_binary(self, tmp_path, write_elf, kernel_symbols):
        path = write_elf(tmp_path / "kernel", kernel_symbols, with_symtab=False)

        with pytest.raises(NoSymbolsError, match="no .symtab") as exc_info:
            read_elf_symbols(path)
        assert exc_info.value.path == path

    def test_empty_symtab(self, tmp_path, write_elf):
        path = write_elf(tmp_path / "kernel", [])

        with pytest.raises(NoSymbolsError, match="empty"):
            read_elf_symbols(path)

    def test_not_an_elf(self, tmp_path):
        path = tmp_path / "kernel"
        path.write_bytes(b"#!/bin/sh\necho not elf\n")

        with pytest.raises(NoSymbolsError, match="not a valid ELF"):
            read_elf_symbols(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(NoSymbolsError):
            read_elf_symbols(tmp_path / "missing")


class TestSymbolFilter:
    """Test suite for the default selection policy."""

    def test_keeps_global_functions_and_data(self):
        keep = SymbolFilter()
        assert keep(sym("kernel_main", 0x1000))
        assert keep(sym("boot_params", 0x2000, "STT_OBJECT"))
        assert keep(sym("weak_hook", 0x3000, binding="STB_WEAK"))

    def test_drops_other_kinds(self):
        assert not SymbolFilter()(sym("_text", 0x1000, "STT_NOTYPE"))

    def test_drops_locals_unless_requested(self):
        local = sym("static_helper", 0x1000, binding="STB_LOCAL")
        assert not SymbolFilter()(local)
        assert SymbolFilter(include_local=True)(local)

    def test_drops_undefined_unnamed_and_zero(self):
        keep = SymbolFilter()
        assert not keep(sym("printk", 0x1000, section_index="SHN_UNDEF"))
        assert not keep(sym("", 0x1000))
        assert not keep(sym("null", 0))

    def test_drops_excluded_prefixes(self):
        keep = SymbolFilter()
        assert not keep(sym("kallsyms_address", 0x1000, "STT_OBJECT"))
        assert not keep(sym(".Ltmp0", 0x1000))
        assert not keep(sym("$x", 0x1000))

    def test_kind_selection(self):
        keep = SymbolFilter(kinds=frozenset({SymbolKind.FUNCTION}))
        assert keep(sym("f", 0x1000))
        assert not keep(sym("d", 0x2000, "STT_OBJECT"))


class TestBuildSymbolTable:
    """Test suite for filtering, ordering and deduplication."""

    def test_sorted_strictly_ascending(self):
        table = build_symbol_table([
            sym("c", 0x3000),
            sym("a", 0x1000),
            sym("b", 0x2000, "STT_OBJECT"),
        ])

        addresses = [entry.address for entry in table]
        assert addresses == [0x1000, 0x2000, 0x3000]
        assert all(a < b for a, b in zip(addresses, addresses[1:]))
        assert table[1] == SymbolTableEntry(0x2000, "b", SymbolKind.DATA)

    def test_duplicate_address_last_wins(self):
        table = build_symbol_table([
            sym("alias_first", 0x1000),
            sym("alias_second", 0x1000),
        ])

        assert [entry.name for entry in table] == ["alias_second"]

    def test_custom_predicate(self):
        table = build_symbol_table(
            [sym("keep_me", 0x1000), sym("drop_me", 0x2000)],
            lambda s: s.name.startswith("keep"),
        )
        assert [entry.name for entry in table] == ["keep_me"]

    def test_deterministic_for_same_input(self, tmp_path, write_elf, kernel_symbols):
        path = write_elf(tmp_path / "kernel", kernel_symbols)

        first = render_kallsyms_source(build_symbol_table(read_elf_symbols(path)))
        second = render_kallsyms_source(build_symbol_table(read_elf_symbols(path)))

        assert first == second


class TestRenderKallsymsSource:
    """Test suite for the assembler encoding."""

    @pytest.fixture
    def table(self):
        return (
            SymbolTableEntry(0xFFFFFFFF80000400, "start_kernel", SymbolKind.FUNCTION),
            SymbolTableEntry(0xFFFFFFFF80001000, "kernel_main", SymbolKind.FUNCTION),
        )

    def test_defines_global_symbols(self, table):
        source = render_kallsyms_source(table)

        for label in ("kallsyms_address", "kallsyms_num", "kallsyms_names_index", "kallsyms_names"):
            assert f".global {label}" in source
            assert f"\n{label}:" in source

    def test_addresses_count_and_offsets(self, table):
        source = render_kallsyms_source(table)
        lines = source.splitlines()

        assert "\t.quad 0xffffffff80000400" in lines
        assert "\t.quad 0xffffffff80001000" in lines
        num_index = lines.index("kallsyms_num:")
        assert lines[num_index + 1] == "\t.quad 2"
        names_index = lines.index("kallsyms_names_index:")
        # "start_kernel" plus NUL is 13 bytes
        assert lines[names_index + 1:names_index + 3] == ["\t.quad 0", "\t.quad 13"]
        assert '\t.asciz "start_kernel"' in lines
        assert '\t.asciz "kernel_main"' in lines

    def test_escapes_special_characters(self):
        table = (SymbolTableEntry(0x1000, 'odd"name\\', SymbolKind.FUNCTION),)
        assert '.asciz "odd\\042name\\134"' in render_kallsyms_source(table)

    def test_empty_table(self):
        source = render_kallsyms_source(())
        lines = source.splitlines()
        assert lines[lines.index("kallsyms_num:") + 1] == "\t.quad 0"


class TestKallsymsExtractor:
    """Test suite for KallsymsExtractor."""

    @pytest.fixture
    def extractor(self, tmp_path):
        flags = compose_flags(resolve_profile("x86_64", tmp_path), True)
        executor = Mock()
        executor.compile_source.side_effect = lambda gcc, src, out, flags: out
        return KallsymsExtractor(
            ToolchainBinaryFinder("x86_64-linux-gnu-", tmp_path / "bin"),
            flags,
            tmp_path / "build",
            executor=executor,
            show_progress=False,
        )

    def test_paths(self, extractor, tmp_path):
        assert extractor.source_path == tmp_path / "build" / "kallsyms" / "kallsyms.S"
        assert extractor.object_path == tmp_path / "build" / "kallsyms" / "kallsyms.o"

    def test_extract(self, extractor, tmp_path, write_elf, kernel_symbols):
        path = write_elf(tmp_path / "kernel.provisional", kernel_symbols)

        table = extractor.extract(LinkedBinary(path, LinkPhase.PROVISIONAL))

        assert [entry.name for entry in table] == ["start_kernel", "kernel_main", "boot_params"]

    def test_extract_nothing_matches(self, extractor, tmp_path, write_elf):
        path = write_elf(tmp_path / "kernel", [("_text", 0x1000, "notype")])

        with pytest.raises(NoSymbolsError, match="no symbols matched"):
            extractor.extract(LinkedBinary(path, LinkPhase.PROVISIONAL))

    def test_custom_filter_is_used(self, tmp_path, write_elf, kernel_symbols):
        flags = compose_flags(resolve_profile("x86_64", tmp_path), True)
        extractor = KallsymsExtractor(
            ToolchainBinaryFinder("x86_64-linux-gnu-"),
            flags,
            tmp_path / "build",
            symbol_filter=SymbolFilter(include_local=True),
            executor=Mock(),
            show_progress=False,
        )
        path = write_elf(tmp_path / "kernel", kernel_symbols)

        names = [entry.name for entry in extractor.read_symbol_table(path)]
        assert "static_helper" in names

    def test_encode_writes_source_and_compiles(self, extractor, tmp_path):
        table = (SymbolTableEntry(0x1000, "kernel_main", SymbolKind.FUNCTION),)

        artifact = extractor.encode(table)

        assert artifact.path == extractor.object_path
        assert artifact.kind is ArtifactKind.RELOCATABLE_OBJECT
        assert extractor.source_path.read_text() == render_kallsyms_source(table)
        gcc, source, output, flags = extractor.executor.compile_source.call_args[0]
        assert gcc == tmp_path / "bin" / "x86_64-linux-gnu-gcc"
        assert source == extractor.source_path
        assert output == extractor.object_path
        assert "-Wa,--64" in flags

    def test_remove_stale(self, extractor):
        extractor.object_path.parent.mkdir(parents=True)
        extractor.object_path.write_bytes(b"old")

        extractor.remove_stale()
        assert not extractor.object_path.exists()
        # idempotent
        extractor.remove_stale()

    def test_files_stay_in_work_dir(self, extractor, tmp_path):
        extractor.encode((SymbolTableEntry(0x1000, "f", SymbolKind.FUNCTION),))
        assert Path(extractor.source_path).parent == tmp_path / "build" / "kallsyms"
