"""Kallsyms extraction and encoding.

Reads the symbol table of a linked kernel, keeps the symbols the kernel's
runtime symbolizer needs, and encodes them as an assembler source that is
compiled into a relocatable object for the final link.

Table layout (all symbols global, in .rodata):
    kallsyms_address      .quad per entry, strictly ascending
    kallsyms_num          .quad entry count
    kallsyms_names_index  .quad byte offset of each name in kallsyms_names
    kallsyms_names        .asciz per entry

Design:
    - ELF parsing with pyelftools; no dependency on nm output formats
    - Which symbols qualify is a pluggable predicate (SymbolFilter by default)
    - Sorting and deduplication are total, so output is byte-identical
      for identical input binaries
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple, Union

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection

from ..packages.toolchain_binaries import ToolchainBinaryFinder
from .artifacts import ArtifactKind, LinkedBinary, ObjectArtifact
from .compilation_executor import CompilationExecutor
from .flag_builder import BuildFlags


class NoSymbolsError(Exception):
    """Raised when a binary has no usable symbol table."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"No symbols in {self.path}: {reason}")


class SymbolKind(Enum):
    FUNCTION = "function"
    DATA = "data"
    OTHER = "other"


_KIND_BY_ELF_TYPE = {
    "STT_FUNC": SymbolKind.FUNCTION,
    "STT_GNU_IFUNC": SymbolKind.FUNCTION,
    "STT_OBJECT": SymbolKind.DATA,
}


@dataclass(frozen=True)
class ElfSymbol:
    """A raw .symtab entry, as seen by the filter predicate."""

    name: str
    address: int
    elf_type: str  # e.g. "STT_FUNC"
    binding: str  # e.g. "STB_GLOBAL"
    section_index: Union[int, str]  # section number or "SHN_UNDEF"/"SHN_ABS"/...

    @property
    def kind(self) -> SymbolKind:
        return _KIND_BY_ELF_TYPE.get(self.elf_type, SymbolKind.OTHER)

    @property
    def is_local(self) -> bool:
        return self.binding == "STB_LOCAL"

    @property
    def is_defined(self) -> bool:
        return self.section_index != "SHN_UNDEF"


@dataclass(frozen=True)
class SymbolTableEntry:
    address: int
    name: str
    kind: SymbolKind


SymbolTable = Tuple[SymbolTableEntry, ...]
SymbolPredicate = Callable[[ElfSymbol], bool]


@dataclass(frozen=True)
class SymbolFilter:
    """Default symbol selection policy.

    Keeps defined, named, non-zero-address symbols of the configured kinds.
    Local symbols are dropped unless include_local is set. Names starting
    with any of exclude_prefixes are dropped; the default list removes the
    table's own symbols and assembler-local labels.
    """

    kinds: FrozenSet[SymbolKind] = frozenset({SymbolKind.FUNCTION, SymbolKind.DATA})
    include_local: bool = False
    exclude_prefixes: Tuple[str, ...] = ("kallsyms_", ".L", "$")

    def __call__(self, symbol: ElfSymbol) -> bool:
        if not symbol.name or symbol.address == 0 or not symbol.is_defined:
            return False
        if symbol.kind not in self.kinds:
            return False
        if symbol.is_local and not self.include_local:
            return False
        return not symbol.name.startswith(self.exclude_prefixes)


def read_elf_symbols(path: Path) -> List[ElfSymbol]:
    """Read every .symtab entry of an ELF file, in table order.

    Raises:
        NoSymbolsError: If the file has no .symtab or it is empty
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            elffile = ELFFile(f)
            symtab = elffile.get_section_by_name(".symtab")
            if symtab is None or not isinstance(symtab, SymbolTableSection):
                raise NoSymbolsError(path, "no .symtab section (binary stripped?)")

            symbols = []
            for sym in symtab.iter_symbols():
                symbols.append(
                    ElfSymbol(
                        name=sym.name,
                        address=sym["st_value"],
                        elf_type=sym["st_info"]["type"],
                        binding=sym["st_info"]["bind"],
                        section_index=sym["st_shndx"],
                    )
                )
    except ELFError as e:
        raise NoSymbolsError(path, f"not a valid ELF file: {e}") from e
    except OSError as e:
        raise NoSymbolsError(path, str(e)) from e

    # index 0 is the reserved null symbol
    if len(symbols) <= 1:
        raise NoSymbolsError(path, "symbol table is empty")
    return symbols


def build_symbol_table(
    symbols: Iterable[ElfSymbol], predicate: Optional[SymbolPredicate] = None
) -> SymbolTable:
    """Filter, deduplicate and sort symbols.

    When several symbols share an address the last one in table order wins.
    """
    predicate = predicate or SymbolFilter()
    by_address = {}
    for symbol in symbols:
        if predicate(symbol):
            by_address[symbol.address] = SymbolTableEntry(
                address=symbol.address, name=symbol.name, kind=symbol.kind
            )
    return tuple(by_address[address] for address in sorted(by_address))


def _asm_string(name: str) -> str:
    out = []
    for byte in name.encode("utf-8"):
        char = chr(byte)
        if char in ('"', "\\") or not 0x20 <= byte < 0x7F:
            out.append(f"\\{byte:03o}")
        else:
            out.append(char)
    return "".join(out)


def render_kallsyms_source(table: SymbolTable) -> str:
    """Render the table as GNU assembler source."""
    lines = [
        "/* Generated by kforge. Do not edit. */",
        '\t.section .rodata, "a"',
        "",
        "\t.global kallsyms_address",
        "\t.balign 8",
        "kallsyms_address:",
    ]
    lines.extend(f"\t.quad {entry.address:#018x}" for entry in table)

    lines.extend([
        "",
        "\t.global kallsyms_num",
        "\t.balign 8",
        "kallsyms_num:",
        f"\t.quad {len(table)}",
        "",
        "\t.global kallsyms_names_index",
        "\t.balign 8",
        "kallsyms_names_index:",
    ])
    offset = 0
    for entry in table:
        lines.append(f"\t.quad {offset}")
        offset += len(entry.name.encode("utf-8")) + 1

    lines.extend([
        "",
        "\t.global kallsyms_names",
        "kallsyms_names:",
    ])
    lines.extend(f'\t.asciz "{_asm_string(entry.name)}"' for entry in table)
    lines.append("")
    return "\n".join(lines)


class KallsymsExtractor:
    """Extracts a kernel's symbol table and encodes it for relinking."""

    SOURCE_NAME = "kallsyms.S"
    OBJECT_NAME = "kallsyms.o"

    def __init__(
        self,
        toolchain: ToolchainBinaryFinder,
        flags: BuildFlags,
        build_dir: Path,
        symbol_filter: Optional[SymbolPredicate] = None,
        executor: Optional[CompilationExecutor] = None,
        show_progress: bool = True,
    ):
        """Initialize extractor.

        Args:
            toolchain: Cross toolchain lookup (gcc assembles the table)
            flags: Build flags used to compile the table
            build_dir: Build directory; files go to build_dir/kallsyms
            symbol_filter: Predicate selecting symbols (SymbolFilter() when None)
            executor: Compilation executor (created when None)
            show_progress: Whether to show progress
        """
        self.toolchain = toolchain
        self.flags = flags
        self.work_dir = Path(build_dir) / "kallsyms"
        self.symbol_filter = symbol_filter or SymbolFilter()
        self.executor = executor or CompilationExecutor(show_progress=show_progress)
        self.show_progress = show_progress

    @property
    def source_path(self) -> Path:
        return self.work_dir / self.SOURCE_NAME

    @property
    def object_path(self) -> Path:
        return self.work_dir / self.OBJECT_NAME

    def remove_stale(self) -> None:
        """Delete a table object left by an earlier build."""
        if self.object_path.exists():
            logging.debug(f"Removing stale {self.object_path}")
            self.object_path.unlink()

    def read_symbol_table(self, path: Path) -> SymbolTable:
        """Build the filtered table for any ELF file.

        Raises:
            NoSymbolsError: If nothing survives filtering
        """
        table = build_symbol_table(read_elf_symbols(path), self.symbol_filter)
        if not table:
            raise NoSymbolsError(path, "no symbols matched the kallsyms filter")
        return table

    def extract(self, binary: LinkedBinary) -> SymbolTable:
        """Extract the symbol table from a linked binary."""
        if self.show_progress:
            print(f"Generating kallsyms from {binary.path.name}...")
        table = self.read_symbol_table(binary.path)
        logging.info(f"Extracted {len(table)} kallsyms entries from {binary.path}")
        return table

    def encode(self, table: SymbolTable) -> ObjectArtifact:
        """Write kallsyms.S and compile it into kallsyms.o.

        Raises:
            CompilationError: If the assembler fails
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.source_path.write_text(render_kallsyms_source(table), encoding="utf-8")
        output = self.executor.compile_source(
            self.toolchain.get_gcc_path(),
            self.source_path,
            self.object_path,
            self.flags.flags_for(self.source_path),
        )
        return ObjectArtifact(path=output, kind=ArtifactKind.RELOCATABLE_OBJECT)
