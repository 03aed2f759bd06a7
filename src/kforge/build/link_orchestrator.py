"""Two-phase kernel link.

The kernel embeds its own symbol table, which can only be known after the
kernel is linked. The link therefore runs twice:

    UNLINKED
      -> PROVISIONAL_LINKED   archive + auxiliary objects, no table
      -> SYMBOLS_EXTRACTED    kallsyms read from the provisional binary
      -> FINAL_LINKED         same inputs plus kallsyms.o
    any step may go to FAILED, which is terminal.

The addresses in the table come from the provisional layout. Adding the
table object can shift later sections, so the embedded addresses may be
slightly off in the final binary. By default that is accepted. Setting
relink_passes > 0 re-reads the final binary and relinks until the embedded
table matches it or the passes run out.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from .artifacts import LinkedBinary, LinkPhase, ObjectArtifact
from .kallsyms import KallsymsExtractor, SymbolTable
from .linker import KernelLinker


class LinkState(Enum):
    UNLINKED = "unlinked"
    PROVISIONAL_LINKED = "provisional-linked"
    SYMBOLS_EXTRACTED = "symbols-extracted"
    FINAL_LINKED = "final-linked"
    FAILED = "failed"


class LinkOrchestrator:
    """Drives the provisional link, kallsyms extraction and final link."""

    PROVISIONAL_NAME = "kernel.provisional"
    FINAL_NAME = "kernel"

    def __init__(
        self,
        linker: KernelLinker,
        extractor: KallsymsExtractor,
        build_dir: Path,
        relink_passes: int = 0,
    ):
        """Initialize link orchestrator.

        Args:
            linker: Linker wrapper shared by both passes
            extractor: Kallsyms extractor/encoder
            build_dir: Directory receiving the linked binaries
            relink_passes: Extra relinks allowed to converge the embedded
                table onto the final layout (0 accepts the provisional addresses)
        """
        self.linker = linker
        self.extractor = extractor
        self.build_dir = Path(build_dir)
        self.relink_passes = max(0, relink_passes)

        self.state = LinkState.UNLINKED
        self.provisional: Optional[LinkedBinary] = None
        self.final: Optional[LinkedBinary] = None
        self.symbol_table: Optional[SymbolTable] = None
        self.converged: Optional[bool] = None

    @property
    def provisional_path(self) -> Path:
        return self.build_dir / self.PROVISIONAL_NAME

    def final_path(self, relink: int = 0) -> Path:
        if relink == 0:
            return self.build_dir / self.FINAL_NAME
        return self.build_dir / f"{self.FINAL_NAME}.relink{relink}"

    def run(
        self,
        core_archive: ObjectArtifact,
        aux_objects: Sequence[ObjectArtifact] = (),
    ) -> LinkedBinary:
        """Run both link passes.

        Args:
            core_archive: The core library archive
            aux_objects: Auxiliary relocatable objects, linked ahead of the archive

        Returns:
            The final LinkedBinary

        Raises:
            LinkError: If either link fails
            NoSymbolsError: If the provisional binary has no usable symbols
            CompilationError: If the table object cannot be assembled
        """
        if self.state is not LinkState.UNLINKED:
            raise RuntimeError(f"Link already run (state: {self.state.value})")

        inputs: List[ObjectArtifact] = list(aux_objects) + [core_archive]
        try:
            self.provisional = self.linker.link(
                inputs, self.provisional_path, LinkPhase.PROVISIONAL
            )
            self.state = LinkState.PROVISIONAL_LINKED

            self.symbol_table = self.extractor.extract(self.provisional)
            table_object = self.extractor.encode(self.symbol_table)
            self.state = LinkState.SYMBOLS_EXTRACTED

            self.final = self.linker.link(
                inputs + [table_object], self.final_path(), LinkPhase.FINAL
            )
            if self.relink_passes:
                self.final = self._relink_to_fixed_point(inputs)
            self.state = LinkState.FINAL_LINKED
        except Exception:
            self.state = LinkState.FAILED
            raise

        self.provisional.path.unlink()
        return self.final

    def _relink_to_fixed_point(self, inputs: List[ObjectArtifact]) -> LinkedBinary:
        final = self.final
        for relink in range(1, self.relink_passes + 1):
            actual = self.extractor.read_symbol_table(final.path)
            if actual == self.symbol_table:
                self.converged = True
                return final

            logging.info(f"Embedded kallsyms differ from final layout, relink {relink}")
            self.symbol_table = actual
            table_object = self.extractor.encode(actual)
            previous = final
            final = self.linker.link(
                inputs + [table_object], self.final_path(relink), LinkPhase.FINAL
            )
            previous.path.unlink()

        self.converged = self.extractor.read_symbol_table(final.path) == self.symbol_table
        if not self.converged:
            logging.warning(
                f"kallsyms did not converge after {self.relink_passes} relink pass(es); "
                "embedded addresses come from the previous layout"
            )
        return final
