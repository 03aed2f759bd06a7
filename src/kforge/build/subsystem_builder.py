"""Subsystem Builder.

Compiles the auxiliary kernel sources (debug and backtrace support code)
into relocatable objects that are linked next to the core library.
"""

import hashlib
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..packages.toolchain_binaries import ToolchainBinaryFinder
from .artifacts import ArtifactKind, ObjectArtifact
from .compilation_executor import CompilationError, CompilationExecutor
from .flag_builder import BuildFlags


class SubsystemBuilder:
    """Compiles auxiliary sources with the composed build flags."""

    def __init__(
        self,
        toolchain: ToolchainBinaryFinder,
        flags: BuildFlags,
        build_dir: Path,
        source_root: Optional[Path] = None,
        executor: Optional[CompilationExecutor] = None,
        show_progress: bool = True,
    ):
        """Initialize subsystem builder.

        Args:
            toolchain: Cross toolchain lookup
            flags: Composed build flags
            build_dir: Build directory; objects go to build_dir/objects
            source_root: Root that source paths are made relative to when
                choosing object names (the kernel root)
            executor: Compilation executor (created when None)
            show_progress: Whether to show compilation progress
        """
        self.toolchain = toolchain
        self.flags = flags
        self.build_dir = Path(build_dir)
        self.source_root = Path(source_root) if source_root else None
        self.executor = executor or CompilationExecutor(show_progress=show_progress)

    def object_path_for(self, source: Path) -> Path:
        """Map a source file to its object path.

        Sources under the source root mirror the tree. Other sources go
        under external/<digest of the parent directory>. The full source
        name is kept, so trace.c and trace.S get distinct objects.
        """
        source = Path(source)
        relative: Optional[Path] = None
        if self.source_root is not None:
            try:
                relative = source.resolve().relative_to(self.source_root.resolve())
            except ValueError:
                relative = None
        elif not source.is_absolute():
            relative = source
        if relative is None:
            parent = str(source.resolve().parent).encode("utf-8")
            digest = hashlib.sha1(parent).hexdigest()[:12]
            relative = Path("external") / digest / source.name
        return self.build_dir / "objects" / relative.with_name(relative.name + ".o")

    def plan(self, sources: Sequence[Path]) -> Dict[Path, Path]:
        """Map each source to its object path, rejecting shared outputs.

        A file listed more than once is planned once.

        Raises:
            CompilationError: If two sources would write the same object
        """
        planned: Dict[Path, Path] = {}
        owners: Dict[Path, Path] = {}
        for source in sources:
            source = self._absolute(source)
            output = self.object_path_for(source)
            owner = owners.get(output)
            if owner is not None:
                if owner.resolve() == source.resolve():
                    continue
                raise CompilationError(
                    source, f"Object {output} is also produced by {owner}"
                )
            owners[output] = source
            planned[source] = output
        return planned

    def _absolute(self, source: Path) -> Path:
        source = Path(source)
        if self.source_root is not None and not source.is_absolute():
            source = self.source_root / source
        return source

    def build_one(self, source: Path) -> ObjectArtifact:
        """Compile one auxiliary source.

        Raises:
            CompilationError: If the compiler fails
        """
        source = self._absolute(source)
        output = self.executor.compile_source(
            self.toolchain.get_gcc_path(),
            source,
            self.object_path_for(source),
            self.flags.flags_for(source),
        )
        return ObjectArtifact(path=output, kind=ArtifactKind.RELOCATABLE_OBJECT)

    def build(self, sources: Sequence[Path]) -> List[ObjectArtifact]:
        """Compile all sources sequentially, in input order."""
        return [self.build_one(source) for source in self.plan(sources)]
