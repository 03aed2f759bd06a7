"""
Build orchestration for kforge.

This module runs the complete kernel build, from resolving the architecture
profile to handing the finished image to the bootloader stub:
- Profile resolution and flag composition
- Auxiliary object compilation and the core library build (in parallel)
- Provisional link, kallsyms extraction and final link
- Kernel image generation (objcopy)
- Bootloader stub handoff
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..config.arch_profiles import (
    ArchitectureProfile,
    UnsupportedArchitectureError,
    resolve_profile,
)
from ..config.build_config import BuildConfigError, KernelBuildConfig
from ..deploy.stub_handoff import MakeStubBuilder, StubBuildError, StubBuilder, StubHandoff
from ..packages.toolchain_binaries import ToolchainBinaryFinder
from .artifacts import KernelImage, ObjectArtifact
from .binary_generator import ImagePostProcessor, PostProcessError
from .compilation_executor import CompilationError, CompilationExecutor
from .core_library import CargoCoreLibraryBuilder, CoreBuildError, CoreLibraryBuilder
from .flag_builder import BuildFlags, FlagBuilder
from .kallsyms import KallsymsExtractor, NoSymbolsError, SymbolFilter, SymbolKind
from .link_orchestrator import LinkOrchestrator, LinkState
from .linker import KernelLinker, LinkError
from .subsystem_builder import SubsystemBuilder
from .task_pool import TaskPool

BUILD_ERRORS = (
    BuildConfigError,
    UnsupportedArchitectureError,
    CompilationError,
    CoreBuildError,
    LinkError,
    NoSymbolsError,
    PostProcessError,
    StubBuildError,
)

CORE_TASK = "core-library"


@dataclass
class BuildResult:
    """Result of a complete kernel build."""

    success: bool
    kernel_image: Optional[KernelImage]
    build_time: float
    message: str
    failed_phase: Optional[str] = None
    link_state: LinkState = LinkState.UNLINKED
    symbol_count: int = 0
    sysroot: Optional[Path] = None

    @property
    def image_path(self) -> Optional[Path]:
        return self.kernel_image.path if self.kernel_image else None


class KernelBuildOrchestrator:
    """
    Orchestrates the complete kernel build.

    Phases:
    1. resolve       - architecture profile and symbol filter
    2. flags         - compiler/linker/core flags with the unwind override
    3. compile       - auxiliary objects and core library, in parallel
    4. link          - provisional link
    5. kallsyms      - symbol table extraction and encoding
    6. link          - final link
    7. post-process  - kernel.elf via objcopy
    8. stub          - bootloader stub build

    Example usage:
        config = load_build_config(Path("kernel"), arch="riscv64")
        result = KernelBuildOrchestrator().build(config)
        if result.success:
            print(f"Kernel: {result.image_path}")
    """

    def __init__(
        self,
        core_builder: Optional[CoreLibraryBuilder] = None,
        stub_builder: Optional[StubBuilder] = None,
        toolchain: Optional[ToolchainBinaryFinder] = None,
        verbose: bool = False,
    ):
        """
        Initialize build orchestrator.

        Args:
            core_builder: Core library collaborator (cargo-backed when None)
            stub_builder: Stub collaborator (make-backed when None)
            toolchain: Cross toolchain lookup (derived from the profile when None)
            verbose: Enable verbose output
        """
        self.core_builder = core_builder
        self.stub_builder = stub_builder
        self.toolchain = toolchain
        self.verbose = verbose

    def build(self, config: KernelBuildConfig) -> BuildResult:
        """
        Execute the complete build.

        Args:
            config: Effective build configuration

        Returns:
            BuildResult; on failure failed_phase names the phase and message
            holds the failing component's diagnostics
        """
        start_time = time.time()
        phase = "resolve"
        link: Optional[LinkOrchestrator] = None
        image: Optional[KernelImage] = None

        def failed(message: str) -> BuildResult:
            return BuildResult(
                success=False,
                kernel_image=image if phase == "stub" else None,
                build_time=time.time() - start_time,
                message=message,
                failed_phase=phase,
                link_state=link.state if link else LinkState.UNLINKED,
                symbol_count=len(link.symbol_table or ()) if link else 0,
            )

        try:
            # Phase 1: Resolve profile
            self._banner(1, f"Resolving architecture profile ({config.arch})...")
            profile = resolve_profile(config.arch, config.kernel_root)
            symbol_filter = self._symbol_filter(config)
            toolchain = self.toolchain or ToolchainBinaryFinder(
                profile.toolchain_prefix, config.toolchain_bin
            )

            # Phase 2: Compose flags
            phase = "flags"
            self._banner(2, "Composing build flags...")
            flags = FlagBuilder(
                profile,
                unwind_enabled=config.unwind,
                extra_cflags=config.cflags,
                extra_core_flags=config.rustflags,
            ).build_flags()
            if config.unwind and not flags.unwind_enabled:
                logging.info(f"Unwind tables are not supported on {profile.arch_id}; disabled")
            if self.verbose:
                print(f"      Unwind: {'enabled' if flags.unwind_enabled else 'disabled'}")

            build_dir = config.effective_build_dir
            build_dir.mkdir(parents=True, exist_ok=True)
            executor = CompilationExecutor(show_progress=self.verbose)
            extractor = KallsymsExtractor(
                toolchain, flags, build_dir, symbol_filter, executor, self.verbose
            )
            extractor.remove_stale()

            # Phase 3: Compile auxiliary objects and the core library
            phase = "compile"
            self._banner(3, "Compiling auxiliary objects and core library...")
            aux_objects, core_archive = self._compile(
                config, profile, flags, toolchain, build_dir, executor
            )
            if self.verbose:
                print(f"      Objects: {len(aux_objects)}, archive: {core_archive.path}")

            # Phase 4-6: Two-phase link
            phase = "link"
            self._banner(4, "Linking kernel (provisional, kallsyms, final)...")
            link = LinkOrchestrator(
                KernelLinker(toolchain.get_ld_path(), profile, flags, self.verbose),
                extractor,
                build_dir,
                relink_passes=config.relink_passes,
            )
            try:
                final = link.run(core_archive, aux_objects)
            except (NoSymbolsError, CompilationError):
                phase = "kallsyms"
                raise

            # Phase 7: Post-process
            phase = "post-process"
            self._banner(7, "Generating kernel image...")
            image = ImagePostProcessor(
                toolchain.get_objcopy_path(), profile, self.verbose
            ).process(final, config.kernel_image_path, flags.unwind_enabled)
            if not config.keep_intermediates:
                final.path.unlink()

            # Phase 8: Stub handoff
            phase = "stub"
            sysroot = None
            if config.stub:
                self._banner(8, "Building bootloader stub...")
                stub_builder = self.stub_builder or MakeStubBuilder(
                    config.effective_stub_dir, jobs=config.jobs, verbose=self.verbose
                )
                sysroot = StubHandoff(stub_builder, self.verbose).handoff(
                    image, config.output_root
                )
            else:
                logging.info("Stub handoff disabled; skipping")

        except BUILD_ERRORS as e:
            return failed(str(e))
        except Exception as e:
            logging.debug("Unexpected build error", exc_info=True)
            return failed(f"Unexpected error: {e}")

        build_time = time.time() - start_time
        if self.verbose:
            print("Build complete!")
            print(f"Build time: {build_time:.2f}s")

        return BuildResult(
            success=True,
            kernel_image=image,
            build_time=build_time,
            message="Build successful",
            link_state=link.state,
            symbol_count=len(link.symbol_table or ()),
            sysroot=sysroot,
        )

    def _banner(self, step: int, text: str) -> None:
        if self.verbose:
            print(f"[{step}/8] {text}")

    @staticmethod
    def _symbol_filter(config: KernelBuildConfig) -> SymbolFilter:
        try:
            kinds = frozenset(SymbolKind(kind.strip().lower()) for kind in config.symbol_kinds)
        except ValueError as e:
            raise BuildConfigError(f"Invalid symbol kind in {list(config.symbol_kinds)}") from e
        return SymbolFilter(
            kinds=kinds,
            include_local=config.include_local_symbols,
            exclude_prefixes=tuple(config.exclude_symbol_prefixes),
        )

    def _compile(
        self,
        config: KernelBuildConfig,
        profile: ArchitectureProfile,
        flags: BuildFlags,
        toolchain: ToolchainBinaryFinder,
        build_dir: Path,
        executor: CompilationExecutor,
    ):
        subsystem = SubsystemBuilder(
            toolchain, flags, build_dir, config.kernel_root, executor, self.verbose
        )
        core_builder = self.core_builder or CargoCoreLibraryBuilder(
            config.kernel_root,
            core_flags=flags.core_flags,
            crate_name=config.crate_name,
            cargo_toolchain=config.cargo_toolchain,
            cargo_args=config.cargo_args,
            target_dir=config.target_dir,
            show_progress=self.verbose,
        )

        tasks: Dict[str, Callable] = {}
        for index, source in enumerate(subsystem.plan(config.aux_sources)):
            tasks[f"compile:{index}:{source}"] = (
                lambda source=source: subsystem.build_one(source)
            )
        tasks[CORE_TASK] = lambda: core_builder.build(
            profile.arch_id, release=config.release, target=config.target
        )

        results = TaskPool(config.jobs).run(tasks)
        core_archive: ObjectArtifact = results.pop(CORE_TASK)
        aux_objects: List[ObjectArtifact] = list(results.values())
        return aux_objects, core_archive
