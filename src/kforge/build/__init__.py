"""
Build system components for kforge.

This module provides the kernel build pipeline including:
- Flag composition per architecture
- Auxiliary object compilation and the core library build
- Two-phase linking with an embedded kallsyms table
- Kernel image generation
- Build orchestration
"""

from .artifacts import ArtifactKind, KernelImage, LinkedBinary, LinkPhase, ObjectArtifact
from .binary_generator import ImagePostProcessor, PostProcessError
from .compilation_executor import CompilationError, CompilationExecutor
from .core_library import CargoCoreLibraryBuilder, CoreBuildError, CoreLibraryBuilder
from .flag_builder import BuildFlags, FlagBuilder, compose_flags, resolve_unwind
from .kallsyms import KallsymsExtractor, NoSymbolsError, SymbolFilter, SymbolKind
from .link_orchestrator import LinkOrchestrator, LinkState
from .linker import KernelLinker, LinkError
from .orchestrator import BuildResult, KernelBuildOrchestrator
from .subsystem_builder import SubsystemBuilder
from .task_pool import TaskPool

__all__ = [
    'ArtifactKind',
    'ObjectArtifact',
    'LinkedBinary',
    'LinkPhase',
    'KernelImage',
    'BuildFlags',
    'FlagBuilder',
    'compose_flags',
    'resolve_unwind',
    'CompilationExecutor',
    'CompilationError',
    'SubsystemBuilder',
    'CoreLibraryBuilder',
    'CargoCoreLibraryBuilder',
    'CoreBuildError',
    'KernelLinker',
    'LinkError',
    'KallsymsExtractor',
    'SymbolFilter',
    'SymbolKind',
    'NoSymbolsError',
    'LinkOrchestrator',
    'LinkState',
    'ImagePostProcessor',
    'PostProcessError',
    'TaskPool',
    'KernelBuildOrchestrator',
    'BuildResult',
]
