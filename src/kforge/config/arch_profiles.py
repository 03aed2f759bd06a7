"""
Architecture profiles for the supported kernel targets.

This module centralizes per-architecture facts (cross toolchain prefix,
BFD object format, include directories, linker script) so the rest of the
build never branches on the architecture name directly.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple


class UnsupportedArchitectureError(Exception):
    """Raised when an architecture identifier has no profile."""

    def __init__(self, arch_id: str):
        self.arch_id = arch_id
        super().__init__(
            f"Unsupported architecture: '{arch_id}'. "
            + f"Supported architectures: {', '.join(SUPPORTED_ARCHITECTURES)}"
        )


@dataclass(frozen=True)
class ArchitectureProfile:
    """Toolchain and layout facts for one target architecture."""

    arch_id: str
    toolchain_prefix: str  # e.g. "x86_64-linux-gnu-"
    object_format: str  # BFD name passed to ld -b and objcopy -I/-O
    include_paths: Tuple[Path, ...]
    linker_script_path: Path
    supports_unwind: bool
    rust_target: str  # default target triple for the core library
    assembler_flags: Tuple[str, ...] = ()

    def anchored(self, kernel_root: Path) -> "ArchitectureProfile":
        """Return a copy with include and linker-script paths under kernel_root."""
        root = Path(kernel_root)
        return replace(
            self,
            include_paths=tuple(root / p for p in self.include_paths),
            linker_script_path=root / self.linker_script_path,
        )


# Include paths are relative to the kernel source root until anchored.
_COMMON_INCLUDES = (Path("."), Path("include"))

ARCH_PROFILES = {
    "x86_64": ArchitectureProfile(
        arch_id="x86_64",
        toolchain_prefix="x86_64-linux-gnu-",
        object_format="elf64-x86-64",
        include_paths=_COMMON_INCLUDES + (Path("arch/x86_64/include"),),
        linker_script_path=Path("arch/x86_64/link.lds"),
        supports_unwind=True,
        rust_target="x86_64-unknown-none",
        assembler_flags=("--64",),
    ),
    "riscv64": ArchitectureProfile(
        arch_id="riscv64",
        toolchain_prefix="riscv64-unknown-elf-",
        object_format="elf64-littleriscv",
        include_paths=_COMMON_INCLUDES + (
            Path("arch/riscv64/include"),
            Path("arch/riscv64"),
        ),
        linker_script_path=Path("arch/riscv64/link.ld"),
        supports_unwind=True,
        rust_target="riscv64gc-unknown-none-elf",
    ),
    "loongarch64": ArchitectureProfile(
        arch_id="loongarch64",
        toolchain_prefix="loongarch64-unknown-linux-gnu-",
        object_format="elf64-loongarch",
        include_paths=_COMMON_INCLUDES,
        linker_script_path=Path("arch/loongarch64/link.ld"),
        supports_unwind=False,  # unwind tables are not supported here yet
        rust_target="loongarch64-unknown-none",
    ),
}

SUPPORTED_ARCHITECTURES = tuple(ARCH_PROFILES)


def get_arch_profile(arch_id: str) -> Optional[ArchitectureProfile]:
    """
    Get the unanchored profile for an architecture.

    Args:
        arch_id: Architecture identifier (e.g., 'x86_64')

    Returns:
        ArchitectureProfile if found, None otherwise
    """
    return ARCH_PROFILES.get(arch_id.strip().lower())


def resolve_profile(
    arch_id: str, kernel_root: Optional[Path] = None
) -> ArchitectureProfile:
    """
    Resolve the profile for a build.

    Args:
        arch_id: Architecture identifier
        kernel_root: Kernel source root; include and linker-script paths are
            anchored here when given

    Returns:
        The matching ArchitectureProfile

    Raises:
        UnsupportedArchitectureError: If arch_id is not supported
    """
    profile = get_arch_profile(arch_id or "")
    if profile is None:
        raise UnsupportedArchitectureError(arch_id)
    if kernel_root is not None:
        return profile.anchored(kernel_root)
    return profile
