"""Cross Toolchain Binary Finder.

This module locates the binaries of an already-installed cross toolchain.
Installing or downloading toolchains is not handled here.

Binary Naming Conventions:
    - x86_64: x86_64-linux-gnu-gcc, x86_64-linux-gnu-ld, ...
    - riscv64: riscv64-unknown-elf-gcc, riscv64-unknown-elf-objcopy, ...
    - loongarch64: loongarch64-unknown-linux-gnu-gcc, ...

Lookup order:
    1. An explicit bin directory, when configured
    2. The PATH
"""

import shutil
from pathlib import Path
from typing import Optional


class ToolchainBinaryFinder:
    """Finds binaries for one toolchain prefix."""

    def __init__(self, binary_prefix: str, bin_dir: Optional[Path] = None):
        """Initialize the binary finder.

        Args:
            binary_prefix: Prefix including the trailing dash (e.g. "riscv64-unknown-elf-").
                An empty prefix selects the host tools.
            bin_dir: Directory holding the binaries; PATH is searched when None
        """
        self.binary_prefix = binary_prefix
        self.bin_dir = Path(bin_dir) if bin_dir else None

    def binary_name(self, tool: str) -> str:
        return f"{self.binary_prefix}{tool}"

    def find_binary(self, tool: str) -> Optional[Path]:
        """Find a specific binary.

        Args:
            tool: Tool name without prefix (e.g., "gcc", "ld", "objcopy")

        Returns:
            Path to the binary, or None if not found
        """
        name = self.binary_name(tool)
        if self.bin_dir is not None:
            for ext in ("", ".exe"):
                candidate = self.bin_dir / f"{name}{ext}"
                if candidate.exists():
                    return candidate
            return None

        found = shutil.which(name)
        return Path(found) if found else None

    def tool_path(self, tool: str) -> Path:
        """Return the resolved binary, or its bare name so the OS lookup reports the failure."""
        found = self.find_binary(tool)
        if found is not None:
            return found
        if self.bin_dir is not None:
            return self.bin_dir / self.binary_name(tool)
        return Path(self.binary_name(tool))

    def get_gcc_path(self) -> Path:
        """Get path to GCC compiler."""
        return self.tool_path("gcc")

    def get_ld_path(self) -> Path:
        """Get path to the linker."""
        return self.tool_path("ld")

    def get_objcopy_path(self) -> Path:
        """Get path to objcopy utility."""
        return self.tool_path("objcopy")
