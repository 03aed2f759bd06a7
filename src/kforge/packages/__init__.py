"""Toolchain lookup for kforge.

Toolchains are installed outside kforge; this package only locates them.
"""

from .toolchain_binaries import ToolchainBinaryFinder

__all__ = [
    "ToolchainBinaryFinder",
]
