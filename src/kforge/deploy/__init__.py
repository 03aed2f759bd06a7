"""
Kernel image handoff for kforge.

This module hands finished kernel images to the bootloader stub builder.
"""

from .stub_handoff import MakeStubBuilder, StubBuildError, StubBuilder, StubHandoff

__all__ = [
    "StubBuilder",
    "MakeStubBuilder",
    "StubHandoff",
    "StubBuildError",
]
