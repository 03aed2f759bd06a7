"""
Build artifact value types.

Artifacts are immutable references to files on disk. A file is written by
exactly one component; every other component only reads it.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ArtifactKind(Enum):
    """Kind of linkable input."""

    RELOCATABLE_OBJECT = "relocatable-object"
    STATIC_ARCHIVE = "static-archive"


class LinkPhase(Enum):
    """Which link pass produced a binary."""

    PROVISIONAL = "provisional"
    FINAL = "final"


@dataclass(frozen=True)
class ObjectArtifact:
    """A relocatable object or static archive fed to the linker."""

    path: Path
    kind: ArtifactKind = ArtifactKind.RELOCATABLE_OBJECT

    @property
    def is_archive(self) -> bool:
        return self.kind is ArtifactKind.STATIC_ARCHIVE


@dataclass(frozen=True)
class LinkedBinary:
    """Output of one link pass. Provisional binaries are never shipped."""

    path: Path
    phase: LinkPhase


@dataclass(frozen=True)
class KernelImage:
    """The finished kernel image handed to the stub builder."""

    path: Path
    object_format: str
    has_unwind_sections: bool
