"""Build Flag Composer.

This module derives the compiler, assembler, linker and core-library flag
sets for a kernel build from an architecture profile and the unwind toggle.

Design:
    - One authoritative place decides whether unwind tables are emitted
    - The user toggle is evaluated first, the architecture rule after it
    - Flag groups are ordered and duplicate-free (include order matters)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence, Tuple

from ..config.arch_profiles import ArchitectureProfile

UNWIND_CFLAGS = ("-funwind-tables",)
UNWIND_LDFLAGS = ("--eh-frame-hdr",)
UNWIND_CORE_FLAGS = (
    "-Cforce-unwind-tables",
    "-Clink-arg=-Wl,eh_frame.ld",
    "-Cpanic=unwind",
)
ASSEMBLY_SUFFIXES = (".S", ".s")


@dataclass(frozen=True)
class BuildFlags:
    """Immutable flag set shared by every builder component."""

    compile_flags: Tuple[str, ...]
    link_flags: Tuple[str, ...]
    assembler_flags: Tuple[str, ...]
    core_flags: Tuple[str, ...]
    unwind_enabled: bool

    def flags_for(self, source: Path) -> Tuple[str, ...]:
        """Compiler flags for one source; assembly sources also get -Wa, flags."""
        if Path(source).suffix in ASSEMBLY_SUFFIXES:
            return self.compile_flags + tuple(f"-Wa,{flag}" for flag in self.assembler_flags)
        return self.compile_flags


def _unique(flags: Iterable[str]) -> Tuple[str, ...]:
    seen = set()
    ordered = []
    for flag in flags:
        if flag and flag not in seen:
            seen.add(flag)
            ordered.append(flag)
    return tuple(ordered)


def resolve_unwind(profile: ArchitectureProfile, requested: bool) -> bool:
    """Apply the architecture override after the user's unwind toggle."""
    enabled = bool(requested)
    if not profile.supports_unwind:
        enabled = False
    return enabled


class FlagBuilder:
    """Composes BuildFlags for one profile.

    This class handles:
    - Parsing user flag strings with quoted values
    - Unwind-table flags for compiler, linker and core library
    - Include paths from the architecture profile
    """

    BASE_CFLAGS = ("-fno-pie",)

    def __init__(
        self,
        profile: ArchitectureProfile,
        unwind_enabled: bool = True,
        extra_cflags: Sequence[str] = (),
        extra_core_flags: Sequence[str] = (),
    ):
        """Initialize flag builder.

        Args:
            profile: Resolved architecture profile
            unwind_enabled: User-requested unwind toggle
            extra_cflags: Global C flags placed ahead of the generated ones
            extra_core_flags: Base RUSTFLAGS for the core library
        """
        self.profile = profile
        self.unwind_requested = unwind_enabled
        self.extra_cflags = list(extra_cflags)
        self.extra_core_flags = list(extra_core_flags)

    def build_flags(self) -> BuildFlags:
        """Compose the complete flag set."""
        unwind = resolve_unwind(self.profile, self.unwind_requested)

        compile_flags = list(self.extra_cflags)
        compile_flags.extend(self.BASE_CFLAGS)
        if unwind:
            compile_flags.extend(UNWIND_CFLAGS)
        compile_flags.extend(f"-I{path}" for path in self.profile.include_paths)

        link_flags = ["-b", self.profile.object_format, "-z", "muldefs"]
        if unwind:
            link_flags.extend(UNWIND_LDFLAGS)
        link_flags.append("--no-relax")

        core_flags = list(self.extra_core_flags)
        if unwind:
            core_flags.extend(UNWIND_CORE_FLAGS)

        return BuildFlags(
            compile_flags=_unique(compile_flags),
            # -b and -z take arguments, so no deduplication here
            link_flags=tuple(link_flags),
            assembler_flags=_unique(self.profile.assembler_flags),
            core_flags=_unique(core_flags),
            unwind_enabled=unwind,
        )


def compose_flags(
    profile: ArchitectureProfile,
    unwind_enabled: bool = True,
    extra_cflags: Sequence[str] = (),
    extra_core_flags: Sequence[str] = (),
) -> BuildFlags:
    """Shortcut for FlagBuilder(...).build_flags()."""
    return FlagBuilder(
        profile, unwind_enabled, extra_cflags, extra_core_flags
    ).build_flags()
