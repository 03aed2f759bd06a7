"""Core Library Builder.

The kernel's core-language crate is compiled by an external toolchain.
This module defines the collaborator interface the orchestrator talks to
and a cargo-backed implementation of it.

Design:
    - The orchestrator only sees build(arch_id, release, target) -> archive
    - Failures surface as CoreBuildError with the collaborator's exit status
    - Exactly one static archive is expected per invocation
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..config.arch_profiles import resolve_profile
from .artifacts import ArtifactKind, ObjectArtifact


class CoreBuildError(Exception):
    """Raised when the core library build fails."""

    def __init__(self, message: str, exit_status: Optional[int] = None, output: str = ""):
        self.exit_status = exit_status
        self.output = output
        text = message
        if exit_status is not None:
            text += f" (exit status {exit_status})"
        if output:
            text += f"\n{output}"
        super().__init__(text.rstrip())


class CoreLibraryBuilder(ABC):
    """Collaborator that produces the kernel's core static library."""

    @abstractmethod
    def build(
        self, arch_id: str, release: bool = True, target: Optional[str] = None
    ) -> ObjectArtifact:
        """Build the core library.

        Args:
            arch_id: Architecture identifier
            release: Build in release mode
            target: Target descriptor (triple or target JSON path); the
                profile's default triple when None

        Returns:
            ObjectArtifact of kind STATIC_ARCHIVE

        Raises:
            CoreBuildError: If the build fails or produces no archive
        """


class CargoCoreLibraryBuilder(CoreLibraryBuilder):
    """Builds the core library with cargo.

    Runs ``cargo +<toolchain> <extra args> build [--release] --target <target>``
    with RUSTFLAGS taken from the composed build flags.
    """

    DEFAULT_TOOLCHAIN = "nightly-2024-11-05"

    def __init__(
        self,
        kernel_root: Path,
        core_flags: Sequence[str] = (),
        crate_name: str = "kernel",
        cargo_toolchain: Optional[str] = DEFAULT_TOOLCHAIN,
        cargo_args: Sequence[str] = (),
        target_dir: Optional[Path] = None,
        cargo: str = "cargo",
        show_progress: bool = True,
    ):
        """Initialize cargo builder.

        Args:
            kernel_root: Directory cargo runs in
            core_flags: RUSTFLAGS entries
            crate_name: Library crate name; the archive is lib<crate_name>.a
            cargo_toolchain: rustup toolchain override (None for the default)
            cargo_args: Extra arguments placed before "build" (e.g. -Zbuild-std flags)
            target_dir: Cargo target directory (default: <kernel_root>/../target)
            cargo: Cargo executable
            show_progress: Whether to show build progress
        """
        self.kernel_root = Path(kernel_root)
        self.core_flags = list(core_flags)
        self.crate_name = crate_name
        self.cargo_toolchain = cargo_toolchain
        self.cargo_args = list(cargo_args)
        self.target_dir = Path(target_dir) if target_dir else self.kernel_root.parent / "target"
        self.cargo = cargo
        self.show_progress = show_progress

    def build_command(self, release: bool, target: str) -> List[str]:
        cmd = [self.cargo]
        if self.cargo_toolchain:
            cmd.append(f"+{self.cargo_toolchain}")
        cmd.extend(self.cargo_args)
        cmd.append("build")
        if release:
            cmd.append("--release")
        cmd.extend(["--target", target])
        return cmd

    def build_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env["RUSTFLAGS"] = " ".join(self.core_flags)
        return env

    def archive_path(self, target: str, release: bool) -> Path:
        """Where cargo leaves the archive for a target.

        A target JSON file is reported by cargo under its file stem.
        """
        target_name = Path(target).stem if target.endswith(".json") else target
        profile_dir = "release" if release else "debug"
        return self.target_dir / target_name / profile_dir / f"lib{self.crate_name}.a"

    def build(
        self, arch_id: str, release: bool = True, target: Optional[str] = None
    ) -> ObjectArtifact:
        if target is None:
            target = resolve_profile(arch_id).rust_target

        cmd = self.build_command(release, target)
        if self.show_progress:
            print(f"Building core library for {arch_id} ({target})...")
        logging.info(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.kernel_root),
                env=self.build_env(),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise CoreBuildError(f"Failed to run {self.cargo}: {e}") from e

        if result.returncode != 0:
            raise CoreBuildError(
                "Core library build failed",
                exit_status=result.returncode,
                output=(result.stderr or "") + (result.stdout or ""),
            )

        archive = self.archive_path(target, release)
        if not archive.exists():
            raise CoreBuildError(f"Core library archive was not produced: {archive}")

        return ObjectArtifact(path=archive, kind=ArtifactKind.STATIC_ARCHIVE)
