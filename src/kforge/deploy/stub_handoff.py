"""
Bootloader stub handoff.

The finished kernel image is wrapped into a bootable payload by an
external stub builder. This module hands the image over and waits for the
stub build to finish. The image file stays owned by kforge throughout.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

import psutil

if TYPE_CHECKING:
    from ..build.artifacts import KernelImage


class StubBuildError(Exception):
    """Raised when the stub build fails. The kernel image remains valid."""

    def __init__(self, message: str, exit_status: Optional[int] = None, output: str = ""):
        self.exit_status = exit_status
        self.output = output
        text = message
        if exit_status is not None:
            text += f" (exit status {exit_status})"
        if output:
            text += f"\n{output}"
        super().__init__(text.rstrip())


class StubBuilder(ABC):
    """Collaborator that builds the bootable payload from a kernel image."""

    @abstractmethod
    def build(self, payload_elf: Path, target_sysroot: Path) -> None:
        """Build and install the stub.

        Args:
            payload_elf: Absolute path of the kernel image
            target_sysroot: System root the bootable artifact is installed into

        Raises:
            StubBuildError: If the build fails
        """


class MakeStubBuilder(StubBuilder):
    """Runs ``make -C <stub_dir> install -j<N>`` with PAYLOAD_ELF and TARGET_SYSROOT set."""

    def __init__(
        self,
        stub_dir: Path,
        jobs: Optional[int] = None,
        make: str = "make",
        verbose: bool = False,
    ):
        """Initialize make-based stub builder.

        Args:
            stub_dir: Stub source directory containing its Makefile
            jobs: Parallel make jobs (CPU count when None)
            make: Make executable
            verbose: Whether to show verbose output
        """
        self.stub_dir = Path(stub_dir)
        self.jobs = jobs or psutil.cpu_count(logical=True) or 1
        self.make = make
        self.verbose = verbose

    def build_command(self) -> List[str]:
        return [self.make, "-C", str(self.stub_dir), "install", f"-j{self.jobs}"]

    def build_env(self, payload_elf: Path, target_sysroot: Path) -> Dict[str, str]:
        env = os.environ.copy()
        env["PAYLOAD_ELF"] = str(payload_elf)
        env["TARGET_SYSROOT"] = str(target_sysroot)
        return env

    def build(self, payload_elf: Path, target_sysroot: Path) -> None:
        if not self.stub_dir.is_dir():
            raise StubBuildError(f"Stub source directory not found: {self.stub_dir}")

        cmd = self.build_command()
        logging.info(f"Running: {' '.join(cmd)} (PAYLOAD_ELF={payload_elf})")

        try:
            result = subprocess.run(
                cmd,
                env=self.build_env(payload_elf, target_sysroot),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise StubBuildError(f"Failed to run {self.make}: {e}") from e

        if self.verbose and result.stdout:
            print(result.stdout)

        if result.returncode != 0:
            raise StubBuildError(
                "Stub build failed",
                exit_status=result.returncode,
                output=(result.stderr or "") + (result.stdout or ""),
            )


class StubHandoff:
    """Hands a finished kernel image to the stub builder."""

    def __init__(self, builder: StubBuilder, show_progress: bool = True):
        self.builder = builder
        self.show_progress = show_progress

    @staticmethod
    def sysroot_for(output_root: Path) -> Path:
        return Path(output_root) / "bin" / "sysroot"

    def handoff(self, image: "KernelImage", output_root: Path) -> Path:
        """Build the stub for image and return the sysroot it was installed into.

        Raises:
            StubBuildError: If the stub build fails
        """
        sysroot = self.sysroot_for(output_root).resolve()
        sysroot.mkdir(parents=True, exist_ok=True)

        if self.show_progress:
            print("Linking bootloader stub...")
        self.builder.build(Path(image.path).resolve(), sysroot)
        return sysroot
