"""Kernel Image Post-Processing.

This module turns the final linked kernel into the kernel image consumed
by the bootloader stub: objcopy rewrites it in the architecture's canonical
object format and drops the unwind section when unwind tables are off.

Design:
    - Only final-phase binaries are accepted
    - objcopy -I/-O use the profile's BFD object format
    - .eh_frame is removed when unwinding is disabled
"""

import logging
import subprocess
from pathlib import Path
from typing import List

from ..config.arch_profiles import ArchitectureProfile
from .artifacts import KernelImage, LinkedBinary, LinkPhase

UNWIND_SECTION = ".eh_frame"


class PostProcessError(Exception):
    """Raised when kernel image generation fails."""
    pass


class ImagePostProcessor:
    """Produces the kernel image from the final linked binary."""

    def __init__(
        self,
        objcopy_path: Path,
        profile: ArchitectureProfile,
        show_progress: bool = True
    ):
        """Initialize post-processor.

        Args:
            objcopy_path: Path to the cross objcopy
            profile: Architecture profile (for the object format)
            show_progress: Whether to show progress
        """
        self.objcopy_path = Path(objcopy_path)
        self.profile = profile
        self.show_progress = show_progress

    def build_command(
        self, binary: LinkedBinary, output_path: Path, unwind_enabled: bool
    ) -> List[str]:
        fmt = self.profile.object_format
        cmd = [str(self.objcopy_path), "-I", fmt, "-O", fmt]
        if not unwind_enabled:
            cmd.extend(["-R", UNWIND_SECTION])
        cmd.extend([str(binary.path), str(output_path)])
        return cmd

    def process(
        self, binary: LinkedBinary, output_path: Path, unwind_enabled: bool
    ) -> KernelImage:
        """Generate the kernel image.

        Args:
            binary: Final linked kernel
            output_path: Where to write the image (e.g. <root>/bin/kernel/kernel.elf)
            unwind_enabled: Effective unwind toggle; False strips .eh_frame

        Returns:
            KernelImage describing the written file

        Raises:
            PostProcessError: If conversion fails
        """
        if binary.phase is not LinkPhase.FINAL:
            raise PostProcessError(
                f"Refusing to generate an image from a {binary.phase.value} binary: {binary.path}"
            )
        if not binary.path.exists():
            raise PostProcessError(f"Linked kernel not found: {binary.path}")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(binary, output_path, unwind_enabled)

        if self.show_progress:
            print("Generating kernel ELF file...")
        logging.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise PostProcessError(f"Failed to run {self.objcopy_path}: {e}") from e

        if result.returncode != 0:
            error_msg = "Kernel image generation failed\n"
            error_msg += f"stderr: {result.stderr}\n"
            error_msg += f"stdout: {result.stdout}"
            raise PostProcessError(error_msg)

        if not output_path.exists():
            raise PostProcessError(f"Kernel image was not created: {output_path}")

        if self.show_progress:
            size = output_path.stat().st_size
            print(f"✓ Created {output_path.name}: {size:,} bytes ({size / 1024 / 1024:.2f} MB)")

        return KernelImage(
            path=output_path,
            object_format=self.profile.object_format,
            has_unwind_sections=unwind_enabled,
        )
