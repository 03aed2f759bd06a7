"""
Kernel linker wrapper.

This module wraps the cross ld invocation used for both link passes. The
command line is identical for the two passes apart from the output path and
the extra kallsyms object in the final pass.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

from ..config.arch_profiles import ArchitectureProfile
from .artifacts import LinkedBinary, LinkPhase, ObjectArtifact
from .flag_builder import BuildFlags


class LinkError(Exception):
    """Raised when a link pass fails."""

    def __init__(self, phase: LinkPhase, output: str, returncode: int = -1):
        self.phase = phase
        self.output = output
        self.returncode = returncode
        super().__init__(f"{phase.value.capitalize()} link failed\n{output}".rstrip())


class KernelLinker:
    """
    Wrapper for the cross linker.

    Links relocatable objects and the core archive with the architecture
    linker script. Multiple definitions are tolerated (-z muldefs in the
    link flags) and resolved by input order.
    """

    def __init__(
        self,
        ld_path: Path,
        profile: ArchitectureProfile,
        flags: BuildFlags,
        show_progress: bool = True,
    ):
        """
        Initialize linker.

        Args:
            ld_path: Path to the cross ld
            profile: Architecture profile (for the linker script)
            flags: Composed build flags (for the link flags)
            show_progress: Whether to show linking progress
        """
        self.ld_path = Path(ld_path)
        self.profile = profile
        self.flags = flags
        self.show_progress = show_progress

    def build_command(self, inputs: Sequence[ObjectArtifact], output: Path) -> List[str]:
        """
        Build the ld command line.

        Inputs keep the order they were given in: with -z muldefs the first
        definition wins, so order is part of the link's meaning.
        """
        cmd = [str(self.ld_path)]
        cmd.extend(self.flags.link_flags)
        cmd.extend(["-o", str(output)])
        cmd.extend(str(artifact.path) for artifact in inputs)
        cmd.extend(["-T", str(self.profile.linker_script_path)])
        return cmd

    def link(
        self,
        inputs: Sequence[ObjectArtifact],
        output: Path,
        phase: LinkPhase,
    ) -> LinkedBinary:
        """
        Run one link pass.

        Args:
            inputs: Objects and archives, in link order
            output: Output binary path
            phase: Which pass this is

        Returns:
            LinkedBinary for the written output

        Raises:
            LinkError: If ld fails or writes nothing
        """
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)
        if output.exists():
            output.unlink()

        cmd = self.build_command(inputs, output)
        if self.show_progress:
            label = "Re-linking" if phase is LinkPhase.FINAL else "Linking"
            print(f"{label} kernel...")
        logging.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise LinkError(phase, f"Failed to run {self.ld_path}: {e}") from e

        if result.returncode != 0:
            raise LinkError(
                phase,
                (result.stderr or "") + (result.stdout or ""),
                result.returncode,
            )

        if not output.exists():
            raise LinkError(phase, f"Linker reported success but {output} was not created")

        return LinkedBinary(path=output, phase=phase)
