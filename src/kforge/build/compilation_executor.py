"""Compilation Executor.

This module handles executing compilation commands via subprocess and
turning failures into CompilationError with the toolchain's diagnostics.

Design:
    - Wraps subprocess.run for compilation commands
    - No timeout: a cross compiler runs until it finishes or fails
    - Used by the subsystem builder and the kallsyms encoder alike
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence


class CompilationError(Exception):
    """Raised when compiling a source file fails."""

    def __init__(self, source_path: Path, output: str):
        self.source_path = Path(source_path)
        self.output = output
        super().__init__(f"Compilation failed for {self.source_path}\n{output}".rstrip())


class CompilationExecutor:
    """Executes compilation commands.

    This class handles:
    - Building the compiler command line
    - Running the compiler subprocess
    - Reporting failures with the captured diagnostics
    """

    def __init__(self, show_progress: bool = True):
        """Initialize compilation executor.

        Args:
            show_progress: Whether to show compilation progress
        """
        self.show_progress = show_progress

    @staticmethod
    def build_command(
        compiler_path: Path,
        source_path: Path,
        output_path: Path,
        compile_flags: Sequence[str],
    ) -> List[str]:
        cmd = [str(compiler_path)]
        cmd.extend(compile_flags)
        cmd.extend(["-c", str(source_path)])
        cmd.extend(["-o", str(output_path)])
        return cmd

    def compile_source(
        self,
        compiler_path: Path,
        source_path: Path,
        output_path: Path,
        compile_flags: Sequence[str],
    ) -> Path:
        """Compile a single source file.

        Args:
            compiler_path: Path to the cross gcc
            source_path: Path to source file (.c or .S)
            output_path: Path for output object file
            compile_flags: Compilation flags, include flags included

        Returns:
            Path to generated object file

        Raises:
            CompilationError: If compilation fails
        """
        if not source_path.exists():
            raise CompilationError(source_path, f"Source file not found: {source_path}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(compiler_path, source_path, output_path, compile_flags)

        if self.show_progress:
            print(f"Compiling {source_path.name}...")
        logging.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise CompilationError(source_path, f"Failed to run {compiler_path}: {e}") from e

        if result.returncode != 0:
            output = (result.stderr or "") + (result.stdout or "")
            raise CompilationError(source_path, output)

        if self.show_progress and result.stderr:
            print(result.stderr)

        return output_path
