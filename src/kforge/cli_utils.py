"""Console helpers shared by the kforge subcommands."""

import logging
import sys
import traceback
from pathlib import Path

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Attach the kforge stderr handler to the root logger.

    Calling this again replaces the handler installed by a previous call.

    Args:
        verbose: Log everything down to DEBUG; otherwise only warnings and errors
    """
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.WARNING
    root.setLevel(level)

    root.handlers[:] = [h for h in root.handlers if not getattr(h, "_kforge", False)]

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._kforge = True  # type: ignore[attr-defined]
    root.addHandler(handler)


class ErrorFormatter:
    """Prints build outcomes to stdout with ANSI colors."""

    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @classmethod
    def _line(cls, color: str, mark: str, text: str) -> None:
        print(f"{color}{mark} {text}{cls.RESET}")

    @classmethod
    def print_error(cls, title: str, message: str) -> None:
        """Print a red title followed by the details.

        Tool diagnostics in ``message`` are printed exactly as received so
        compiler and linker output stays readable.
        """
        print()
        cls._line(cls.RED, "✗", title)
        print()
        print(message)
        print()

    @classmethod
    def print_success(cls, message: str) -> None:
        print()
        cls._line(cls.GREEN, "✓", message)

    @classmethod
    def print_warning(cls, message: str) -> None:
        print()
        cls._line(cls.YELLOW, "!", message)

    @classmethod
    def handle_permission_error(cls, error: PermissionError) -> None:
        cls.print_error("Permission denied while writing build outputs", str(error))
        sys.exit(EXIT_FAILURE)

    @classmethod
    def handle_keyboard_interrupt(cls) -> None:
        cls.print_warning("Kernel build interrupted")
        sys.exit(EXIT_INTERRUPTED)

    @classmethod
    def handle_unexpected_error(cls, error: Exception, verbose: bool = False) -> None:
        """Report an exception no build phase claimed, then exit 1.

        Args:
            error: The exception to report
            verbose: Also print the traceback
        """
        cls.print_error("Unexpected error", f"{type(error).__name__}: {error}")
        if verbose:
            print("Traceback:")
            print(traceback.format_exc())
        sys.exit(EXIT_FAILURE)


class PathValidator:
    """Rejects bad command-line paths with the usage exit code."""

    @staticmethod
    def _reject(reason: str, path: Path) -> None:
        print(f"{ErrorFormatter.RED}✗ {reason}: {path}{ErrorFormatter.RESET}")
        sys.exit(EXIT_USAGE)

    @classmethod
    def validate_kernel_root(cls, kernel_root: Path) -> None:
        if not kernel_root.exists():
            cls._reject("Kernel root does not exist", kernel_root)
        if not kernel_root.is_dir():
            cls._reject("Kernel root is not a directory", kernel_root)

    @classmethod
    def validate_file(cls, path: Path) -> None:
        if not path.is_file():
            cls._reject("ELF file not found", path)
