"""
Command-line interface for kforge.

This module provides the `kforge` CLI tool for building kernel images.
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from kforge import __version__
from kforge.build import KernelBuildOrchestrator
from kforge.build.kallsyms import (
    NoSymbolsError,
    SymbolFilter,
    build_symbol_table,
    read_elf_symbols,
    render_kallsyms_source,
)
from kforge.cli_utils import EXIT_FAILURE, ErrorFormatter, PathValidator, setup_logging
from kforge.config import ARCH_PROFILES, BuildConfigError, load_build_config


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    kernel_root: Path
    arch: Optional[str] = None
    unwind: Optional[bool] = None
    output_root: Optional[Path] = None
    sources: List[Path] = field(default_factory=list)
    debug: bool = False
    jobs: Optional[int] = None
    relink_passes: Optional[int] = None
    no_stub: bool = False
    keep_intermediates: bool = False
    verbose: bool = False


@dataclass
class KallsymsArgs:
    """Arguments for the kallsyms command."""

    elf_path: Path
    output: Optional[Path] = None
    include_local: bool = False
    verbose: bool = False


def build_command(args: BuildArgs) -> None:
    """Build the kernel image for one architecture.

    Examples:
        kforge build                        # Build kernel in current directory
        kforge build kernel -a riscv64      # Build for riscv64
        kforge build --no-unwind            # Build without unwind tables
        kforge build -s debug/traceback.c   # Add an auxiliary source
        kforge build --verbose              # Verbose output
    """
    print(f"kforge Kernel Build System v{__version__}")
    print()

    try:
        overrides = {
            "unwind": args.unwind,
            "output_root": args.output_root.resolve() if args.output_root else None,
            "aux_sources": list(args.sources) if args.sources else None,
            "release": False if args.debug else None,
            "jobs": args.jobs,
            "relink_passes": args.relink_passes,
            "stub": False if args.no_stub else None,
            "keep_intermediates": True if args.keep_intermediates else None,
        }
        config = load_build_config(args.kernel_root, arch=args.arch, overrides=overrides)

        if args.verbose:
            print(f"Building kernel: {config.kernel_root}")
            print(f"Architecture: {config.arch}")
            print(f"Output root: {config.output_root}")
            print()
        else:
            print(f"Building kernel for {config.arch}...")

        orchestrator = KernelBuildOrchestrator(verbose=args.verbose)
        result = orchestrator.build(config)

        if result.success:
            ErrorFormatter.print_success("Build successful!")
            print()
            print(f"Kernel: {result.image_path}")
            print(f"Symbols: {result.symbol_count}")
            if result.sysroot:
                print(f"Sysroot: {result.sysroot}")
            print(f"Build time: {result.build_time:.2f}s")
            sys.exit(0)
        else:
            ErrorFormatter.print_error(
                f"Build failed! (phase: {result.failed_phase})", result.message
            )
            sys.exit(EXIT_FAILURE)

    except BuildConfigError as e:
        ErrorFormatter.print_error("Configuration error", str(e))
        sys.exit(EXIT_FAILURE)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def profiles_command() -> None:
    """List the supported architectures and their profiles."""
    for arch_id, profile in ARCH_PROFILES.items():
        print(f"{arch_id}:")
        print(f"  Toolchain prefix: {profile.toolchain_prefix}")
        print(f"  Object format:    {profile.object_format}")
        print(f"  Linker script:    {profile.linker_script_path}")
        print(f"  Include paths:    {' '.join(str(p) for p in profile.include_paths)}")
        print(f"  Unwind tables:    {'supported' if profile.supports_unwind else 'unsupported'}")
        print(f"  Core target:      {profile.rust_target}")
    sys.exit(0)


def kallsyms_command(args: KallsymsArgs) -> None:
    """Encode the kallsyms table of an existing ELF file.

    Examples:
        kforge kallsyms build/kernel            # Print kallsyms.S
        kforge kallsyms build/kernel -o k.S     # Write kallsyms.S to a file
    """
    try:
        table = build_symbol_table(
            read_elf_symbols(args.elf_path), SymbolFilter(include_local=args.include_local)
        )
        if not table:
            raise NoSymbolsError(args.elf_path, "no symbols matched the kallsyms filter")

        source = render_kallsyms_source(table)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(source, encoding="utf-8")
            ErrorFormatter.print_success(f"Wrote {len(table)} symbols to {args.output}")
        else:
            sys.stdout.write(source)
        sys.exit(0)

    except NoSymbolsError as e:
        ErrorFormatter.print_error("No symbols", str(e))
        sys.exit(EXIT_FAILURE)
    except PermissionError as e:
        ErrorFormatter.handle_permission_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def main(argv: Optional[List[str]] = None) -> None:
    """kforge - kernel build driver with embedded kallsyms."""
    parser = argparse.ArgumentParser(
        prog="kforge",
        description="kforge - Build kernel images with an embedded symbol table",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"kforge {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build the kernel image",
    )
    build_parser.add_argument(
        "kernel_root",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Kernel source root (default: current directory)",
    )
    build_parser.add_argument(
        "-a",
        "--arch",
        default=None,
        help="Target architecture (default: ARCH or kforge.ini default_arch)",
    )
    build_parser.add_argument(
        "--unwind",
        dest="unwind",
        action="store_true",
        default=None,
        help="Emit unwind tables (ignored where unsupported)",
    )
    build_parser.add_argument(
        "--no-unwind",
        dest="unwind",
        action="store_false",
        default=None,
        help="Do not emit unwind tables",
    )
    build_parser.add_argument(
        "-o",
        "--output-root",
        type=Path,
        default=None,
        help="Output root receiving bin/kernel and bin/sysroot",
    )
    build_parser.add_argument(
        "-s",
        "--source",
        dest="sources",
        action="append",
        type=Path,
        default=[],
        help="Auxiliary source to compile and link (repeatable)",
    )
    build_parser.add_argument(
        "--debug",
        action="store_true",
        help="Build the core library in debug mode",
    )
    build_parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Parallel jobs (default: CPU count)",
    )
    build_parser.add_argument(
        "--relink-passes",
        type=int,
        default=None,
        help="Extra relinks to converge kallsyms onto the final layout (default: 0)",
    )
    build_parser.add_argument(
        "--no-stub",
        action="store_true",
        help="Skip the bootloader stub build",
    )
    build_parser.add_argument(
        "--keep-intermediates",
        action="store_true",
        help="Keep the linked kernel next to the generated image",
    )
    build_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )

    # Profiles command
    subparsers.add_parser(
        "profiles",
        help="List supported architectures",
    )

    # Kallsyms command
    kallsyms_parser = subparsers.add_parser(
        "kallsyms",
        help="Encode the kallsyms table of an ELF file",
    )
    kallsyms_parser.add_argument(
        "elf_path",
        type=Path,
        help="Linked ELF file",
    )
    kallsyms_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the assembler source here (default: stdout)",
    )
    kallsyms_parser.add_argument(
        "--include-local",
        action="store_true",
        help="Also keep local symbols",
    )
    kallsyms_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )

    # Parse arguments
    parsed_args = parser.parse_args(argv)

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(getattr(parsed_args, "verbose", False))

    # Execute command
    if parsed_args.command == "build":
        PathValidator.validate_kernel_root(parsed_args.kernel_root)
        build_args = BuildArgs(
            kernel_root=parsed_args.kernel_root,
            arch=parsed_args.arch,
            unwind=parsed_args.unwind,
            output_root=parsed_args.output_root,
            sources=parsed_args.sources,
            debug=parsed_args.debug,
            jobs=parsed_args.jobs,
            relink_passes=parsed_args.relink_passes,
            no_stub=parsed_args.no_stub,
            keep_intermediates=parsed_args.keep_intermediates,
            verbose=parsed_args.verbose,
        )
        build_command(build_args)
    elif parsed_args.command == "profiles":
        profiles_command()
    elif parsed_args.command == "kallsyms":
        PathValidator.validate_file(parsed_args.elf_path)
        kallsyms_args = KallsymsArgs(
            elf_path=parsed_args.elf_path,
            output=parsed_args.output,
            include_local=parsed_args.include_local,
            verbose=parsed_args.verbose,
        )
        kallsyms_command(kallsyms_args)


if __name__ == "__main__":
    main()
