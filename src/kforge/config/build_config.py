"""
kforge.ini configuration parser.

This module reads the optional kforge.ini in the kernel source root and
merges it with environment variables and command-line overrides into a
KernelBuildConfig.

Example kforge.ini:
    [kforge]
    default_arch = x86_64

    [build]
    output_root = ../..
    aux_sources =
        debug/traceback.c

    [arch:loongarch64]
    cflags = -mcmodel=large

Precedence, highest first: command line, environment (ARCH, UNWIND_ENABLE),
[arch:<id>] section, [build] section, built-in defaults.
"""

import configparser
import os
import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .arch_profiles import SUPPORTED_ARCHITECTURES

CONFIG_FILENAME = "kforge.ini"

_TRUE_VALUES = {"1", "yes", "true", "on"}
_FALSE_VALUES = {"0", "no", "false", "off"}


class BuildConfigError(Exception):
    """Exception raised for kforge.ini configuration errors."""

    pass


@dataclass
class KernelBuildConfig:
    """Everything one kernel build needs to know."""

    arch: str
    kernel_root: Path
    output_root: Path
    unwind: bool = True
    release: bool = True
    aux_sources: List[Path] = field(default_factory=list)
    build_dir: Optional[Path] = None
    jobs: Optional[int] = None
    cflags: List[str] = field(default_factory=list)
    rustflags: List[str] = field(default_factory=list)
    crate_name: str = "kernel"
    cargo_toolchain: Optional[str] = "nightly-2024-11-05"
    cargo_args: List[str] = field(default_factory=list)
    target: Optional[str] = None
    target_dir: Optional[Path] = None
    toolchain_bin: Optional[Path] = None
    stub: bool = True
    stub_dir: Optional[Path] = None
    relink_passes: int = 0
    symbol_kinds: Tuple[str, ...] = ("function", "data")
    include_local_symbols: bool = False
    exclude_symbol_prefixes: Tuple[str, ...] = ("kallsyms_", ".L", "$")
    keep_intermediates: bool = False

    @property
    def effective_build_dir(self) -> Path:
        if self.build_dir is not None:
            return self.build_dir
        return self.kernel_root / ".kforge" / "build" / self.arch

    @property
    def kernel_image_path(self) -> Path:
        return self.output_root / "bin" / "kernel" / "kernel.elf"

    @property
    def effective_stub_dir(self) -> Path:
        if self.stub_dir is not None:
            return self.stub_dir
        return self.kernel_root / "submodules" / "DragonStub"


def parse_bool(value: Any, key: str = "value") -> bool:
    """Parse yes/no style booleans (the UNWIND_ENABLE convention)."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise BuildConfigError(f"Invalid boolean for '{key}': {value!r}")


def _split_list(value: str) -> List[str]:
    items = []
    for line in value.split("\n"):
        for item in line.split(","):
            item = item.strip()
            if item:
                items.append(item)
    return items


class KforgeConfig:
    """
    Parser for kforge.ini files.

    Usage:
        config = KforgeConfig(Path("kforge.ini"))
        config.get_default_arch()
        config.get_arch_config("riscv64")
    """

    def __init__(self, ini_path: Path):
        """
        Initialize the parser with a kforge.ini file.

        Args:
            ini_path: Path to the kforge.ini file

        Raises:
            BuildConfigError: If the file doesn't exist or cannot be parsed
        """
        self.ini_path = ini_path

        if not ini_path.exists():
            raise BuildConfigError(f"Configuration file not found: {ini_path}")

        self.config = configparser.ConfigParser(
            allow_no_value=True, interpolation=configparser.ExtendedInterpolation()
        )

        try:
            self.config.read(ini_path, encoding="utf-8")
        except configparser.Error as e:
            raise BuildConfigError(f"Failed to parse {ini_path}: {e}") from e

    def get_architectures(self) -> List[str]:
        """Architectures that have an [arch:<id>] section."""
        archs = []
        for section in self.config.sections():
            if section.startswith("arch:"):
                archs.append(section.split(":", 1)[1])
        return archs

    def get_arch_config(self, arch: str) -> Dict[str, str]:
        """
        Get the merged settings for an architecture.

        [build] values are inherited; [arch:<id>] values override them.
        An architecture without a section gets the [build] values alone.

        Raises:
            BuildConfigError: If a section names an unsupported architecture
                or interpolation fails
        """
        for name in self.get_architectures():
            if name not in SUPPORTED_ARCHITECTURES:
                raise BuildConfigError(
                    f"{self.ini_path}: section [arch:{name}] names an unsupported architecture"
                )

        merged: Dict[str, str] = {}
        try:
            for section in ("build", f"arch:{arch}"):
                if section in self.config:
                    for key in self.config[section]:
                        value = self.config[section][key]
                        merged[key] = (value or "").strip()
        except configparser.Error as e:
            raise BuildConfigError(f"Failed to read {self.ini_path}: {e}") from e
        return merged

    def get_default_arch(self) -> Optional[str]:
        """
        Get the default architecture.

        Returns:
            [kforge] default_arch, else the first [arch:*] section, else None
        """
        if "kforge" in self.config:
            default = self.config["kforge"].get("default_arch", "")
            if default and default.strip():
                return default.split(",")[0].strip()

        archs = self.get_architectures()
        return archs[0] if archs else None


def _apply_settings(
    config: KernelBuildConfig, settings: Mapping[str, str], base_dir: Path
) -> None:
    """Copy typed values from string settings onto config."""
    known = {f.name for f in fields(KernelBuildConfig)} - {"arch", "kernel_root"}
    unknown = set(settings) - known
    if unknown:
        raise BuildConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    def path(value: str) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else base_dir / p

    for key, raw in settings.items():
        if key in ("unwind", "release", "stub", "include_local_symbols", "keep_intermediates"):
            setattr(config, key, parse_bool(raw, key))
        elif key in ("jobs", "relink_passes"):
            try:
                setattr(config, key, int(raw))
            except ValueError as e:
                raise BuildConfigError(f"Invalid integer for '{key}': {raw!r}") from e
        elif key in ("output_root", "build_dir", "target_dir", "toolchain_bin", "stub_dir"):
            setattr(config, key, path(raw))
        elif key == "aux_sources":
            config.aux_sources = [Path(item) for item in _split_list(raw)]
        elif key in ("cflags", "rustflags", "cargo_args"):
            try:
                setattr(config, key, shlex.split(raw))
            except ValueError as e:
                raise BuildConfigError(f"Invalid flag string for '{key}': {raw!r} ({e})") from e
        elif key in ("symbol_kinds", "exclude_symbol_prefixes"):
            setattr(config, key, tuple(_split_list(raw)))
        elif key == "cargo_toolchain":
            config.cargo_toolchain = raw or None
        else:
            setattr(config, key, raw or None)


def load_build_config(
    kernel_root: Path,
    arch: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> KernelBuildConfig:
    """
    Build the effective configuration for one build.

    Args:
        kernel_root: Kernel source root (where kforge.ini lives)
        arch: Architecture from the command line
        overrides: Typed command-line overrides (None values are ignored)
        environ: Environment mapping (os.environ when None)

    Returns:
        KernelBuildConfig

    Raises:
        BuildConfigError: If no architecture can be determined or a value is invalid
    """
    kernel_root = Path(kernel_root).resolve()
    environ = os.environ if environ is None else environ

    ini_path = kernel_root / CONFIG_FILENAME
    ini = KforgeConfig(ini_path) if ini_path.exists() else None

    arch = arch or environ.get("ARCH") or (ini.get_default_arch() if ini else None)
    if not arch:
        raise BuildConfigError(
            "No architecture specified. Use --arch, set ARCH, "
            + f"or add default_arch to {CONFIG_FILENAME}"
        )

    config = KernelBuildConfig(
        arch=arch,
        kernel_root=kernel_root,
        output_root=kernel_root.parent.parent,
    )
    if ini is not None:
        _apply_settings(config, ini.get_arch_config(arch), kernel_root)

    if "UNWIND_ENABLE" in environ:
        config.unwind = parse_bool(environ["UNWIND_ENABLE"], "UNWIND_ENABLE")

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise BuildConfigError(f"Unknown configuration override: {key}")
        setattr(config, key, value)

    return config
