"""
Configuration for kforge.

This module provides the architecture profiles and the kforge.ini parser.
"""

from .arch_profiles import (
    ARCH_PROFILES,
    SUPPORTED_ARCHITECTURES,
    ArchitectureProfile,
    UnsupportedArchitectureError,
    get_arch_profile,
    resolve_profile,
)
from .build_config import BuildConfigError, KernelBuildConfig, KforgeConfig, load_build_config

__all__ = [
    'ARCH_PROFILES',
    'SUPPORTED_ARCHITECTURES',
    'ArchitectureProfile',
    'UnsupportedArchitectureError',
    'get_arch_profile',
    'resolve_profile',
    'BuildConfigError',
    'KernelBuildConfig',
    'KforgeConfig',
    'load_build_config',
]
