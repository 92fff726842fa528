"""
Skald Package Manager

A package manager for distributing and managing Skald packages.
"""

__version__ = "0.1.0"

from .errors import (
    SkaldError,
    ResolutionError,
    PackageNotFoundError,
    NoCompatibleVersionError,
    VersionConflictError,
    CircularDependencyError,
    NotInstalledError,
    InstallError,
)
from .version import Version, Constraint, parse_constraint
from .manifest import Manifest, Dependency
from .resolver import Package, Resolution, Resolver
from .registry import Registry, LocalRegistry, RemoteRegistry, PackageInfo
from .layout import PathLayout, Scope
from .imports import ImportResolver
from .installer import PackageInstaller
from .uninstaller import PackageUninstaller
from .package_manager import PackageManager

__all__ = [
    'SkaldError',
    'ResolutionError',
    'PackageNotFoundError',
    'NoCompatibleVersionError',
    'VersionConflictError',
    'CircularDependencyError',
    'NotInstalledError',
    'InstallError',
    'Version',
    'Constraint',
    'parse_constraint',
    'Manifest',
    'Dependency',
    'Package',
    'Resolution',
    'Resolver',
    'Registry',
    'LocalRegistry',
    'RemoteRegistry',
    'PackageInfo',
    'PathLayout',
    'Scope',
    'ImportResolver',
    'PackageInstaller',
    'PackageUninstaller',
    'PackageManager',
]
