"""
On-disk package layout

Installed packages live at {scope_root}/{name}/{version}/ in one of three
scopes. The local modules directory doubles as the place where links to
user-scope installs are created, at {project}/skald_modules/{name}.
"""

import os
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .config import Config
from .errors import InvalidVersionError
from .version import Version


class Scope(Enum):
    """Where a package is installed"""
    LOCAL = "local"    # {project}/skald_modules
    USER = "user"      # ~/.skald/packages
    GLOBAL = "global"  # shared system-wide directory

    def __str__(self) -> str:
        return self.value


class Linker(ABC):
    """Makes an installed package visible under another path"""

    @abstractmethod
    def link(self, target: Path, link_path: Path) -> None:
        """Create link_path pointing at target, replacing an existing link"""
        pass

    @abstractmethod
    def is_link(self, path: Path) -> bool:
        pass

    @abstractmethod
    def link_target(self, path: Path) -> Optional[Path]:
        """Where the link at path points, or None if it is not a link"""
        pass

    def unlink(self, path: Path) -> None:
        path.unlink()


class SymlinkLinker(Linker):
    """Filesystem symlinks"""

    def link(self, target: Path, link_path: Path) -> None:
        if link_path.is_symlink():
            link_path.unlink()
        link_path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(target, link_path, target_is_directory=True)

    def is_link(self, path: Path) -> bool:
        return path.is_symlink()

    def link_target(self, path: Path) -> Optional[Path]:
        if not path.is_symlink():
            return None
        target = Path(os.readlink(path))
        if not target.is_absolute():
            target = path.parent / target
        return target


class CopyLinker(Linker):
    """Copies the package for platforms without symlinks

    A marker file inside the copy records the original location, so the
    copy can be told apart from a real local install.
    """

    MARKER = ".skald-link"

    def link(self, target: Path, link_path: Path) -> None:
        if self.is_link(link_path):
            shutil.rmtree(link_path)
        shutil.copytree(target, link_path)
        (link_path / self.MARKER).write_text(str(target))

    def is_link(self, path: Path) -> bool:
        return (path / self.MARKER).is_file()

    def link_target(self, path: Path) -> Optional[Path]:
        if not self.is_link(path):
            return None
        return Path((path / self.MARKER).read_text().strip())

    def unlink(self, path: Path) -> None:
        shutil.rmtree(path)


def default_linker() -> Linker:
    if os.name == "nt":
        return CopyLinker()
    return SymlinkLinker()


class PathLayout:
    """Scope-specific package directories"""

    def __init__(
        self,
        roots: Dict[Scope, Path],
        cache_dir: Path,
        link_dir: Path,
        linker: Optional[Linker] = None
    ):
        self.roots = {scope: Path(path) for scope, path in roots.items()}
        self.cache_dir = Path(cache_dir)
        self.link_dir = Path(link_dir)
        self.linker = linker or default_linker()

    @classmethod
    def from_config(cls, config: Config, linker: Optional[Linker] = None) -> 'PathLayout':
        return cls(
            roots={
                Scope.LOCAL: config.local_modules_path,
                Scope.USER: config.packages_dir,
                Scope.GLOBAL: config.shared_dir,
            },
            cache_dir=config.cache_dir,
            link_dir=config.local_modules_path,
            linker=linker
        )

    def scope_root(self, scope: Scope) -> Path:
        return self.roots[scope]

    def package_dir(self, name: str, scope: Scope) -> Path:
        """Directory holding every installed version of name"""
        return self.roots[scope] / name

    def package_path(self, name: str, version: str, scope: Scope) -> Path:
        return self.roots[scope] / name / str(version)

    def cache_path(self, filename: str) -> Path:
        return self.cache_dir / filename

    def archive_name(self, name: str, version: str) -> str:
        return f"{name}-{version}.tar.gz"

    def link_path(self, name: str) -> Path:
        return self.link_dir / name

    def link_target(self, name: str, version: str) -> Path:
        """Install path a local link for name@version points at"""
        return self.package_path(name, version, Scope.USER)

    def is_installed(self, name: str, version: str, scope: Scope) -> bool:
        if scope is Scope.LOCAL and self.linker.is_link(self.package_dir(name, scope)):
            # A link into the user scope is not a local install
            return False
        return self.package_path(name, version, scope).is_dir()

    def has_package(self, name: str, scope: Scope) -> bool:
        """True when name has a real package directory in scope"""
        package_dir = self.package_dir(name, scope)
        if scope is Scope.LOCAL and self.linker.is_link(package_dir):
            return False
        return package_dir.is_dir()

    def installed_versions(self, name: str, scope: Scope) -> List[str]:
        """Installed versions of name, oldest first"""
        if not self.has_package(name, scope):
            return []
        versions = [p.name for p in self.package_dir(name, scope).iterdir() if p.is_dir()]
        return sorted(versions, key=version_sort_key)

    def installed_packages(self, scope: Scope) -> Dict[str, List[str]]:
        """name -> installed versions for every package in scope"""
        root = self.roots[scope]
        if not root.is_dir():
            return {}

        installed = {}
        for entry in sorted(root.iterdir()):
            if not entry.is_dir():
                continue
            versions = self.installed_versions(entry.name, scope)
            if versions:
                installed[entry.name] = versions
        return installed


def version_sort_key(text: str):
    """Sort key placing parseable versions in semver order, anything else first"""
    try:
        return (1, Version.parse(text), text)
    except InvalidVersionError:
        return (0, Version(0, 0, 0), text)
