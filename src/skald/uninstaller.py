"""
Package uninstaller for Skald

Removing a single package is fail-fast and reports a missing package as
NotInstalledError. Bulk removal from a manifest and cache cleaning are
best-effort: each failure is logged as a warning and the remaining items
are still processed.
"""

import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import NotInstalledError, SkaldError
from .layout import PathLayout, Scope
from .manifest import Manifest

logger = logging.getLogger(__name__)

# A dependency spec containing any of these names a range, not one version
RANGE_CHARS = "*^~<>=,"


class PackageUninstaller:
    """Removes installed Skald packages"""

    def __init__(self, layout: PathLayout):
        self.layout = layout

    def uninstall_package(
        self,
        name: str,
        version: str = "",
        scope: Optional[Scope] = None
    ) -> Path:
        """
        Remove one version of a package, or every version if version is empty

        With no scope, a local install is preferred over a user install,
        matching the order imports are searched in.

        Returns the removed directory.
        """
        if not version:
            return self.uninstall_all_versions(name, scope)
        return self.uninstall_specific_version(name, version, scope)

    def _pick_scope(self, name: str, version: str, scope: Optional[Scope]) -> Scope:
        if scope is not None:
            return scope
        if version:
            local = self.layout.is_installed(name, version, Scope.LOCAL)
        else:
            local = self.layout.has_package(name, Scope.LOCAL)
        return Scope.LOCAL if local else Scope.USER

    def uninstall_specific_version(
        self,
        name: str,
        version: str,
        scope: Optional[Scope] = None
    ) -> Path:
        scope = self._pick_scope(name, version, scope)
        package_path = self.layout.package_path(name, version, scope)

        if not self.layout.is_installed(name, version, scope):
            raise NotInstalledError(name, version, str(scope))

        logger.info("Removing %s@%s (%s)...", name, version, scope)
        shutil.rmtree(package_path)

        self._cleanup_symlink(name, package_path)

        package_dir = package_path.parent
        if not any(package_dir.iterdir()):
            package_dir.rmdir()

        logger.info("Removed %s@%s", name, version)
        return package_path

    def uninstall_all_versions(self, name: str, scope: Optional[Scope] = None) -> Path:
        scope = self._pick_scope(name, "", scope)
        package_dir = self.layout.package_dir(name, scope)

        if not self.layout.has_package(name, scope):
            raise NotInstalledError(name, scope=str(scope))

        versions = self.layout.installed_versions(name, scope)
        if not versions:
            raise NotInstalledError(name, scope=f"{scope}, no versions found")

        logger.info("Removing all versions of %s (%s)...", name, scope)
        for version in versions:
            logger.info("  Removing %s@%s...", name, version)

        shutil.rmtree(package_dir)
        self._cleanup_symlink(name, package_dir)

        logger.info("Removed %d version(s) of %s", len(versions), name)
        return package_dir

    def _cleanup_symlink(self, name: str, removed: Path) -> None:
        """Drop the local link for name if it now dangles or pointed into removed"""
        link_path = self.layout.link_path(name)
        linker = self.layout.linker
        if not linker.is_link(link_path):
            return

        target = linker.link_target(link_path)
        removed = removed.absolute()
        if target is None:
            return
        target = target.absolute()
        if target.exists() and target != removed and removed not in target.parents:
            return

        linker.unlink(link_path)
        logger.debug("Removed link %s", link_path)

    def uninstall_from_manifest(self, path: Union[str, Path]) -> int:
        """
        Remove every runtime and dev dependency listed in a manifest

        A dependency whose spec names a range has all of its versions
        removed; an exact spec removes only that version.

        Returns the number of dependencies removed.
        """
        path = Path(path)
        manifest = Manifest.load(path)

        deps = manifest.get_all_dependencies(include_dev=True)
        if not deps:
            logger.info("No dependencies to remove")
            return 0

        logger.info("Removing dependencies for %s...", manifest.name)

        removed = 0
        for name, dep in deps.items():
            spec = dep.version_spec.strip()
            try:
                if not spec or any(c in spec for c in RANGE_CHARS):
                    self.uninstall_all_versions(name)
                else:
                    self.uninstall_specific_version(name, spec)
            except (SkaldError, OSError) as e:
                logger.warning("Failed to remove %s: %s", name, e)
                continue
            removed += 1

        modules_dir = self.layout.link_dir
        if modules_dir.is_dir() and not any(modules_dir.iterdir()):
            modules_dir.rmdir()
            logger.info("Removed empty %s directory", modules_dir.name)

        logger.info("Finished removing dependencies for %s", manifest.name)
        return removed

    def clean_cache(self) -> int:
        """Delete everything in the download cache; returns entries removed"""
        cache_dir = self.layout.cache_dir
        if not cache_dir.exists():
            logger.info("Cache directory does not exist")
            return 0

        entries = sorted(cache_dir.iterdir())
        if not entries:
            logger.info("Cache is already empty")
            return 0

        removed = 0
        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                logger.warning("Failed to remove %s: %s", entry.name, e)
                continue
            removed += 1
            logger.info("  Removed %s", entry.name)

        logger.info("Cleaned cache (%d item(s) removed)", removed)
        return removed

    def list_installed_packages(self, scope: Optional[Scope] = None) -> Dict[Scope, Dict[str, List[str]]]:
        """Installed packages by scope; with no scope, the local and user scopes"""
        scopes = [scope] if scope is not None else [Scope.LOCAL, Scope.USER]
        return {s: self.layout.installed_packages(s) for s in scopes}
