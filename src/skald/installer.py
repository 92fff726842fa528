"""
Package installer for Skald

Handles downloading and installing packages into one of the install
scopes. Installs are fail-fast: the first failing package aborts the
rest. A package whose install directory already exists is skipped, so
re-running an install is cheap; note that an interrupted extraction also
leaves that directory behind.
"""

import logging
import shutil
import tarfile
from contextlib import closing
from pathlib import Path
from typing import List, Optional

from . import archive
from .errors import (
    InstallError,
    InvalidVersionError,
    NoCompatibleVersionError,
    PackageNotFoundError,
    PermissionDeniedError,
    RegistryError,
)
from .layout import PathLayout, Scope
from .registry import PackageInfo, Registry
from .resolver import Package, Resolution
from .version import Version, parse_constraint

logger = logging.getLogger(__name__)


class PackageInstaller:
    """Installs Skald packages"""

    def __init__(self, registry: Registry, layout: PathLayout):
        self.registry = registry
        self.layout = layout

    def install_resolution(self, resolution: Resolution, link: bool = False) -> List[Package]:
        """
        Install every resolved package into the user scope, dependencies first

        Args:
            resolution: Result of Resolver.resolve
            link: Also link each package into the local modules directory,
                except packages that already have a real local install

        Returns:
            The packages that were actually installed (not already present)
        """
        installed = []
        for package in resolution.get_resolution_order():
            if self._install_package(package, Scope.USER):
                installed.append(package)
            if not link:
                continue
            if self.layout.has_package(package.name, Scope.LOCAL):
                logger.info("%s has a local install; leaving it unlinked", package.name)
            else:
                self.create_symlinks(package)

        logger.info("Installed %d package(s)", len(installed))
        return installed

    def install_package_by_name(
        self,
        name: str,
        version_spec: str = "",
        scope: Scope = Scope.USER
    ) -> Package:
        """
        Install a single package (without its dependencies) by name

        version_spec may be empty or "latest", an exact version, or any
        constraint, in which case the newest matching registry version is
        used.
        """
        info = self._lookup(name, version_spec)
        package = Package.from_info(info)
        self._install_package(package, scope)
        return package

    def _lookup(self, name: str, version_spec: str) -> PackageInfo:
        spec = (version_spec or "").strip()

        if spec in ("", "latest"):
            info = self.registry.get_package_info(name, "latest")
            if info is None:
                raise PackageNotFoundError(name)
            return info

        try:
            version: Optional[Version] = Version.parse(spec)
        except InvalidVersionError:
            version = None

        if version is not None:
            info = self.registry.get_package_info(name, str(version))
            if info is None:
                raise NoCompatibleVersionError(name, str(version))
            return info

        constraint = parse_constraint(spec)
        versions = self.registry.get_package(name)
        if not versions:
            raise PackageNotFoundError(name)

        matching = [
            info for info in versions.values()
            if constraint.satisfies(Version.parse(info.version))
        ]
        if not matching:
            raise NoCompatibleVersionError(name, str(constraint))
        return max(matching, key=lambda info: Version.parse(info.version))

    def _install_package(self, package: Package, scope: Scope) -> bool:
        """Install one package unless it is already present; True if installed"""
        name, version = package.name, str(package.version)
        install_path = self.layout.package_path(name, version, scope)

        if self.layout.is_installed(name, version, scope):
            logger.info("%s already installed at %s", package, install_path)
            return False

        logger.info("Installing %s (%s)...", package, scope)

        archive_path = self.layout.cache_path(self.layout.archive_name(name, version))
        try:
            self._download(name, version, archive_path)
        except (RegistryError, OSError) as e:
            archive_path.unlink(missing_ok=True)
            raise InstallError(str(package), f"download failed: {e}") from e

        if scope is Scope.GLOBAL:
            staging = self.layout.cache_path(f"{name}-{version}-staging")
            try:
                self._extract(archive_path, staging, package)
                self.install_global(package, staging)
            finally:
                shutil.rmtree(staging, ignore_errors=True)
        else:
            self.install_from_archive(archive_path, package, scope)

        archive_path.unlink(missing_ok=True)

        logger.info("Installed %s at %s", package, install_path)
        return True

    def _download(self, name: str, version: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Downloading %s@%s to %s", name, version, dest)
        with closing(self.registry.download_package(name, version)) as stream:
            with open(dest, 'wb') as out:
                shutil.copyfileobj(stream, out)

    def install_from_archive(
        self,
        archive_path: Path,
        package: Package,
        scope: Scope = Scope.USER
    ) -> Path:
        """Extract a local .tar.gz archive into the package's scope directory"""
        archive_path = Path(archive_path)
        if not archive.is_archive(archive_path):
            raise InstallError(str(package), f"unsupported archive format: {archive_path.name}")

        install_path = self.layout.package_path(package.name, str(package.version), scope)

        if scope is Scope.LOCAL:
            package_dir = self.layout.package_dir(package.name, scope)
            if self.layout.linker.is_link(package_dir):
                # A real local install replaces the link to the user scope
                logger.info("Replacing link %s with a local install", package_dir)
                self.layout.linker.unlink(package_dir)

        self._make_dirs(install_path, scope, package)
        self._extract(archive_path, install_path, package)
        return install_path

    def _extract(self, archive_path: Path, dest: Path, package: Package) -> None:
        try:
            with open(archive_path, 'rb') as f:
                count = archive.extract(f, dest)
        except (OSError, tarfile.TarError) as e:
            raise InstallError(str(package), f"extraction failed: {e}") from e
        logger.debug("Extracted %d entries to %s", count, dest)

    def _make_dirs(self, path: Path, scope: Scope, package: Package) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            if scope is Scope.GLOBAL:
                raise PermissionDeniedError(str(path)) from e
            raise InstallError(str(package), f"cannot create {path}: {e}") from e

    def install_global(self, package: Package, source_dir: Path) -> Path:
        """Copy an extracted package tree into the shared global directory"""
        install_path = self.layout.package_path(package.name, str(package.version), Scope.GLOBAL)

        if install_path.exists():
            logger.info("%s already installed globally at %s", package, install_path)
            return install_path

        self._make_dirs(install_path, Scope.GLOBAL, package)
        try:
            shutil.copytree(source_dir, install_path, dirs_exist_ok=True)
        except PermissionError as e:
            raise PermissionDeniedError(str(install_path)) from e
        except (OSError, shutil.Error) as e:
            raise InstallError(str(package), f"copy to {install_path} failed: {e}") from e

        logger.info("%s installed globally at %s", package, install_path)
        return install_path

    def create_symlinks(self, package: Package) -> Path:
        """Link the user-scope install into the local modules directory"""
        target = self.layout.link_target(package.name, str(package.version))
        link_path = self.layout.link_path(package.name)
        linker = self.layout.linker

        if (link_path.exists() or link_path.is_symlink()) and not linker.is_link(link_path):
            raise InstallError(
                str(package), f"{link_path} is a local install; not replacing it with a link"
            )

        try:
            linker.link(target, link_path)
        except OSError as e:
            raise InstallError(str(package), f"cannot link {link_path}: {e}") from e

        logger.debug("Linked %s -> %s", link_path, target)
        return link_path
