"""
Main package manager for Skald

Provides high-level interface for package management operations.
"""

import logging
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from . import archive
from .auth import AuthService
from .config import AuthConfig, Config
from .errors import PackageNotFoundError, RegistryError, SkaldError
from .imports import ImportResolver
from .installer import PackageInstaller
from .layout import Linker, PathLayout, Scope
from .manifest import MANIFEST_FILE, Dependency, Manifest, init_manifest
from .registry import PackageInfo, Registry, RemoteRegistry, create_registry
from .resolver import Package, Resolver, populate_from_registry
from .uninstaller import PackageUninstaller
from .version import RangeConstraint, parse_constraint

logger = logging.getLogger(__name__)


class PackageManager:
    """High-level package manager interface"""

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[Registry] = None,
        linker: Optional[Linker] = None
    ):
        self.config = config or Config.from_env()
        self.config.init()
        self.registry = registry or create_registry(
            self.config.registry_settings(), self.config.load_auth()
        )
        self.layout = PathLayout.from_config(self.config, linker)
        self.installer = PackageInstaller(self.registry, self.layout)
        self.uninstaller = PackageUninstaller(self.layout)
        self.auth = AuthService(self.config)
        self.imports = ImportResolver(self.layout)

    @property
    def project_root(self) -> Path:
        return self.config.project_root

    def _project_manifest(self) -> Optional[Manifest]:
        try:
            return Manifest.load(self.project_root)
        except FileNotFoundError:
            return None

    def init(self, path: Optional[Path] = None, **kwargs) -> Manifest:
        """Initialize a new package in the given directory"""
        path = Path(path) if path else self.project_root
        manifest_path = path / MANIFEST_FILE

        if manifest_path.exists():
            print(f"{MANIFEST_FILE} already exists at {path}")
            return Manifest.load(path)

        path.mkdir(parents=True, exist_ok=True)
        manifest = init_manifest(path, **kwargs)

        if manifest.main:
            main_path = path / manifest.main
            main_path.parent.mkdir(parents=True, exist_ok=True)
            if not main_path.exists():
                main_path.write_text(f'# {manifest.name}\n\nprint("Hello from {manifest.name}!")\n')

        gitignore_path = path / ".gitignore"
        if not gitignore_path.exists():
            gitignore_path.write_text(f"{self.config.modules_dir}/\n.skald_imports\n*.tar.gz\n")

        manifest.save(path)

        print(f"Initialized new Skald package: {manifest.name}")
        print(f"  Version: {manifest.version}")
        print(f"  Main: {manifest.main}")

        return manifest

    def install(
        self,
        package: Optional[str] = None,
        version: Optional[str] = None,
        global_: bool = False,
        save: bool = True,
        save_dev: bool = False
    ) -> List[Package]:
        """
        Install a package and its dependencies, or everything the project needs

        With a package name, the package is resolved together with its
        dependencies and installed into the user scope (or, with global_,
        just the package into the shared scope). Without one, every
        runtime and dev dependency of the project manifest is installed.

        Returns the packages that were newly installed.
        """
        if not package:
            return self._install_manifest()

        spec = (version or "").strip()

        if global_:
            installed = self.installer.install_package_by_name(package, spec, Scope.GLOBAL)
            print(f"Installed {installed} globally")
            return [installed]

        constraint = RangeConstraint() if spec in ("", "latest") else parse_constraint(spec)

        resolver = Resolver()
        populate_from_registry(resolver, self.registry, [package])
        resolution = resolver.resolve({package: constraint})

        manifest = self._project_manifest()
        installed = self.installer.install_resolution(resolution, link=manifest is not None)
        selected = resolution[package]
        print(f"Installed {selected} ({len(installed)} new package(s))")

        if save or save_dev:
            if manifest is None:
                logger.warning("No %s found, %s installed but not saved", MANIFEST_FILE, selected)
            else:
                self._save_dependency(manifest, package, f"^{selected.version}", save_dev)

        return installed

    def _install_manifest(self) -> List[Package]:
        manifest = self._project_manifest()
        if manifest is None:
            raise FileNotFoundError(f"No {MANIFEST_FILE} found in {self.project_root}")

        deps = manifest.get_all_dependencies(include_dev=True)
        if not deps:
            print("No dependencies to install")
            return []

        resolver = Resolver()
        populate_from_registry(resolver, self.registry, deps)
        resolution = resolver.resolve_manifest(manifest, include_dev=True)

        installed = self.installer.install_resolution(resolution, link=True)
        self.imports.write_import_config(self.project_root)

        print(f"Installed {len(installed)} package(s) for {manifest.name}")
        return installed

    def _save_dependency(self, manifest: Manifest, name: str, spec: str, dev: bool) -> None:
        dep = Dependency(name=name, version_spec=spec, dev=dev)
        if dev:
            manifest.dev_dependencies[name] = dep
        else:
            manifest.dependencies[name] = dep

        manifest.save(self.project_root)
        print(f"Added {name}@{spec} to {'dev ' if dev else ''}dependencies")

    def uninstall(
        self,
        package: Optional[str] = None,
        version: Optional[str] = None,
        global_: bool = False,
        save: bool = True
    ) -> None:
        """Uninstall a package, or every dependency of the project"""
        if not package:
            removed = self.uninstaller.uninstall_from_manifest(self.project_root)
            print(f"Removed {removed} package(s)")
            return

        scope = Scope.GLOBAL if global_ else None
        removed_path = self.uninstaller.uninstall_package(package, version or "", scope)
        print(f"Removed {removed_path}")

        if not save:
            return

        manifest = self._project_manifest()
        if manifest is None:
            return

        runtime = manifest.dependencies.pop(package, None)
        dev = manifest.dev_dependencies.pop(package, None)
        if runtime or dev:
            manifest.save(self.project_root)
            print(f"Removed {package} from dependencies")

    def list(self, global_: bool = False) -> Dict[Scope, Dict[str, List[str]]]:
        """List installed packages"""
        if global_:
            installed = {Scope.GLOBAL: self.layout.installed_packages(Scope.GLOBAL)}
        else:
            manifest = self._project_manifest()
            if manifest is not None:
                print(f"\nProject: {manifest.name}@{manifest.version}")
                print("\nDependencies:")
                for name, dep in manifest.dependencies.items():
                    print(f"  {name}: {dep.version_spec}")

                if manifest.dev_dependencies:
                    print("\nDev Dependencies:")
                    for name, dep in manifest.dev_dependencies.items():
                        print(f"  {name}: {dep.version_spec}")

            installed = self.uninstaller.list_installed_packages()

        for scope, packages in installed.items():
            print(f"\nInstalled ({scope}):")
            if not packages:
                print("  (none)")
            for name, versions in packages.items():
                print(f"  {name}: {', '.join(versions)}")

        return installed

    def search(self, query: str, limit: int = 20) -> List[PackageInfo]:
        """Search for packages in the registry"""
        results = self.registry.search(query, limit)

        if not results:
            print(f"No packages found matching '{query}'")
            return results

        print(f"\nFound {len(results)} packages:\n")

        for pkg in results:
            print(f"{pkg.name}@{pkg.version}")
            if pkg.description:
                print(f"  {pkg.description}")
            print(f"  Published: {pkg.published_at.strftime('%Y-%m-%d') if pkg.published_at else 'Unknown'}")
            print()

        return results

    def info(self, package: Optional[str] = None, version: Optional[str] = None) -> PackageInfo:
        """Show a registry package, or the current project when no name is given"""
        if package:
            info = self.registry.get_package_info(package, version or "latest")
            if info is None:
                raise PackageNotFoundError(package)
        else:
            manifest = self._project_manifest()
            if manifest is None:
                raise FileNotFoundError(f"No {MANIFEST_FILE} found in {self.project_root}")
            info = PackageInfo.from_manifest(manifest)

        manifest = info.manifest
        print(f"{info.name}@{info.version}")
        if manifest.description:
            print(f"  {manifest.description}")
        if manifest.authors:
            print(f"  Authors: {', '.join(manifest.authors)}")
        print(f"  License: {manifest.license}")
        if manifest.homepage:
            print(f"  Homepage: {manifest.homepage}")
        if manifest.dependencies:
            print("  Dependencies:")
            for name, dep in manifest.dependencies.items():
                print(f"    {name}: {dep.version_spec}")
        if info.published_at:
            print(f"  Published: {info.published_at.strftime('%Y-%m-%d')}")

        return info

    def publish(self, path: Optional[Path] = None) -> PackageInfo:
        """Pack a package directory and publish it to the registry"""
        path = Path(path) if path else self.project_root
        manifest = Manifest.load(path)

        errors = manifest.validate()
        if errors:
            raise SkaldError("package validation failed: " + "; ".join(errors))

        if self.registry.get_package_info(manifest.name, manifest.version) is not None:
            raise RegistryError(f"version {manifest.version} of {manifest.name} already exists")

        if isinstance(self.registry, RemoteRegistry):
            self.auth.validate()
            self._apply_auth(self.auth.auth_config())

        info = PackageInfo.from_manifest(manifest)
        print(f"Publishing {info.name}@{info.version}...")

        with tempfile.TemporaryDirectory() as tmp:
            archive_path = archive.pack(path, Path(tmp) / f"{info.name}-{info.version}.tar.gz")
            self.registry.publish_package(archive_path, info)

        print(f"Published {info.name}@{info.version}")
        return info

    def login(self, username: str, password: str) -> AuthConfig:
        auth = self.auth.login(username, password)
        self._apply_auth(auth)
        print(f"Logged in as {auth.username}")
        return auth

    def logout(self) -> None:
        self.auth.logout()
        print("Logged out")

    def _apply_auth(self, auth: AuthConfig) -> None:
        if not isinstance(self.registry, RemoteRegistry):
            return
        if auth.auth_type == "token":
            self.registry.set_api_key(auth.api_key)
        else:
            self.registry.set_basic_auth(auth.username, auth.password)

    def cache_clean(self) -> int:
        """Clear the package download cache"""
        removed = self.uninstaller.clean_cache()
        print(f"Removed {removed} cached item(s)")
        return removed
