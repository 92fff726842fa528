"""
Tests for package removal and cache cleaning
"""

import shutil
import tempfile
import unittest
from pathlib import Path

from skald.errors import NotInstalledError
from skald.layout import PathLayout, Scope, SymlinkLinker
from skald.manifest import Dependency, Manifest
from skald.uninstaller import PackageUninstaller


class TestUninstaller(unittest.TestCase):
    """Test removing installed packages"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.project_dir = self.temp_dir / "project"
        self.project_dir.mkdir()
        self.layout = PathLayout(
            roots={
                Scope.LOCAL: self.project_dir / "skald_modules",
                Scope.USER: self.temp_dir / "home" / "packages",
                Scope.GLOBAL: self.temp_dir / "shared",
            },
            cache_dir=self.temp_dir / "home" / "cache",
            link_dir=self.project_dir / "skald_modules",
            linker=SymlinkLinker()
        )
        self.uninstaller = PackageUninstaller(self.layout)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def install(self, name: str, version: str, scope: Scope = Scope.USER) -> Path:
        path = self.layout.package_path(name, version, scope)
        path.mkdir(parents=True)
        (path / f"{name}.sk").write_text(version)
        return path

    def link(self, name: str, version: str) -> Path:
        link_path = self.layout.link_path(name)
        self.layout.linker.link(self.layout.link_target(name, version), link_path)
        return link_path

    def test_removing_only_version_cleans_up(self):
        self.install("lib", "1.0.0")
        link = self.link("lib", "1.0.0")

        removed = self.uninstaller.uninstall_package("lib", "1.0.0")

        self.assertEqual(removed, self.layout.package_path("lib", "1.0.0", Scope.USER))
        self.assertFalse(removed.exists())
        self.assertFalse(self.layout.package_dir("lib", Scope.USER).exists())
        self.assertFalse(link.is_symlink())

    def test_removing_one_of_several_versions(self):
        self.install("lib", "1.0.0")
        self.install("lib", "2.0.0")
        link = self.link("lib", "2.0.0")

        self.uninstaller.uninstall_package("lib", "1.0.0", Scope.USER)

        self.assertEqual(self.layout.installed_versions("lib", Scope.USER), ["2.0.0"])
        # The link points at a version that is still installed
        self.assertTrue(link.is_symlink())

    def test_removing_linked_version_drops_link(self):
        self.install("lib", "1.0.0")
        self.install("lib", "2.0.0")
        link = self.link("lib", "2.0.0")

        self.uninstaller.uninstall_package("lib", "2.0.0", Scope.USER)

        self.assertFalse(link.is_symlink())
        self.assertTrue(self.layout.package_dir("lib", Scope.USER).exists())

    def test_remove_all_versions(self):
        self.install("lib", "1.0.0")
        self.install("lib", "1.5.0")
        link = self.link("lib", "1.5.0")

        removed = self.uninstaller.uninstall_package("lib")

        self.assertEqual(removed, self.layout.package_dir("lib", Scope.USER))
        self.assertFalse(removed.exists())
        self.assertFalse(link.is_symlink())

    def test_not_installed(self):
        with self.assertRaises(NotInstalledError):
            self.uninstaller.uninstall_package("ghost", "1.0.0")
        with self.assertRaises(NotInstalledError):
            self.uninstaller.uninstall_package("ghost")

        self.install("lib", "1.0.0")
        with self.assertRaises(NotInstalledError) as ctx:
            self.uninstaller.uninstall_package("lib", "9.9.9")
        self.assertEqual(ctx.exception.version, "9.9.9")

    def test_local_scope_preferred(self):
        local = self.install("lib", "1.0.0", Scope.LOCAL)
        user = self.install("lib", "1.0.0", Scope.USER)

        self.uninstaller.uninstall_package("lib", "1.0.0")
        self.assertFalse(local.exists())
        self.assertTrue(user.exists())

        self.uninstaller.uninstall_package("lib", "1.0.0")
        self.assertFalse(user.exists())

    def test_global_scope(self):
        path = self.install("lib", "1.0.0", Scope.GLOBAL)

        with self.assertRaises(NotInstalledError):
            self.uninstaller.uninstall_package("lib", "1.0.0")

        self.uninstaller.uninstall_package("lib", "1.0.0", Scope.GLOBAL)
        self.assertFalse(path.exists())

    def test_uninstall_from_manifest(self):
        self.install("ranged", "1.0.0")
        self.install("ranged", "1.1.0")
        self.install("exact", "2.0.0")
        self.install("exact", "3.0.0")
        self.install("tool", "0.1.0")
        self.link("ranged", "1.1.0")

        Manifest(
            name="app",
            version="1.0.0",
            dependencies={
                "ranged": Dependency("ranged", "^1.0.0"),
                "exact": Dependency("exact", "2.0.0"),
                "missing": Dependency("missing", "1.0.0"),
            },
            dev_dependencies={"tool": Dependency("tool", "*", dev=True)}
        ).save(self.project_dir)

        with self.assertLogs("skald.uninstaller", level="WARNING") as logs:
            removed = self.uninstaller.uninstall_from_manifest(self.project_dir)

        self.assertEqual(removed, 3)
        self.assertEqual(len(logs.records), 1)
        self.assertIn("missing", logs.output[0])

        self.assertEqual(self.layout.installed_packages(Scope.USER), {"exact": ["3.0.0"]})
        # Emptied modules directory is removed as well
        self.assertFalse((self.project_dir / "skald_modules").exists())

    def test_manifest_elsewhere_cleans_configured_modules_dir(self):
        self.install("lib", "1.0.0")
        self.link("lib", "1.0.0")

        other_dir = self.temp_dir / "elsewhere"
        (other_dir / "skald_modules").mkdir(parents=True)
        Manifest(
            name="app",
            version="1.0.0",
            dependencies={"lib": Dependency("lib", "1.0.0")}
        ).save(other_dir)

        self.uninstaller.uninstall_from_manifest(other_dir)

        self.assertFalse((self.project_dir / "skald_modules").exists())
        # An unrelated directory with the same name is left alone
        self.assertTrue((other_dir / "skald_modules").is_dir())

    def test_uninstall_from_manifest_without_dependencies(self):
        Manifest(name="app", version="1.0.0").save(self.project_dir)
        self.assertEqual(self.uninstaller.uninstall_from_manifest(self.project_dir), 0)

    def test_list_installed_packages(self):
        self.install("a", "1.0.0", Scope.LOCAL)
        self.install("b", "2.0.0")
        self.install("c", "3.0.0", Scope.GLOBAL)

        self.assertEqual(
            self.uninstaller.list_installed_packages(),
            {Scope.LOCAL: {"a": ["1.0.0"]}, Scope.USER: {"b": ["2.0.0"]}}
        )
        self.assertEqual(
            self.uninstaller.list_installed_packages(Scope.GLOBAL),
            {Scope.GLOBAL: {"c": ["3.0.0"]}}
        )


class TestCleanCache(unittest.TestCase):
    """Test clearing the download cache"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.cache_dir = self.temp_dir / "cache"
        self.layout = PathLayout(
            roots={scope: self.temp_dir / scope.value for scope in Scope},
            cache_dir=self.cache_dir,
            link_dir=self.temp_dir / "modules"
        )
        self.uninstaller = PackageUninstaller(self.layout)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_missing_cache_is_clean(self):
        self.assertEqual(self.uninstaller.clean_cache(), 0)

    def test_empty_cache(self):
        self.cache_dir.mkdir()
        self.assertEqual(self.uninstaller.clean_cache(), 0)

    def test_removes_everything(self):
        (self.cache_dir / "staging" / "src").mkdir(parents=True)
        (self.cache_dir / "lib-1.0.0.tar.gz").write_bytes(b"x")
        (self.cache_dir / "staging" / "src" / "a.sk").write_text("a")

        self.assertEqual(self.uninstaller.clean_cache(), 2)
        self.assertEqual(list(self.cache_dir.iterdir()), [])


if __name__ == "__main__":
    unittest.main()
