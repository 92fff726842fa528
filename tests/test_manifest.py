"""
Tests for Skald package manifests
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from skald.errors import InvalidConstraintError, ManifestError
from skald.manifest import MANIFEST_FILE, Dependency, Manifest, init_manifest
from skald.version import Version


class TestManifest(unittest.TestCase):
    """Test package manifest handling"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_create_manifest(self):
        manifest = Manifest(
            name="test-package",
            version="1.0.0",
            description="A test package",
            authors=["Test Author"]
        )

        self.assertEqual(manifest.name, "test-package")
        self.assertEqual(manifest.version, "1.0.0")
        self.assertEqual(manifest.license, "MIT")
        self.assertEqual(manifest.main, "src/main.sk")

    def test_manifest_validation(self):
        manifest = Manifest(name="valid-pkg", version="1.0.0")
        self.assertEqual(manifest.validate(), [])

        manifest = Manifest(name="invalid name!", version="1.0.0")
        self.assertGreater(len(manifest.validate()), 0)

        manifest = Manifest(name="valid-pkg", version="invalid")
        self.assertGreater(len(manifest.validate()), 0)

        manifest = Manifest(
            name="valid-pkg",
            version="1.0.0",
            dependencies={"bad": Dependency("bad", "^nope")}
        )
        errors = manifest.validate()
        self.assertEqual(len(errors), 1)
        self.assertIn("bad", errors[0])

    def test_dependency_parsing(self):
        dep = Dependency.from_dict("test-dep", "^1.0.0")
        self.assertEqual(dep.name, "test-dep")
        self.assertEqual(dep.version_spec, "^1.0.0")
        self.assertFalse(dep.dev)

        dep = Dependency.from_dict("complex-dep", {"version": ">=2.0.0", "dev": True})
        self.assertEqual(dep.version_spec, ">=2.0.0")
        self.assertTrue(dep.dev)

    def test_dependency_matches_version(self):
        dep = Dependency("lib", "~1.2.0")
        self.assertTrue(dep.matches_version("1.2.5"))
        self.assertFalse(dep.matches_version(Version(1, 3, 0)))

    def test_invalid_dependency_constraint_names_dependency(self):
        with self.assertRaises(InvalidConstraintError) as ctx:
            Dependency("broken", ">=x").constraint()
        self.assertIn("broken", str(ctx.exception))

    def test_manifest_serialization(self):
        manifest = Manifest(
            name="test-pkg",
            version="1.2.3",
            description="Test package",
            dependencies={
                "dep1": Dependency("dep1", "^1.0.0"),
                "dep2": Dependency("dep2", "~2.1.0")
            },
            dev_dependencies={"dev1": Dependency("dev1", "*", dev=True)}
        )

        data = manifest.to_dict()
        self.assertEqual(data["name"], "test-pkg")
        self.assertEqual(data["dependencies"]["dep1"], "^1.0.0")
        self.assertIn("dev1", data["devDependencies"])

        manifest2 = Manifest.from_dict(data)
        self.assertEqual(manifest2.name, manifest.name)
        self.assertEqual(manifest2.version, manifest.version)
        self.assertEqual(len(manifest2.dependencies), 2)
        self.assertTrue(manifest2.dev_dependencies["dev1"].dev)

    def test_save_and_load(self):
        manifest = Manifest(name="saved", version="0.2.0", keywords=["a", "b"])
        path = manifest.save(self.temp_dir)
        self.assertEqual(path, self.temp_dir / MANIFEST_FILE)

        loaded = Manifest.load(self.temp_dir)
        self.assertEqual(loaded.name, "saved")
        self.assertEqual(loaded.keywords, ["a", "b"])

        # A file path works as well as its directory
        self.assertEqual(Manifest.load(path).version, "0.2.0")

    def test_load_missing(self):
        with self.assertRaises(FileNotFoundError):
            Manifest.load(self.temp_dir)

    def test_load_malformed(self):
        (self.temp_dir / MANIFEST_FILE).write_text("{not json")
        with self.assertRaises(ManifestError):
            Manifest.load(self.temp_dir)

        (self.temp_dir / MANIFEST_FILE).write_text(json.dumps({"name": "no-version"}))
        with self.assertRaises(ManifestError):
            Manifest.load(self.temp_dir)

    def test_dev_dependencies_override_runtime(self):
        manifest = Manifest(
            name="app",
            version="1.0.0",
            dependencies={"lib": Dependency("lib", "^1.0.0")},
            dev_dependencies={"lib": Dependency("lib", "^1.5.0", dev=True)}
        )

        self.assertEqual(manifest.get_all_dependencies()["lib"].version_spec, "^1.0.0")
        self.assertEqual(
            manifest.get_all_dependencies(include_dev=True)["lib"].version_spec, "^1.5.0"
        )

        constraints = manifest.dependency_constraints(include_dev=True)
        self.assertFalse(constraints["lib"].satisfies(Version(1, 4, 0)))

    def test_init_manifest_defaults(self):
        manifest = init_manifest(self.temp_dir / "my-app")

        self.assertEqual(manifest.name, "my-app")
        self.assertEqual(manifest.version, "0.0.1")
        self.assertEqual(manifest.main, "src/main.sk")
        self.assertEqual(manifest.validate(), [])

        manifest = init_manifest(self.temp_dir, name="lib", version="2.0.0")
        self.assertEqual((manifest.name, manifest.version), ("lib", "2.0.0"))


if __name__ == "__main__":
    unittest.main()
