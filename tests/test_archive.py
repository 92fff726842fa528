"""
Tests for package archives
"""

import io
import os
import shutil
import tarfile
import tempfile
import unittest
from pathlib import Path

from skald import archive


def tar_bytes(*members) -> io.BytesIO:
    """Build an in-memory .tar.gz from (TarInfo, data) pairs"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for info, data in members:
            if data is not None:
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
            else:
                tar.addfile(info)
    buf.seek(0)
    return buf


def file_member(name: str, mode: int = 0o644) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.mode = mode
    return info


class TestPack(unittest.TestCase):
    """Test building archives"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.source = self.temp_dir / "pkg"
        (self.source / "src").mkdir(parents=True)
        (self.source / "src" / "main.sk").write_text("print(1)\n")
        (self.source / "skald.json").write_text("{}")
        (self.source / ".git").mkdir()
        (self.source / ".git" / "HEAD").write_text("ref")
        (self.source / "skald_modules" / "dep").mkdir(parents=True)
        (self.source / "src" / "__pycache__").mkdir()
        (self.source / "old.tar.gz").write_bytes(b"x")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_pack_excludes_defaults(self):
        dest = archive.pack(self.source, self.temp_dir / "out" / "pkg-1.0.0.tar.gz")

        with tarfile.open(dest, "r:gz") as tar:
            names = set(tar.getnames())

        self.assertEqual(names, {"skald.json", "src", "src/main.sk"})

    def test_pack_inside_source_skips_itself(self):
        dest = archive.pack(self.source, self.source / "self.tgz", exclude=())

        with tarfile.open(dest, "r:gz") as tar:
            self.assertNotIn("self.tgz", tar.getnames())

    def test_is_archive(self):
        self.assertTrue(archive.is_archive("a-1.0.0.tar.gz"))
        self.assertTrue(archive.is_archive(Path("a.tgz")))
        self.assertFalse(archive.is_archive("a.zip"))


class TestExtract(unittest.TestCase):
    """Test extracting archives"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.dest = self.temp_dir / "dest"

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_extract_files_and_dirs(self):
        directory = tarfile.TarInfo("lib")
        directory.type = tarfile.DIRTYPE
        stream = tar_bytes(
            (directory, None),
            (file_member("lib/util.sk"), b"util"),
            (file_member("bin/run", 0o755), b"#!/bin/sh\n"),
        )

        count = archive.extract(stream, self.dest)

        self.assertEqual(count, 3)
        self.assertEqual((self.dest / "lib" / "util.sk").read_text(), "util")
        self.assertTrue((self.dest / "lib").is_dir())
        self.assertEqual(os.stat(self.dest / "bin" / "run").st_mode & 0o777, 0o755)

    def test_extract_truncates_existing_files(self):
        self.dest.mkdir()
        (self.dest / "a.sk").write_text("a much longer original body")

        archive.extract(tar_bytes((file_member("a.sk"), b"new")), self.dest)

        self.assertEqual((self.dest / "a.sk").read_text(), "new")

    def test_extract_skips_other_member_types(self):
        link = tarfile.TarInfo("link")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"

        count = archive.extract(tar_bytes((link, None), (file_member("ok.sk"), b"ok")), self.dest)

        self.assertEqual(count, 1)
        self.assertFalse((self.dest / "link").exists())
        self.assertFalse((self.dest / "link").is_symlink())

    def test_extract_rejects_escaping_paths(self):
        stream = tar_bytes((file_member("../evil.sk"), b"evil"))

        with self.assertRaises(archive.UnsafeArchiveError):
            archive.extract(stream, self.dest)
        self.assertFalse((self.temp_dir / "evil.sk").exists())

    def test_extract_corrupt_stream(self):
        with self.assertRaises(tarfile.TarError):
            archive.extract(io.BytesIO(b"definitely not gzip"), self.dest)

    def test_pack_then_extract(self):
        source = self.temp_dir / "src"
        (source / "nested").mkdir(parents=True)
        (source / "nested" / "mod.sk").write_text("mod")
        packed = archive.pack(source, self.temp_dir / "p.tar.gz")

        with open(packed, "rb") as f:
            archive.extract(f, self.dest)

        self.assertEqual((self.dest / "nested" / "mod.sk").read_text(), "mod")


if __name__ == "__main__":
    unittest.main()
