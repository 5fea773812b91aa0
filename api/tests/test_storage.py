"""
Tests for api/storage.py
"""
import shutil
import tempfile
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase

from api.errors import ConfigurationError
from api.storage import ensure_dir, resolve_root


class ResolveRootTest(SimpleTestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.tmp, ignore_errors=True)

    def test_creates_intake_and_output_dirs(self):
        root = resolve_root(self.tmp / "store")

        self.assertTrue(root.intake_dir.is_dir())
        self.assertTrue(root.output_dir.is_dir())
        self.assertEqual(root.intake_dir.name, "uploads")
        self.assertEqual(root.output_dir.name, "converted")

    def test_repeated_calls_return_same_root(self):
        first = resolve_root(self.tmp / "store")
        second = resolve_root(str(self.tmp / "store"))

        self.assertIs(first, second)

    def test_existing_dirs_are_reused(self):
        (self.tmp / "store" / "uploads").mkdir(parents=True)
        root = resolve_root(self.tmp / "store")
        self.assertTrue(root.output_dir.is_dir())

    def test_job_paths_are_namespaced_by_id(self):
        root = resolve_root(self.tmp / "store")

        self.assertEqual(root.intake_path("abc", ".mp4"), root.intake_dir / "abc.mp4")
        self.assertEqual(root.output_path("abc", ".mp3"), root.output_dir / "abc.mp3")

    def test_uncreatable_root_is_configuration_error(self):
        blocker = self.tmp / "not-a-dir"
        blocker.write_text("x")

        with self.assertRaises(ConfigurationError) as ctx:
            resolve_root(blocker)
        self.assertIsInstance(ctx.exception, ImproperlyConfigured)

    def test_removed_subdirectories_are_recreated(self):
        root = resolve_root(self.tmp / "store")
        shutil.rmtree(root.intake_dir)
        shutil.rmtree(root.output_dir)

        again = resolve_root(self.tmp / "store")

        self.assertIs(again, root)
        self.assertTrue(root.intake_dir.is_dir())
        self.assertTrue(root.output_dir.is_dir())

    def test_ensure_dir_is_idempotent(self):
        target = self.tmp / "store" / "uploads"

        ensure_dir(target)
        ensure_dir(target)

        self.assertTrue(target.is_dir())
