"""
Tests for the cleanup_artifacts management command
"""
import os
import time
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase

from api.models import JobState

from .helpers import StorageMixin


class CleanupArtifactsCommandTest(StorageMixin, SimpleTestCase):

    def setUp(self):
        super().setUp()
        self.orphan = self.root.output_dir / ("e" * 32 + ".mp3")
        self.orphan.write_bytes(b"stale")
        old = time.time() - 3 * 3600
        os.utime(self.orphan, (old, old))

    def _run(self, *args):
        out = StringIO()
        call_command("cleanup_artifacts", *args, stdout=out)
        return out.getvalue()

    def test_dry_run_lists_without_deleting(self):
        output = self._run("--dry-run", "--max-age", "60")

        self.assertIn("DRY RUN", output)
        self.assertIn(self.orphan.name, output)
        self.assertTrue(self.orphan.exists())

    def test_deletes_stale_files(self):
        output = self._run("--max-age", "60")

        self.assertIn("Deleted 1 file", output)
        self.assertFalse(self.orphan.exists())

    def test_nothing_to_do(self):
        output = self._run("--max-age", "600")

        self.assertIn("No files older than 600 minutes", output)
        self.assertTrue(self.orphan.exists())

    def test_only_removes_files(self):
        job = self.make_ready_job()
        other_process_job = self.root.intake_dir / ("f" * 32 + ".mp4")
        other_process_job.write_bytes(b"partial")
        old = time.time() - 3 * 3600
        os.utime(other_process_job, (old, old))

        self._run("--max-age", "60")

        self.assertFalse(other_process_job.exists())
        self.assertIn(job.id, self.registry)
        self.assertEqual(job.state, JobState.READY)
        self.assertTrue(job.output_path.exists())
