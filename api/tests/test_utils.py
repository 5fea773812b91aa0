"""
Tests for api/utils.py
"""
import asyncio
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.core.files.uploadedfile import TemporaryUploadedFile
from django.test import SimpleTestCase

from api.utils import download_name, extension_of, is_valid_id, new_id, remove_file, save_uploaded_file

from .helpers import make_upload


class JobIdTest(SimpleTestCase):

    def test_ids_are_unique_hex_tokens(self):
        ids = {new_id() for _ in range(1000)}

        self.assertEqual(len(ids), 1000)
        for token in ids:
            self.assertTrue(is_valid_id(token))
            self.assertEqual(len(token), 32)

    def test_rejects_path_like_tokens(self):
        for token in ["", "../etc/passwd", "abc", "A" * 32, new_id() + ".mp3"]:
            self.assertFalse(is_valid_id(token), token)


class DownloadNameTest(SimpleTestCase):

    def test_replaces_extension(self):
        self.assertEqual(download_name("clip.mp4"), "clip.mp3")

    def test_keeps_inner_dots(self):
        self.assertEqual(download_name("my.holiday.video.mov"), "my.holiday.video.mp3")

    def test_first_non_empty_candidate_wins(self):
        self.assertEqual(download_name(None, "", "fallback.avi"), "fallback.mp3")

    def test_default_name(self):
        self.assertEqual(download_name(None), "converted.mp3")

    def test_strips_directories_and_quotes(self):
        self.assertEqual(download_name('../../we"ird.mp4'), "weird.mp3")


class FileHelpersTest(SimpleTestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.tmp, ignore_errors=True)

    def test_extension_of(self):
        self.assertEqual(extension_of("Clip.MP4"), ".mp4")
        self.assertEqual(extension_of("noext"), "")

    def test_save_uploaded_file(self):
        upload = make_upload(content=b"x" * 5000)
        dest = self.tmp / "in.mp4"

        written = asyncio.run(save_uploaded_file(upload, dest))

        self.assertEqual(written, 5000)
        self.assertEqual(dest.read_bytes(), b"x" * 5000)

    def test_save_spooled_upload_reads_temp_file(self):
        upload = TemporaryUploadedFile("big.mp4", "video/mp4", 0, None)
        self.addCleanup(upload.close)
        upload.write(b"y" * 200_000)
        upload.flush()
        dest = self.tmp / "big.mp4"

        with patch.object(upload, "chunks", side_effect=AssertionError("read synchronously")):
            written = asyncio.run(save_uploaded_file(upload, dest))

        self.assertEqual(written, 200_000)
        self.assertEqual(dest.read_bytes(), b"y" * 200_000)

    def test_remove_file_is_best_effort(self):
        target = self.tmp / "a.mp3"
        target.write_bytes(b"1")

        self.assertTrue(remove_file(target))
        self.assertFalse(remove_file(target))
        self.assertFalse(remove_file(None))
