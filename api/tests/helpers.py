"""
Shared fixtures for the api tests: a throw-away storage root and shell
scripts that stand in for ffmpeg.
"""
import os
import shutil
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.apps import apps
from django.core.files.uploadedfile import SimpleUploadedFile

from api.lifecycle import ArtifactRegistry
from api.models import Job, JobState
from api.storage import resolve_root
from api.utils import new_id

# Every fake parses "-i <in>" and treats the last argument as the output path.
_PREAMBLE = """#!/bin/sh
in=""
prev=""
for arg; do
  if [ "$prev" = "-i" ]; then in="$arg"; fi
  prev="$arg"
  out="$arg"
done
"""

FAKE_ENGINES = {
    "ok": """
echo "  Duration: 00:00:02.00, start: 0.000000, bitrate: 128 kb/s" >&2
echo "out_time_us=1000000"
echo "progress=continue"
printf 'ID3' > "$out"
cat "$in" >> "$out"
echo "out_time_us=2000000"
echo "progress=end"
exit 0
""",
    "fail": """
printf 'ID3-partial' > "$out"
echo "$in: Invalid data found when processing input" >&2
exit 1
""",
    "empty": """
: > "$out"
exit 0
""",
    "silent": """
exit 0
""",
    "slow": """
printf 'ID3-partial' > "$out"
exec sleep 30
exit 0
""",
}


def write_fake_engine(directory: Path, kind: str) -> str:
    path = Path(directory) / f"ffmpeg-{kind}"
    path.write_text(_PREAMBLE + FAKE_ENGINES[kind])
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


def make_upload(name="clip.mp4", content=b"\x00\x00\x00\x18ftypmp42" * 64, content_type="video/mp4"):
    return SimpleUploadedFile(name, content, content_type=content_type)


def storage_files(root) -> list[str]:
    names = []
    for directory in (root.intake_dir, root.output_dir):
        names.extend(f"{directory.name}/{p.name}" for p in directory.iterdir())
    return sorted(names)


class StorageMixin:
    """
    Gives each test its own StorageRoot, ArtifactRegistry and fake engines,
    and points the api app config at them.
    """

    def setUp(self):
        super().setUp()
        self.tmp = Path(tempfile.mkdtemp(prefix="mp3conv-"))
        self.addCleanup(shutil.rmtree, self.tmp, ignore_errors=True)
        self.bin_dir = self.tmp / "bin"
        self.bin_dir.mkdir()
        self.root = resolve_root(self.tmp / "storage")
        self.registry = ArtifactRegistry(self.root)

        config = apps.get_app_config("api")
        for attr, value in (("storage_root", self.root), ("registry", self.registry)):
            patcher = patch.object(config, attr, value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def engine(self, kind: str) -> str:
        return write_fake_engine(self.bin_dir, kind)

    def make_job(self, content=b"fake video bytes", name="clip.mp4") -> Job:
        job_id = new_id()
        input_path = self.root.intake_path(job_id, os.path.splitext(name)[1])
        input_path.write_bytes(content)
        return Job(id=job_id, input_path=input_path, original_name=name, declared_size=len(content))

    def make_ready_job(self, payload=b"ID3" + b"\xff" * 4096, name="clip.mp4") -> Job:
        job = self.make_job(name=name)
        job.input_path.unlink()
        job.output_path = self.root.output_path(job.id, ".mp3")
        job.output_path.write_bytes(payload)
        job.output_size = len(payload)
        job.state = JobState.READY
        self.registry.register(job)
        return job
