"""
Artifact lifecycle: the in-memory job table and the one-shot download contract.

A converted MP3 may be streamed exactly once. Whichever terminal event of
the stream fires first (full delivery, read error, consumer disconnect, or the
response being closed) releases the job: the file is removed and the job id
is forgotten, so every later download attempt is NotFound.
"""
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import AsyncIterator

import aiofiles
from django.utils import timezone

from .errors import CleanupError, NotFoundError
from .models import Job, JobState
from .storage import StorageRoot

logger = logging.getLogger(__name__)

DELIVERED = "delivered"
IO_ERROR = "io_error"
DISCONNECTED = "disconnected"
CLOSED = "closed"
EXPIRED = "expired"
MISSING = "missing"


class ArtifactRegistry:
    """
    Jobs of one execution context, from intake until release.

    Django may close a response from a worker thread while the event loop is
    streaming it, so the table is guarded by a plain lock.
    """

    def __init__(self, root: StorageRoot):
        self.root = root
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._jobs)

    def __contains__(self, job_id):
        return job_id in self._jobs

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def register(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job id already registered: {job.id}")
            self._jobs[job.id] = job

    def discard(self, job_id: str) -> None:
        """Forget a job that never reached READY. Its files are the caller's business."""
        with self._lock:
            self._jobs.pop(job_id, None)

    def claim(self, job_id: str) -> Job:
        """
        READY -> STREAMING, exactly once per job.

        Unknown, converting, streaming and released ids are all NotFound, even
        if a file with that name is still on disk.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.state != JobState.READY:
                raise NotFoundError(job_id)
            job.state = JobState.STREAMING

        if not job.output_path.is_file():
            logger.warning("Artifact for job %s vanished before download", job_id)
            self.release(job_id, MISSING)
            raise NotFoundError(job_id)
        return job

    async def stream(self, job: Job, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        """Yield the artifact of a claimed job, then release it however the stream ends."""
        reason = DISCONNECTED
        logger.info("Starting download: %s -> %s", job.output_filename, job.original_name)
        try:
            async with aiofiles.open(job.output_path, "rb") as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
            reason = DELIVERED
        except OSError as e:
            reason = IO_ERROR
            logger.error("Download error for %s: %s", job.output_filename, e)
            raise
        finally:
            if reason == DISCONNECTED:
                logger.info("Download interrupted, cleaning up: %s", job.output_filename)
            self.release(job.id, reason)

    def release(self, job_id: str, reason: str) -> bool:
        """
        Remove the job's artifact and forget the job. Only the first call for
        a job does anything; later calls are logged and return False.
        Removal failures are logged, never raised.
        """
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is not None:
                job.state = JobState.COMPLETED

        if job is None:
            logger.debug("Release of %s after %s ignored: already released", job_id, reason)
            return False

        path = job.output_path
        if path is None:
            return True
        try:
            path.unlink()
            logger.info("File removed from storage after %s: %s", reason, path.name)
        except FileNotFoundError:
            logger.info("Artifact %s already gone at release (%s)", path.name, reason)
        except OSError as e:
            logger.warning("%s", CleanupError(f"Failed to remove {path.name} after {reason}: {e}"))
        return True

    def sweep(self, max_age: timedelta, *, now: datetime | None = None, dry_run: bool = False) -> list[Path]:
        """
        Release READY jobs older than max_age and remove orphaned intake/output
        files older than max_age that no live job owns. Returns the affected paths.
        """
        now = now or timezone.now()
        cutoff = now - max_age

        with self._lock:
            expired = [
                job for job in self._jobs.values()
                if job.state == JobState.READY and job.created_at < cutoff
            ]
            live_ids = set(self._jobs)

        swept: list[Path] = []
        for job in expired:
            swept.append(job.output_path)
            if not dry_run:
                self.release(job.id, EXPIRED)
        # files of expired jobs were handled by release above
        swept.extend(remove_stale_files(self.root, cutoff, keep=live_ids, dry_run=dry_run))

        if swept:
            logger.info("Sweep %s %d stale artifact(s)", "found" if dry_run else "removed", len(swept))
        return swept


def remove_stale_files(root: StorageRoot, cutoff: datetime, *, keep=(), dry_run: bool = False) -> list[Path]:
    """
    Remove intake and output files last modified before `cutoff` whose stem
    is not in `keep`. Returns the affected paths.

    Knows nothing about jobs: a caller without the live registry must pick a
    cutoff older than any conversion or download in flight.
    """
    cutoff_ts = cutoff.timestamp()
    removed: list[Path] = []
    for directory in (root.intake_dir, root.output_dir):
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.stem in keep:
                continue
            try:
                if path.stat().st_mtime >= cutoff_ts:
                    continue
                if not dry_run:
                    path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("%s", CleanupError(f"Failed to remove orphan {path}: {e}"))
                continue
            removed.append(path)
    return removed
