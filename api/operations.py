"""
High-level operations called from the views or management commands.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from . import intake
from .engine import convert
from .errors import IntakeRejected
from .lifecycle import ArtifactRegistry, remove_stale_files
from .models import Job, JobState
from .storage import StorageRoot, ensure_dir
from .utils import extension_of, new_id, remove_file, save_uploaded_file

logger = logging.getLogger(__name__)


def check_upload(upload, original_name: str | None = None) -> intake.Accepted:
    """Run intake validation on an uploaded file; raise IntakeRejected if it fails."""
    candidate = intake.IntakeCandidate(
        name=original_name or upload.name,
        content_type=getattr(upload, "content_type", "") or "",
        size=upload.size,
    )
    verdict = intake.validate(candidate)
    if isinstance(verdict, intake.Rejected):
        logger.info("Upload %r rejected: %s", candidate.name, verdict.reason)
        raise IntakeRejected(verdict.reason, verdict.message)
    return verdict


async def convert_upload(
    upload,
    *,
    root: StorageRoot,
    registry: ArtifactRegistry,
    original_name: str | None = None,
    engine: str | None = None,
) -> Job:
    """
    Validate, store and convert one upload. Returns the READY job registered
    in `registry`.

    Nothing touches the storage root until validation has passed. If storing
    or converting fails, the intake file is gone and the job is forgotten
    before the error propagates.
    """
    accepted = check_upload(upload, original_name)
    # tokens nobody redeemed expire here, in the process that issued them
    sweep_stale(registry)

    job_id = new_id()
    job = Job(
        id=job_id,
        input_path=root.intake_path(job_id, extension_of(upload.name) or extension_of(accepted.original_name)),
        original_name=accepted.original_name,
        declared_size=accepted.size,
        content_type=getattr(upload, "content_type", "") or "",
    )
    registry.register(job)

    succeeded = False
    try:
        ensure_dir(job.input_path.parent)
        written = await save_uploaded_file(upload, job.input_path)
        logger.info("Stored upload %s as %s (%d bytes)", job.original_name, job.input_path.name, written)
        await convert(job, root, engine=engine)
        succeeded = True
    finally:
        if not succeeded:
            job.state = JobState.FAILED
            remove_file(job.input_path)
            registry.discard(job.id)
    return job


def sweep_stale(registry: ArtifactRegistry, *, max_age_minutes: int | None = None, dry_run: bool = False):
    if max_age_minutes is None:
        max_age_minutes = settings.CONVERTER_ARTIFACT_MAX_AGE
    return registry.sweep(timedelta(minutes=max_age_minutes), dry_run=dry_run)


def remove_stale(root: StorageRoot, *, max_age_minutes: int | None = None, dry_run: bool = False):
    """
    Remove intake and output files older than max_age_minutes without
    consulting any job table. For files left behind by a process that is
    no longer running.
    """
    if max_age_minutes is None:
        max_age_minutes = settings.CONVERTER_ARTIFACT_MAX_AGE
    cutoff = timezone.now() - timedelta(minutes=max_age_minutes)
    return remove_stale_files(root, cutoff, dry_run=dry_run)
