from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from django.db import models
from django.utils import timezone


class JobState(models.TextChoices):
    VALIDATED = "VALIDATED"
    CONVERTING = "CONVERTING"
    READY = "READY"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class Job:
    """
    One validate -> convert -> stream -> release cycle for a single upload.

    Jobs are never persisted; the handling request owns the job until it is
    handed to the ArtifactRegistry as READY.
    """
    id: str
    input_path: Path
    original_name: str
    declared_size: int
    content_type: str = ""
    output_path: Path | None = None     # assigned when conversion starts
    output_size: int = 0
    state: str = JobState.VALIDATED
    error: str = ""
    created_at: datetime = field(default_factory=timezone.now)

    @property
    def output_filename(self) -> str | None:
        return self.output_path.name if self.output_path else None
