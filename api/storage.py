import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

INTAKE_DIRNAME = "uploads"
OUTPUT_DIRNAME = "converted"

_resolved: dict[Path, "StorageRoot"] = {}


@dataclass(frozen=True)
class StorageRoot:
    base: Path
    intake_dir: Path
    output_dir: Path

    def intake_path(self, job_id: str, suffix: str) -> Path:
        return self.intake_dir / f"{job_id}{suffix}"

    def output_path(self, job_id: str, suffix: str) -> Path:
        return self.output_dir / f"{job_id}{suffix}"


def ensure_dir(path: Path) -> None:
    """Create `path` if it is missing. Safe to call before every write."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Cannot create storage directory {path}: {e}") from e
    if not os.access(path, os.W_OK | os.X_OK):
        raise ConfigurationError(f"Storage directory is not writable: {path}")


def resolve_root(base) -> StorageRoot:
    """
    Return the StorageRoot for `base`, creating uploads/ and converted/ if missing.

    Repeated calls with the same base return the same object and re-create
    any subdirectory removed since. Failure to create or write the
    directories is a configuration error.
    """
    base = Path(base).expanduser().resolve()
    root = _resolved.get(base)
    if root is not None:
        ensure_dir(root.intake_dir)
        ensure_dir(root.output_dir)
        return root

    root = StorageRoot(
        base=base,
        intake_dir=base / INTAKE_DIRNAME,
        output_dir=base / OUTPUT_DIRNAME,
    )
    ensure_dir(root.intake_dir)
    ensure_dir(root.output_dir)

    logger.info("Storage root resolved: %s (intake=%s, output=%s)", base, root.intake_dir, root.output_dir)
    return _resolved.setdefault(base, root)
