import logging
import os
import re
from pathlib import Path
from uuid import uuid4

import aiofiles

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".mp3"
DEFAULT_DOWNLOAD_STEM = "converted"
COPY_CHUNK_SIZE = 64 * 1024

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_id() -> str:
    """Collision-resistant, filesystem-safe job id (uuid4 hex)."""
    return uuid4().hex


def is_valid_id(token: str) -> bool:
    return bool(token) and _ID_RE.match(token) is not None


def extension_of(name: str) -> str:
    return Path(os.path.basename(name or "")).suffix.lower()


async def save_uploaded_file(djangofile, dest: Path, chunk_size: int = COPY_CHUNK_SIZE) -> int:
    """
    Write an uploaded file to `dest` chunk by chunk and return the bytes written.

    Uploads Django spooled to disk are read back through aiofiles. In-memory
    uploads are already buffered, so iterating their chunks never waits on I/O.
    """
    written = 0
    async with aiofiles.open(dest, "wb") as f:
        if hasattr(djangofile, "temporary_file_path"):
            async with aiofiles.open(djangofile.temporary_file_path(), "rb") as src:
                while True:
                    chunk = await src.read(chunk_size)
                    if not chunk:
                        break
                    await f.write(chunk)
                    written += len(chunk)
        else:
            for chunk in djangofile.chunks(chunk_size):
                await f.write(chunk)
                written += len(chunk)
    return written


def remove_file(path: Path | None) -> bool:
    """Best-effort unlink. Returns True if a file was removed."""
    if path is None:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
        return False
    logger.debug("Removed %s", path)
    return True


def download_name(*candidates: str | None) -> str:
    """
    Build the attachment filename: first non-empty candidate, extension
    replaced with .mp3.
    """
    for name in candidates:
        stem = Path(os.path.basename(name or "")).stem.strip()
        # quotes and backslashes never reach the header
        stem = stem.replace('"', "").replace("\\", "")
        if stem:
            return f"{stem}{OUTPUT_EXTENSION}"
    return f"{DEFAULT_DOWNLOAD_STEM}{OUTPUT_EXTENSION}"
