"""
Intake validation: decide whether an upload may be converted before any
storage or engine work happens.
"""
import mimetypes
from dataclasses import dataclass

from django.conf import settings

from .utils import extension_of

UNSUPPORTED_KIND = "UnsupportedKind"
TOO_LARGE = "TooLarge"
NO_FILE = "NoFile"


@dataclass(frozen=True)
class IntakeCandidate:
    name: str
    content_type: str
    size: int


@dataclass(frozen=True)
class Accepted:
    original_name: str
    size: int
    kind: str   # 'video' | 'audio'


@dataclass(frozen=True)
class Rejected:
    reason: str
    message: str


def guess_kind(content_type: str, name: str) -> str:
    """Return 'audio' or 'video' from the declared type, falling back to the extension."""
    mime = (content_type or "").lower()
    if not mime.startswith(("audio/", "video/")):
        mime, _ = mimetypes.guess_type(name or "")
        mime = mime or ""
    return "audio" if mime.startswith("audio/") else "video"


def _allowed_extensions_label() -> str:
    return ", ".join(e.lstrip(".").upper() for e in settings.CONVERTER_ALLOWED_EXTENSIONS)


def size_message() -> str:
    return f"Maximum file size is {settings.CONVERTER_MAX_UPLOAD_BYTES // (1024 * 1024)}MB"


def validate(candidate: IntakeCandidate) -> Accepted | Rejected:
    """
    Accept the candidate if its declared media type OR its extension is on the
    allow-list, and its size is within CONVERTER_MAX_UPLOAD_BYTES.
    """
    content_type = (candidate.content_type or "").split(";")[0].strip().lower()
    type_ok = content_type in {t.lower() for t in settings.CONVERTER_ALLOWED_MEDIA_TYPES}
    ext_ok = extension_of(candidate.name) in {e.lower() for e in settings.CONVERTER_ALLOWED_EXTENSIONS}

    if not (type_ok or ext_ok):
        return Rejected(
            UNSUPPORTED_KIND,
            f"Invalid file type. Only {_allowed_extensions_label()} files are allowed.",
        )

    limit = settings.CONVERTER_MAX_UPLOAD_BYTES
    if limit is not None and candidate.size > limit:
        return Rejected(TOO_LARGE, size_message())

    return Accepted(
        original_name=candidate.name,
        size=candidate.size,
        kind=guess_kind(content_type, candidate.name),
    )
