"""
Conversion orchestrator.

Runs ffmpeg as an independent OS process against a validated upload and
produces one MP3 per job with a fixed audio profile. The caller awaits the
engine; other jobs keep running on the event loop meanwhile.
"""
import asyncio
import logging
import os
import re
import shutil
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings

from .errors import ConverterError, EngineError
from .models import Job, JobState
from .storage import StorageRoot, ensure_dir
from .utils import remove_file

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 40
STDERR_TAIL_CHARS = 4000

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_UNSET = object()


@dataclass(frozen=True)
class AudioProfile:
    codec: str = "libmp3lame"
    bitrate_kbps: int = 192
    sample_rate: int = 44100
    channels: int = 2
    container: str = "mp3"
    extension: str = ".mp3"

    def ffmpeg_args(self) -> list[str]:
        return [
            "-vn",
            "-acodec", self.codec,
            "-b:a", f"{self.bitrate_kbps}k",
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
            "-f", self.container,
        ]


# Output format is not negotiable per request.
AUDIO_PROFILE = AudioProfile()


def engine_path() -> str | None:
    return settings.CONVERTER_FFMPEG_PATH or shutil.which("ffmpeg")


def engine_status() -> dict:
    """Diagnostic view of the engine binary for the health endpoint."""
    path = engine_path()
    available = bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)
    return {"type": "ffmpeg", "path": path, "available": available}


def build_command(engine: str, input_path: Path, output_path: Path, profile: AudioProfile = AUDIO_PROFILE) -> list[str]:
    return [
        engine,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", str(input_path),
        *profile.ffmpeg_args(),
        "-progress", "pipe:1",
        "-nostats",
        str(output_path),
    ]


class _Progress:
    """Turns ffmpeg's progress stream into at most one log line per 10%."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.duration_us: int | None = None
        self.last_step = -1

    def saw_stderr_line(self, line: str) -> None:
        if self.duration_us is not None:
            return
        m = _DURATION_RE.search(line)
        if m:
            h, mnt, s = m.groups()
            self.duration_us = int((int(h) * 3600 + int(mnt) * 60 + float(s)) * 1_000_000)

    def saw_progress_line(self, line: str) -> None:
        key, _, value = line.partition("=")
        # out_time_ms is in microseconds despite its name
        if key not in ("out_time_us", "out_time_ms") or not self.duration_us:
            return
        try:
            elapsed = int(value)
        except ValueError:
            return
        percent = max(0, min(100, elapsed * 100 // self.duration_us))
        step = percent // 10
        if step > self.last_step:
            self.last_step = step
            logger.info("Processing %s: %d%% done", self.job_id, percent)


async def _read_progress(stream: asyncio.StreamReader, progress: _Progress) -> None:
    while True:
        line = await stream.readline()
        if not line:
            break
        progress.saw_progress_line(line.decode("utf-8", errors="replace").strip())


async def _read_stderr(stream: asyncio.StreamReader, progress: _Progress, tail: deque) -> None:
    while True:
        line = await stream.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace").rstrip()
        progress.saw_stderr_line(text)
        if text:
            tail.append(text)


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _failure_message(returncode: int, tail: deque) -> str:
    if returncode < 0:
        head = f"ffmpeg was killed by signal {-returncode}"
    else:
        head = f"ffmpeg exited with code {returncode}"
    return f"{head}: {tail[-1]}" if tail else head


async def _run_engine(job: Job, engine: str | None, timeout: float | None) -> None:
    if not engine:
        raise EngineError("ffmpeg binary not found; install ffmpeg or set CONVERTER_FFMPEG_PATH")

    cmd = build_command(engine, job.input_path, job.output_path)
    logger.debug("Engine command: %s", " ".join(cmd))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise EngineError(f"Could not start ffmpeg ({engine}): {e}") from e

    progress = _Progress(job.id)
    tail: deque = deque(maxlen=STDERR_TAIL_LINES)

    async def completion() -> int:
        await asyncio.gather(
            _read_progress(process.stdout, progress),
            _read_stderr(process.stderr, progress, tail),
        )
        return await process.wait()

    try:
        returncode = await asyncio.wait_for(completion(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(process)
        raise EngineError(
            f"ffmpeg timed out after {timeout}s",
            returncode=process.returncode,
            stderr="\n".join(tail)[-STDERR_TAIL_CHARS:],
        )
    except asyncio.CancelledError:
        logger.warning("Conversion of %s cancelled, stopping ffmpeg (pid %s)", job.id, process.pid)
        await _kill(process)
        raise

    if returncode != 0:
        raise EngineError(
            _failure_message(returncode, tail),
            returncode=returncode,
            stderr="\n".join(tail)[-STDERR_TAIL_CHARS:],
        )


def _check_output(job: Job) -> None:
    try:
        size = job.output_path.stat().st_size
    except FileNotFoundError:
        raise EngineError("ffmpeg reported success but produced no output file")
    if size == 0:
        raise EngineError("ffmpeg reported success but the output file is empty")
    job.output_size = size


async def convert(job: Job, root: StorageRoot, *, engine: str | None = None, timeout=_UNSET) -> Path:
    """
    Convert job.input_path to converted/<job.id>.mp3 and return the output path.

    The input is single-use: it is removed once the engine exits, whatever the
    outcome. On failure the partial output is removed too, the job is FAILED
    and EngineError propagates. There is exactly one engine run per job.
    """
    if job.state != JobState.VALIDATED:
        raise ConverterError(f"Job {job.id} is {job.state}; only VALIDATED jobs can be converted")
    if timeout is _UNSET:
        timeout = settings.CONVERTER_ENGINE_TIMEOUT

    job.output_path = root.output_path(job.id, AUDIO_PROFILE.extension)
    job.state = JobState.CONVERTING
    logger.info("Converting: %s -> %s", job.original_name, job.output_filename)

    succeeded = False
    try:
        ensure_dir(root.output_dir)
        await _run_engine(job, engine or engine_path(), timeout)
        _check_output(job)
        succeeded = True
    except EngineError as e:
        job.error = e.message
        logger.error("FFmpeg error for job %s: %s", job.id, e.message)
        if e.stderr:
            logger.debug("FFmpeg stderr for job %s:\n%s", job.id, e.stderr)
        raise
    finally:
        remove_file(job.input_path)
        if not succeeded:
            job.state = JobState.FAILED
            remove_file(job.output_path)

    job.state = JobState.READY
    logger.info("Conversion completed: %s (%d bytes)", job.output_filename, job.output_size)
    return job.output_path
