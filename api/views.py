import logging
from functools import partial

from django.apps import apps
from django.conf import settings
from django.http import JsonResponse, StreamingHttpResponse
from django.utils.http import content_disposition_header
from django.views import View
from rest_framework import views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .engine import engine_status
from .errors import ConverterError, EngineError, IntakeRejected, NotFoundError
from .intake import NO_FILE, TOO_LARGE, size_message
from .lifecycle import CLOSED
from .operations import convert_upload
from .serializers import ConvertResultSerializer, ConvertUploadSerializer, ErrorSerializer
from .utils import OUTPUT_EXTENSION, download_name, is_valid_id

logger = logging.getLogger(__name__)

# Room for multipart boundaries, headers and the originalName field.
MULTIPART_ALLOWANCE = 64 * 1024
INTERNAL_ERROR = "InternalError"


def _context():
    """StorageRoot and ArtifactRegistry resolved by ApiConfig.ready()."""
    config = apps.get_app_config("api")
    return config.storage_root, config.registry


def _error(code: str, message: str, status: int) -> JsonResponse:
    body = ErrorSerializer({"success": False, "error": code, "message": message}).data
    return JsonResponse(body, status=status)


def _first_error(errors) -> str:
    if isinstance(errors, dict):
        for value in errors.values():
            return _first_error(value)
    if isinstance(errors, list) and errors:
        return _first_error(errors[0])
    return str(errors)


def _content_length(request) -> int | None:
    try:
        return int(request.META.get("CONTENT_LENGTH") or "")
    except ValueError:
        return None


class OneShotStreamingResponse(StreamingHttpResponse):
    """StreamingHttpResponse that runs `on_close` when the server closes it."""

    def __init__(self, *args, on_close=None, **kwargs):
        super().__init__(*args, **kwargs)
        self._on_close = on_close

    def close(self):
        try:
            super().close()
        finally:
            if self._on_close is not None:
                self._on_close()


class ConvertView(View):
    """
    Accepts one media upload, converts it to MP3 while the request waits,
    and returns a one-time download token.
    """

    async def post(self, request):
        logger.info("Convert request received")
        # refuse oversized bodies before the multipart parser spools them
        limit = settings.CONVERTER_MAX_UPLOAD_BYTES
        length = _content_length(request)
        if limit is not None and length is not None and length > limit + MULTIPART_ALLOWANCE:
            logger.info("Request body of %d bytes rejected before parsing", length)
            return _error(TOO_LARGE, size_message(), 413)

        data = request.POST.copy()
        data.update(request.FILES)
        ser = ConvertUploadSerializer(data=data)
        if not ser.is_valid():
            logger.info("No usable file uploaded: %s", ser.errors)
            return _error(NO_FILE, _first_error(ser.errors), 400)

        upload = ser.validated_data["upload"]
        original_name = ser.validated_data.get("originalName") or upload.name
        root, registry = _context()

        try:
            job = await convert_upload(upload, root=root, registry=registry, original_name=original_name)
        except IntakeRejected as e:
            return _error(e.reason, e.message, 413 if e.reason == TOO_LARGE else 400)
        except EngineError as e:
            logger.error("Conversion error for %s: %s", original_name, e.message)
            return _error(EngineError.code, e.message, 500)
        except OSError as e:
            logger.exception("Storage error while converting %s", original_name)
            return _error(EngineError.code, str(e), 500)
        except ConverterError:
            logger.exception("Unexpected converter error for %s", original_name)
            return _error(INTERNAL_ERROR, "Internal server error", 500)

        body = ConvertResultSerializer(job).data
        logger.info("Download token issued: %s (%s)", job.id, job.original_name)
        return JsonResponse(body)


class DownloadView(View):
    """
    Streams a converted file once. The artifact is removed as soon as the
    stream ends, whether delivered, failed or abandoned by the client.
    """

    async def get(self, request, token):
        # accept the bare token or the artifact filename (<token>.mp3)
        if token.endswith(OUTPUT_EXTENSION):
            token = token[: -len(OUTPUT_EXTENSION)]
        if not is_valid_id(token):
            return _error(NotFoundError.code, "File not found", 404)

        _, registry = _context()
        try:
            job = registry.claim(token)
        except NotFoundError:
            return _error(NotFoundError.code, "File not found", 404)

        filename = download_name(request.GET.get("original"), job.original_name)
        response = OneShotStreamingResponse(
            registry.stream(job, settings.CONVERTER_STREAM_CHUNK_SIZE),
            content_type="audio/mpeg",
            on_close=partial(registry.release, job.id, CLOSED),
        )
        response["Content-Disposition"] = content_disposition_header(True, filename)
        response["Content-Length"] = str(job.output_size)
        return response


class HealthView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response({
            "status": "OK",
            "message": "MP4 to MP3 Converter API is running",
            "ffmpeg": engine_status(),
        })
