import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class ApiConfig(AppConfig):
    name = "api"
    verbose_name = "MP4 to MP3 converter"

    # Resolved once per process in ready(); read-only afterwards.
    storage_root = None
    registry = None

    def ready(self):
        from .engine import engine_status
        from .lifecycle import ArtifactRegistry
        from .storage import resolve_root

        self.storage_root = resolve_root(settings.CONVERTER_STORAGE_ROOT)
        self.registry = ArtifactRegistry(self.storage_root)

        status = engine_status()
        if status["available"]:
            logger.info("FFmpeg available at %s", status["path"])
        else:
            logger.warning("FFmpeg not available (path: %s); conversions will fail", status["path"])
