from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

def env_list(name: str, default: str) -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "127.0.0.1,localhost,testserver")

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",

    # Third-party
    "rest_framework",

    # Local
    "api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "mp3_converter.urls"

ASGI_APPLICATION = "mp3_converter.asgi.application"

# -----------------------------------------------------
# Database
# -----------------------------------------------------
# Jobs live for one convert -> download cycle and are never persisted.
DATABASES = {}

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# -----------------------------------------------------
# Uploads
# -----------------------------------------------------
# Bodies above this size spool to FILE_UPLOAD_TEMP_DIR, never to the intake dir.
FILE_UPLOAD_MAX_MEMORY_SIZE = 2 * 1024 * 1024
FILE_UPLOAD_TEMP_DIR = env("FILE_UPLOAD_TEMP_DIR", None)
DATA_UPLOAD_MAX_MEMORY_SIZE = None

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
        "rest_framework.parsers.MultiPartParser",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
}

# -----------------------------------------------------
# Converter
# -----------------------------------------------------
CONVERTER_STORAGE_ROOT = Path(env("CONVERTER_STORAGE_ROOT", str(BASE_DIR / "storage")))
CONVERTER_MAX_UPLOAD_BYTES = env_int("CONVERTER_MAX_UPLOAD_BYTES", 500 * 1024 * 1024)
CONVERTER_ALLOWED_MEDIA_TYPES = env_list(
    "CONVERTER_ALLOWED_MEDIA_TYPES",
    "video/mp4,audio/mp4,video/avi,video/mov,video/wmv,"
    "video/quicktime,video/x-msvideo,video/x-ms-wmv,video/x-m4v",
)
CONVERTER_ALLOWED_EXTENSIONS = env_list("CONVERTER_ALLOWED_EXTENSIONS", ".mp4,.avi,.mov,.wmv,.m4v")
CONVERTER_FFMPEG_PATH = env("CONVERTER_FFMPEG_PATH", None)  # falls back to PATH lookup
CONVERTER_ENGINE_TIMEOUT = env_int("CONVERTER_ENGINE_TIMEOUT", None)  # seconds; unset = no limit
CONVERTER_STREAM_CHUNK_SIZE = env_int("CONVERTER_STREAM_CHUNK_SIZE", 64 * 1024)
CONVERTER_ARTIFACT_MAX_AGE = env_int("CONVERTER_ARTIFACT_MAX_AGE", 60)  # minutes

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
