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

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

MB = 1024 * 1024

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Third-party
    "rest_framework",

    # Local
    "videos",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "video_pipeline.urls"

WSGI_APPLICATION = "video_pipeline.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "video_pipeline"),
            "USER": env("DB_USER", "video_user"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(env("DB_CONN_MAX_AGE", "60")),  # keep-alive
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "videos.identity.TrustedHeaderAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "EXCEPTION_HANDLER": "videos.handlers.pipeline_exception_handler",
}

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s [%(process)d] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "videos": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django.request": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}

# -----------------------------------------------------
# Celery / Redis (maintenance sweep only; transcode jobs go through SQS)
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 60 * 15)  # seconds
CELERY_BEAT_SCHEDULE = {
    "reconcile-variants": {
        "task": "videos.tasks.reconcile_variants",
        "schedule": env_int("RECONCILE_INTERVAL_SECONDS", 60 * 30),
    },
}

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None  # None -> AWS default endpoint
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT") or S3_ENDPOINT_URL
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "media-local")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local
S3_PRESIGN_EXPIRE_SECONDS = env_int("S3_PRESIGN_EXPIRE_SECONDS", 3600)

# -----------------------------------------------------
# Uploads
# -----------------------------------------------------
UPLOAD_ALLOWED_CONTENT_TYPES = [
    c.strip() for c in os.getenv("UPLOAD_ALLOWED_CONTENT_TYPES", "video/mp4").split(",") if c.strip()
]
UPLOAD_MAX_BYTES = env_int("UPLOAD_MAX_BYTES", 50 * 1024 * MB)
MULTIPART_THRESHOLD_BYTES = env_int("MULTIPART_THRESHOLD_MB", 100) * MB
MULTIPART_PART_SIZE_BYTES = env_int("MULTIPART_PART_SIZE_MB", 10) * MB

# -----------------------------------------------------
# Job queue (SQS) & worker
# -----------------------------------------------------
JOBS_QUEUE_URL = os.getenv("JOBS_QUEUE_URL", "")
JOBS_QUEUE_REGION = os.getenv("JOBS_QUEUE_REGION", S3_REGION)
JOBS_QUEUE_ENDPOINT_URL = os.getenv("JOBS_QUEUE_ENDPOINT_URL") or None
JOBS_MAX_RECEIVE_COUNT = env_int("JOBS_MAX_RECEIVE_COUNT", 5)  # mirrors the redrive policy
WORKER_LEASE_SECONDS = env_int("WORKER_LEASE_SECONDS", 300)
WORKER_HEARTBEAT_SECONDS = env_int("WORKER_HEARTBEAT_SECONDS", 120)
WORKER_RECEIVE_WAIT_SECONDS = env_int("WORKER_RECEIVE_WAIT_SECONDS", 20)
WORKER_CONCURRENCY = env_int("WORKER_CONCURRENCY", 1)
WORKER_TEMP_DIR = os.getenv("WORKER_TEMP_DIR") or None

# Shared secret between workers and the job-status ingress
API_JOB_STATUS_TOKEN = os.getenv("API_JOB_STATUS_TOKEN", "")
JOB_STATUS_URL = os.getenv("JOB_STATUS_URL", "")

# -----------------------------------------------------
# Codec
# -----------------------------------------------------
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFMPEG_PRESET = os.getenv("FFMPEG_PRESET", "medium")
FFMPEG_TIMEOUT_SECONDS = env_int("FFMPEG_TIMEOUT_SECONDS", 60 * 60 * 2)

# -----------------------------------------------------
# Listing & maintenance
# -----------------------------------------------------
LIST_DEFAULT_LIMIT = env_int("LIST_DEFAULT_LIMIT", 10)
LIST_MAX_LIMIT = env_int("LIST_MAX_LIMIT", 100)
RECONCILE_STALE_PROCESSING_SECONDS = env_int("RECONCILE_STALE_PROCESSING_SECONDS", 60 * 60 * 6)
RECONCILE_ORPHAN_GRACE_SECONDS = env_int("RECONCILE_ORPHAN_GRACE_SECONDS", 60 * 60 * 24)
